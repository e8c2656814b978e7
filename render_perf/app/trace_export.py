"""Chrome trace-format export of a captured flamegraph trace."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..probes.trace_capture import TraceCaptureResult
from .config import TraceExportSettings, sanitize_title

LOG = logging.getLogger("render_perf.trace_export")

TRACE_SOURCE = "render-perf"


def trace_output_path(title: str, settings: TraceExportSettings, output_dir: Path) -> Path:
    if settings.output_path:
        return Path(settings.output_path)
    return Path(output_dir) / f"{sanitize_title(title)}-trace.json"


def format_trace(events: List[Dict[str, Any]], test_name: str) -> Dict[str, Any]:
    return {
        "traceEvents": events,
        "metadata": {
            "capturedAt": datetime.now(timezone.utc).isoformat(),
            "testName": test_name,
            "source": TRACE_SOURCE,
        },
    }


def export_trace(
    result: TraceCaptureResult,
    title: str,
    settings: TraceExportSettings,
    output_dir: Path,
) -> Optional[Path]:
    """Writes the trace file; returns None when disabled or nothing was captured."""
    if not settings.enabled or result.event_count == 0:
        return None
    path = trace_output_path(title, settings, output_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(format_trace(result.events, title), indent=2), encoding="utf-8")
    LOG.info("Trace exported: %s (%d events)", path, result.event_count)
    return path
