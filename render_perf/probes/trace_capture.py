from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..ports.session import Page, Session
from .base import LOG, Probe, ProbeHandle, ProbeKind
from .tracing import collect_trace_data, start_tracing

FLAMEGRAPH_CATEGORIES = ",".join(
    (
        "devtools.timeline",
        "v8.execute",
        "disabled-by-default-devtools.timeline",
        "disabled-by-default-devtools.timeline.frame",
        "disabled-by-default-devtools.timeline.stack",
        "disabled-by-default-v8.cpu_profiler",
    )
)
SAMPLING_FREQUENCY_HZ = 10000
COLLECTION_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class TraceCaptureResult:
    events: List[Dict[str, Any]]
    event_count: int
    duration_ms: float


class TraceCaptureHandle(ProbeHandle[TraceCaptureResult]):
    def __init__(self, session: Session, page: Page) -> None:
        super().__init__(ProbeKind.TRACE_CAPTURE, session, page)
        self._started = time.monotonic()

    async def _finalize(self) -> TraceCaptureResult:
        duration_ms = (time.monotonic() - self._started) * 1000
        events = await collect_trace_data(self.session, COLLECTION_TIMEOUT_SECONDS)
        return TraceCaptureResult(events=events, event_count=len(events), duration_ms=duration_ms)


class TraceCaptureProbe(Probe):
    kind = ProbeKind.TRACE_CAPTURE

    async def start(self, page: Page, config: Any = None) -> Optional[TraceCaptureHandle]:
        async def configure(session: Session) -> None:
            await start_tracing(session, FLAMEGRAPH_CATEGORIES, f"sampling-frequency={SAMPLING_FREQUENCY_HZ}")

        session = await self._open_session(page, configure)
        if session is None:
            return None
        LOG.debug("Trace capture started")
        return TraceCaptureHandle(session, page)
