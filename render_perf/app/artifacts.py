from __future__ import annotations

from typing import Any, Dict

from ..domain.measurements import PerformanceMetrics
from .config import ResolvedConfig


def build_artifact(metrics: PerformanceMetrics, config: ResolvedConfig) -> Dict[str, Any]:
    return {
        "metrics": metrics.to_dict(),
        "throttle": config.throttle_rate,
        "track_fps": config.track_fps,
        "track_memory": config.track_memory,
        "track_web_vitals": config.track_web_vitals,
        "thresholds": config.thresholds.to_dict(),
        "buffers": config.buffers.to_dict(),
        "warmup": config.warmup,
        "environment": config.environment,
        "iterations": config.iterations,
    }
