"""Human-readable renderings used in log lines and assertion messages."""
from __future__ import annotations

import math

from .domain.measurements import round_to

_BYTE_UNITS = ("B", "KB", "MB", "GB")


def format_bytes(value: float) -> str:
    if value == 0:
        return "0 B"
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    index = min(int(math.floor(math.log(magnitude, 1024))), len(_BYTE_UNITS) - 1) if magnitude >= 1 else 0
    return f"{sign}{magnitude / 1024 ** index:.2f} {_BYTE_UNITS[index]}"


def format_throughput(bytes_per_second: float) -> str:
    if bytes_per_second < 0:
        return "unlimited"
    kbps = bytes_per_second * 8 / 1024
    if kbps >= 1024:
        return f"{kbps / 1024:.1f} Mbps"
    return f"{round_to(kbps, 0):.0f} Kbps"


def format_duration(ms: float, precision: int = 2) -> str:
    if ms >= 1000:
        return f"{ms / 1000:.{precision}f}s"
    return f"{ms:.{precision}f}ms"
