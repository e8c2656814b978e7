from __future__ import annotations

import time
from typing import Callable, Dict, List

from ..domain.measurements import CustomMetrics, Mark, Measure


class CustomMetricsStore:
    """Marks and measures recorded by a workload, relative to store creation."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._origin = clock()
        self._marks: Dict[str, float] = {}
        self._measures: List[Measure] = []

    def _now_ms(self) -> float:
        return (self._clock() - self._origin) * 1000

    def mark(self, name: str) -> float:
        timestamp = self._now_ms()
        self._marks[name] = timestamp
        return timestamp

    def _lookup(self, name: str) -> float:
        try:
            return self._marks[name]
        except KeyError:
            available = ", ".join(self._marks) or "none"
            raise KeyError(f'Mark "{name}" not found. Available marks: {available}') from None

    def measure(self, name: str, start_mark: str, end_mark: str) -> float:
        start = self._lookup(start_mark)
        end = self._lookup(end_mark)
        duration = end - start
        self._measures.append(
            Measure(name=name, start_mark=start_mark, end_mark=end_mark, duration=duration, start_time=start)
        )
        return duration

    def snapshot(self) -> CustomMetrics:
        return CustomMetrics(
            marks=[Mark(name=name, timestamp=timestamp) for name, timestamp in self._marks.items()],
            measures=list(self._measures),
        )

    def reset(self) -> None:
        self._marks.clear()
        self._measures.clear()
