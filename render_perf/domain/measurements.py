from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import StorePhase, StoreStateError


@dataclass(frozen=True)
class FrameMetrics:
    """Frame-rate summary for one sampling window."""

    avg: float
    frame_count: int
    tracking_duration_ms: float


@dataclass(frozen=True)
class HeapSnapshot:
    used_size: float
    total_size: float

    @classmethod
    def from_metrics(cls, metrics: List[Mapping[str, Any]]) -> "HeapSnapshot":
        lookup = {item.get("name"): item.get("value", 0) for item in metrics}
        return cls(
            used_size=float(lookup.get("JSHeapUsedSize") or 0),
            total_size=float(lookup.get("JSHeapTotalSize") or 0),
        )


@dataclass(frozen=True)
class HeapMetrics:
    initial: HeapSnapshot
    final: HeapSnapshot
    heap_growth: float
    heap_growth_percent: float

    @classmethod
    def between(cls, initial: HeapSnapshot, final: HeapSnapshot) -> "HeapMetrics":
        growth = final.used_size - initial.used_size
        if initial.used_size > 0:
            percent = round_to(growth / initial.used_size * 100)
        else:
            percent = 0.0
        return cls(initial=initial, final=final, heap_growth=growth, heap_growth_percent=percent)


@dataclass(frozen=True)
class SubjectSample:
    """Render totals for one subject inside one store snapshot."""

    duration: float
    rerenders: float
    base_duration: float = 0.0
    phases: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class StoreSnapshot:
    sample_count: int
    total_duration: float
    total_base_duration: float = 0.0
    phases: Dict[str, int] = field(default_factory=dict)
    subjects: Dict[str, SubjectSample] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "StoreSnapshot":
        return cls(sample_count=0, total_duration=0.0)

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "StoreSnapshot":
        if payload is None:
            raise StoreStateError(
                "Store snapshot is empty. The instrumentation store may not be mounted.",
                StorePhase.VALIDATION,
                {"state": None},
            )
        subjects: Dict[str, SubjectSample] = {}
        for name, entry in (payload.get("subjects") or {}).items():
            subjects[str(name)] = SubjectSample(
                duration=float(entry.get("duration", 0)),
                rerenders=int(entry.get("rerenders", 0)),
                base_duration=float(entry.get("baseDuration", 0)),
                phases=dict(entry.get("phases") or {}),
            )
        snapshot = cls(
            sample_count=int(payload.get("sampleCount", 0)),
            total_duration=float(payload.get("totalDuration", 0)),
            total_base_duration=float(payload.get("totalBaseDuration", 0)),
            phases=dict(payload.get("phases") or {}),
            subjects=subjects,
        )
        if snapshot.sample_count == 0:
            raise StoreStateError(
                "Store snapshot has zero samples. The workload may not have rendered anything.",
                StorePhase.VALIDATION,
                {"sampleCount": 0},
            )
        return snapshot


@dataclass(frozen=True)
class WebVitals:
    lcp: Optional[float] = None
    inp: Optional[float] = None
    cls: Optional[float] = None
    ttfb: Optional[float] = None
    fcp: Optional[float] = None

    def has_values(self) -> bool:
        return any(value is not None for value in asdict(self).values())


@dataclass(frozen=True)
class AuditScores:
    """Category scores on a 0-100 scale; ``None`` when the category did not run."""

    performance: Optional[int] = None
    accessibility: Optional[int] = None
    best_practices: Optional[int] = None
    seo: Optional[int] = None
    pwa: Optional[int] = None
    audit_duration_ms: float = 0.0
    url: str = ""


@dataclass(frozen=True)
class Mark:
    name: str
    timestamp: float


@dataclass(frozen=True)
class Measure:
    name: str
    start_mark: str
    end_mark: str
    duration: float
    start_time: float


@dataclass(frozen=True)
class CustomMetrics:
    marks: List[Mark] = field(default_factory=list)
    measures: List[Measure] = field(default_factory=list)

    def has_entries(self) -> bool:
        return bool(self.marks or self.measures)


@dataclass(frozen=True)
class IterationResult:
    duration: float
    rerenders: float
    fps: Optional[float] = None
    frame_metrics: Optional[FrameMetrics] = None
    heap_growth: Optional[float] = None
    heap_metrics: Optional[HeapMetrics] = None
    subjects: Dict[str, SubjectSample] = field(default_factory=dict)

    @classmethod
    def from_snapshot(
        cls,
        snapshot: StoreSnapshot,
        frames: Optional[FrameMetrics] = None,
        heap: Optional[HeapMetrics] = None,
    ) -> "IterationResult":
        return cls(
            duration=snapshot.total_duration,
            rerenders=snapshot.sample_count,
            fps=None if frames is None else frames.avg,
            frame_metrics=frames,
            heap_growth=None if heap is None else heap.heap_growth,
            heap_metrics=heap,
            subjects=dict(snapshot.subjects),
        )


@dataclass(frozen=True)
class PercentileSet:
    p50: float
    p95: float
    p99: float


@dataclass(frozen=True)
class SubjectPercentiles:
    duration: PercentileSet
    rerenders: PercentileSet


@dataclass(frozen=True)
class PercentileSummary:
    duration: PercentileSet
    rerenders: PercentileSet
    fps: Optional[PercentileSet] = None
    subjects: Dict[str, SubjectPercentiles] = field(default_factory=dict)


@dataclass(frozen=True)
class StandardDeviation:
    duration: float
    rerenders: float
    fps: Optional[float] = None
    heap_growth: Optional[float] = None


@dataclass(frozen=True)
class IterationMetrics:
    iterations: int
    duration: float
    rerenders: float
    results: List[IterationResult]
    fps: Optional[float] = None
    heap_growth: Optional[float] = None
    subjects: Dict[str, SubjectSample] = field(default_factory=dict)
    standard_deviation: Optional[StandardDeviation] = None
    percentiles: Optional[PercentileSummary] = None


@dataclass
class PerformanceMetrics:
    """Everything measured for one test, as judged and attached."""

    store: StoreSnapshot
    frames: Optional[FrameMetrics] = None
    heap: Optional[HeapMetrics] = None
    web_vitals: Optional[WebVitals] = None
    custom: Optional[CustomMetrics] = None
    iterations: Optional[IterationMetrics] = None
    audit: Optional[AuditScores] = None

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


def round_to(value: float, decimals: int = 2) -> float:
    """Half-up rounding to ``decimals`` places."""
    factor = 10 ** decimals
    # Half-up rather than Python's banker's rounding.
    return math.floor(value * factor + 0.5) / factor
