"""Threshold budgets: effective-boundary math and two-tier resolution."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .errors import ConfigurationError

WILDCARD_SUBJECT = "*"

DEFAULT_BUFFER_PERCENT = 20.0
DEFAULT_AUDIT_BUFFER_PERCENT = 5.0
DEFAULT_FPS_THRESHOLD = 60.0
DEFAULT_HEAP_GROWTH_THRESHOLD = 0.0

PERCENTILE_LEVELS = ("p50", "p95", "p99")

ThresholdInput = Union[float, int, Mapping[str, Any]]


def _validate_threshold_params(threshold: float, buffer_percent: float) -> None:
    if threshold < 0:
        raise ConfigurationError(f"Threshold must be non-negative, got: {threshold}")
    if buffer_percent < 0 or buffer_percent > 100:
        raise ConfigurationError(f"Buffer percent must be between 0 and 100, got: {buffer_percent}")


def calculate_effective_threshold(threshold: float, buffer_percent: float, ceil: bool = False) -> float:
    """Upper boundary for lower-is-better metrics: ``threshold * (1 + buffer/100)``."""
    _validate_threshold_params(threshold, buffer_percent)
    effective = threshold * (1 + buffer_percent / 100)
    return math.ceil(effective) if ceil else effective


def calculate_effective_min_threshold(threshold: float, buffer_percent: float, floor: bool = False) -> float:
    """Lower boundary for higher-is-better metrics: ``threshold * (1 - buffer/100)``."""
    _validate_threshold_params(threshold, buffer_percent)
    effective = threshold * (1 - buffer_percent / 100)
    return math.floor(effective) if floor else effective


class BufferDirection(str, Enum):
    ADDITIVE = "additive"
    SUBTRACTIVE = "subtractive"


# Fixed per metric; not part of user configuration.
BUFFER_DIRECTIONS: Mapping[str, BufferDirection] = {
    "duration": BufferDirection.ADDITIVE,
    "rerenders": BufferDirection.ADDITIVE,
    "heap_growth": BufferDirection.ADDITIVE,
    "web_vitals": BufferDirection.ADDITIVE,
    "fps": BufferDirection.SUBTRACTIVE,
    "audit": BufferDirection.SUBTRACTIVE,
}


def effective_boundary(metric: str, threshold: float, buffer_percent: float, round_result: bool = False) -> float:
    direction = BUFFER_DIRECTIONS.get(metric)
    if direction is None:
        raise ConfigurationError(f"unknown metric family '{metric}'")
    if direction is BufferDirection.SUBTRACTIVE:
        return calculate_effective_min_threshold(threshold, buffer_percent, round_result)
    return calculate_effective_threshold(threshold, buffer_percent, round_result)


def _field(mapping: Mapping[str, Any], name: str, *aliases: str) -> Any:
    for key in (name, _camel(name), *aliases):
        if key in mapping:
            return mapping[key]
    return None


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _number(value: Any, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{label} must be a number, got {value!r}")
    return float(value)


def _mapping(value: Any, label: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{label} must be a mapping, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class PercentileThresholds:
    """Resolved avg/p50/p95/p99 boundaries. ``0`` disables a level."""

    avg: float = 0.0
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0

    def has_percentiles(self) -> bool:
        return any(getattr(self, level) > 0 for level in PERCENTILE_LEVELS)


@dataclass(frozen=True)
class SubjectThresholds:
    duration: PercentileThresholds
    rerenders: float


@dataclass(frozen=True)
class WebVitalsThresholds:
    lcp: float = 0.0
    inp: float = 0.0
    cls: float = 0.0
    ttfb: float = 0.0
    fcp: float = 0.0


@dataclass(frozen=True)
class AuditThresholds:
    performance: float = 0.0
    accessibility: float = 0.0
    best_practices: float = 0.0
    seo: float = 0.0
    pwa: float = 0.0


@dataclass(frozen=True)
class ResolvedThresholds:
    subjects: Dict[str, SubjectThresholds] = field(default_factory=dict)
    fps: PercentileThresholds = PercentileThresholds(avg=DEFAULT_FPS_THRESHOLD)
    heap_growth: float = DEFAULT_HEAP_GROWTH_THRESHOLD
    web_vitals: WebVitalsThresholds = WebVitalsThresholds()
    audit: AuditThresholds = AuditThresholds()

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ThresholdTier:
    """One tier of the budget, as written by the user."""

    subjects: Dict[str, Mapping[str, Any]] = field(default_factory=dict)
    fps: Optional[ThresholdInput] = None
    heap_growth: Optional[float] = None
    web_vitals: Dict[str, float] = field(default_factory=dict)
    audit: Dict[str, float] = field(default_factory=dict)
    declares_web_vitals: bool = False
    declares_audit: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]], label: str) -> "ThresholdTier":
        data = _mapping(data, label)
        subjects = _mapping(_field(data, "subjects", "profiler", "components"), f"{label}.subjects")
        for subject, entry in subjects.items():
            _mapping(entry, f"{label}.subjects[{subject!r}]")
        memory = _mapping(_field(data, "memory"), f"{label}.memory")
        heap_growth = _field(memory, "heap_growth")
        raw_vitals = _field(data, "web_vitals")
        raw_audit = _field(data, "audit", "lighthouse")
        return cls(
            subjects={str(key): value for key, value in subjects.items()},
            fps=_field(data, "fps"),
            heap_growth=None if heap_growth is None else _number(heap_growth, f"{label}.memory.heap_growth"),
            web_vitals=_scores(raw_vitals, f"{label}.web_vitals", WebVitalsThresholds),
            audit=_scores(raw_audit, f"{label}.audit", AuditThresholds),
            declares_web_vitals=bool(raw_vitals),
            declares_audit=bool(raw_audit),
        )


def _scores(raw: Any, label: str, target: type) -> Dict[str, float]:
    allowed = set(target.__dataclass_fields__)
    values: Dict[str, float] = {}
    for key, value in _mapping(raw, label).items():
        name = _snake(str(key))
        if name not in allowed:
            raise ConfigurationError(f"{label} has unknown key '{key}' (expected one of {sorted(allowed)})")
        if value is not None:
            values[name] = _number(value, f"{label}.{key}")
    return values


def _snake(name: str) -> str:
    out = []
    for char in name.replace("-", "_"):
        if char.isupper():
            out.append("_" + char.lower())
        else:
            out.append(char)
    return "".join(out)


@dataclass(frozen=True)
class ThresholdSpec:
    """Two-tier budget: ``base`` always applies, ``ci`` overrides it in CI."""

    base: ThresholdTier
    ci: Optional[ThresholdTier] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ThresholdSpec":
        data = _mapping(data, "thresholds")
        if "base" not in data:
            raise ConfigurationError("thresholds must define a 'base' tier")
        ci_raw = _field(data, "ci", "override")
        return cls(
            base=ThresholdTier.from_mapping(data["base"], "thresholds.base"),
            ci=None if ci_raw is None else ThresholdTier.from_mapping(ci_raw, "thresholds.ci"),
        )

    @property
    def override(self) -> ThresholdTier:
        return self.ci or ThresholdTier()

    def tracks_fps(self) -> bool:
        return self.base.fps is not None or self.override.fps is not None

    def tracks_memory(self) -> bool:
        return self.base.heap_growth is not None or self.override.heap_growth is not None

    def tracks_web_vitals(self) -> bool:
        return self.base.declares_web_vitals or self.override.declares_web_vitals

    def runs_audit(self) -> bool:
        return self.base.declares_audit or self.override.declares_audit


def _normalize_percentiles(value: Optional[ThresholdInput], label: str) -> Dict[str, float]:
    if value is None:
        return {}
    if isinstance(value, Mapping):
        result: Dict[str, float] = {}
        for key, item in value.items():
            if key not in ("avg", *PERCENTILE_LEVELS):
                raise ConfigurationError(f"{label} has unknown key '{key}'")
            if item is not None:
                result[key] = _number(item, f"{label}.{key}")
        return result
    return {"avg": _number(value, label)}


def resolve_percentile_thresholds(
    base: Optional[ThresholdInput],
    override: Optional[ThresholdInput],
    is_ci: bool,
    default_avg: float = 0.0,
    label: str = "threshold",
) -> PercentileThresholds:
    merged = _normalize_percentiles(base, label)
    if is_ci:
        merged = {**merged, **_normalize_percentiles(override, label)}
    return PercentileThresholds(
        avg=merged.get("avg", default_avg),
        p50=merged.get("p50", 0.0),
        p95=merged.get("p95", 0.0),
        p99=merged.get("p99", 0.0),
    )


def resolve_subject_thresholds(
    subject: str,
    base: Mapping[str, Any],
    override: Optional[Mapping[str, Any]],
    is_ci: bool,
) -> SubjectThresholds:
    label = f"subjects[{subject!r}]"
    if _field(base, "duration") is None or _field(base, "rerenders") is None:
        raise ConfigurationError(f"{label} in the base tier needs both 'duration' and 'rerenders'")
    override = override or {}
    rerenders = _number(_field(base, "rerenders"), f"{label}.rerenders")
    override_rerenders = _field(override, "rerenders")
    if is_ci and override_rerenders is not None:
        rerenders = _number(override_rerenders, f"{label}.rerenders")
    return SubjectThresholds(
        duration=resolve_percentile_thresholds(
            _field(base, "duration"),
            _field(override, "duration"),
            is_ci,
            0.0,
            f"{label}.duration",
        ),
        rerenders=rerenders,
    )


def resolve_subjects(spec: ThresholdSpec, is_ci: bool) -> Dict[str, SubjectThresholds]:
    base = spec.base.subjects
    override = spec.override.subjects
    resolved: Dict[str, SubjectThresholds] = {}
    for subject in dict.fromkeys([*base, *override]):
        if subject not in base:
            # Override-only subjects have no base entry and are dropped.
            continue
        resolved[subject] = resolve_subject_thresholds(subject, base[subject], override.get(subject), is_ci)
    return resolved


def _merge_scores(base: Dict[str, float], override: Dict[str, float], is_ci: bool) -> Dict[str, float]:
    return {**base, **override} if is_ci else dict(base)


def resolve_thresholds(spec: ThresholdSpec, is_ci: bool) -> ResolvedThresholds:
    override = spec.override
    heap_growth = spec.base.heap_growth
    if is_ci and override.heap_growth is not None:
        heap_growth = override.heap_growth
    return ResolvedThresholds(
        subjects=resolve_subjects(spec, is_ci),
        fps=resolve_percentile_thresholds(spec.base.fps, override.fps, is_ci, DEFAULT_FPS_THRESHOLD, "fps"),
        heap_growth=DEFAULT_HEAP_GROWTH_THRESHOLD if heap_growth is None else heap_growth,
        web_vitals=WebVitalsThresholds(**_merge_scores(spec.base.web_vitals, override.web_vitals, is_ci)),
        audit=AuditThresholds(**_merge_scores(spec.base.audit, override.audit, is_ci)),
    )


def subject_threshold(subject: str, thresholds: ResolvedThresholds) -> SubjectThresholds:
    """Thresholds for ``subject``, falling back to the ``"*"`` entry."""
    explicit = thresholds.subjects.get(subject)
    if explicit is not None:
        return explicit
    fallback = thresholds.subjects.get(WILDCARD_SUBJECT)
    if fallback is not None:
        return fallback
    available = [key for key in thresholds.subjects if key != WILDCARD_SUBJECT]
    if available:
        suggestion = "Available subject thresholds: " + ", ".join(f'"{key}"' for key in available)
    else:
        suggestion = "No subject thresholds are defined."
    raise ConfigurationError(
        f'No threshold defined for subject "{subject}". '
        f'Add thresholds.base.subjects["{subject}"] or a default under '
        f'thresholds.base.subjects["{WILDCARD_SUBJECT}"]. {suggestion}'
    )


@dataclass(frozen=True)
class WebVitalsBuffers:
    lcp: float = DEFAULT_BUFFER_PERCENT
    inp: float = DEFAULT_BUFFER_PERCENT
    cls: float = DEFAULT_BUFFER_PERCENT
    ttfb: float = DEFAULT_BUFFER_PERCENT
    fcp: float = DEFAULT_BUFFER_PERCENT


@dataclass(frozen=True)
class BufferConfig:
    duration: float = DEFAULT_BUFFER_PERCENT
    rerenders: float = DEFAULT_BUFFER_PERCENT
    fps: float = DEFAULT_BUFFER_PERCENT
    heap_growth: float = DEFAULT_BUFFER_PERCENT
    web_vitals: WebVitalsBuffers = WebVitalsBuffers()
    audit: float = DEFAULT_AUDIT_BUFFER_PERCENT

    def __post_init__(self) -> None:
        for name, value in self._percentages():
            if value < 0 or value > 100:
                raise ConfigurationError(f"buffer '{name}' must be between 0 and 100, got: {value}")

    def _percentages(self) -> Iterable[tuple]:
        for name in ("duration", "rerenders", "fps", "heap_growth", "audit"):
            yield name, getattr(self, name)
        for name, value in asdict(self.web_vitals).items():
            yield f"web_vitals.{name}", value

    def to_dict(self) -> dict:
        return asdict(self)


def resolve_buffers(data: Optional[Mapping[str, Any]]) -> BufferConfig:
    data = _mapping(data, "buffers")
    values: Dict[str, Any] = {}
    for name in ("duration", "rerenders", "fps", "heap_growth"):
        raw = _field(data, name)
        if raw is not None:
            values[name] = _number(raw, f"buffers.{name}")
    audit = _field(data, "audit", "lighthouse")
    if audit is not None:
        values["audit"] = _number(audit, "buffers.audit")
    vitals = _scores(_field(data, "web_vitals"), "buffers.web_vitals", WebVitalsBuffers)
    if vitals:
        values["web_vitals"] = WebVitalsBuffers(**vitals)
    return BufferConfig(**values)
