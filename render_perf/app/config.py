"""Test configuration: defaults, parsing, YAML loading and resolution."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

import yaml

from ..domain.errors import ConfigurationError
from ..domain.thresholds import (
    DEFAULT_FPS_THRESHOLD,
    DEFAULT_HEAP_GROWTH_THRESHOLD,
    BufferConfig,
    ResolvedThresholds,
    ThresholdSpec,
    calculate_effective_threshold,
    resolve_buffers,
    resolve_thresholds,
)
from ..ports.audit import AUDIT_CATEGORIES, FORM_FACTORS
from ..probes.network_throttle import (
    NetworkConditions,
    NetworkSetting,
    format_network_conditions,
    preset_name,
    resolve_network_conditions,
)

LOG = logging.getLogger("render_perf.config")


@dataclass(frozen=True)
class StoreTimings:
    stability_period_ms: int = 1000
    check_interval_ms: int = 100
    max_wait_ms: int = 5000
    initialization_timeout_ms: int = 10000


@dataclass(frozen=True)
class PerformanceDefaults:
    store: StoreTimings = StoreTimings()
    buffers: BufferConfig = BufferConfig()
    throttle_rate: float = 1.0
    fps_threshold: float = DEFAULT_FPS_THRESHOLD
    heap_growth_threshold: float = DEFAULT_HEAP_GROWTH_THRESHOLD
    iterations: int = 1
    audit_categories: Tuple[str, ...] = ("performance", "accessibility", "best-practices", "seo")
    audit_form_factor: str = "mobile"


DEFAULTS = PerformanceDefaults()


def detect_ci(env: Optional[Mapping[str, str]] = None) -> bool:
    source = os.environ if env is None else env
    return bool(source.get("CI"))


def sanitize_title(title: str) -> str:
    slug = re.sub(r"\s+", "-", title.lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


def generate_artifact_name(title: str) -> str:
    return f"{sanitize_title(title)}-performance-data"


def _get(data: Mapping[str, Any], name: str, *aliases: str) -> Any:
    head, *rest = name.split("_")
    camel = head + "".join(part.title() for part in rest)
    for key in (name, camel, *aliases):
        if key in data:
            return data[key]
    return None


@dataclass(frozen=True)
class AuditSettings:
    enabled: bool = False
    categories: Tuple[str, ...] = DEFAULTS.audit_categories
    form_factor: str = DEFAULTS.audit_form_factor
    skip_audits: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        unknown = [category for category in self.categories if category not in AUDIT_CATEGORIES]
        if unknown:
            raise ConfigurationError(f"unknown audit categories: {', '.join(unknown)}")
        if self.form_factor not in FORM_FACTORS:
            raise ConfigurationError(f"audit form_factor must be one of {FORM_FACTORS}, got '{self.form_factor}'")


@dataclass(frozen=True)
class TraceExportSettings:
    enabled: bool = False
    output_path: Optional[str] = None

    @classmethod
    def resolve(cls, value: Union[bool, str, None]) -> "TraceExportSettings":
        if value is None or value is False:
            return cls()
        if value is True:
            return cls(enabled=True)
        if isinstance(value, str) and value.strip():
            return cls(enabled=True, output_path=value)
        raise ConfigurationError(f"export_trace must be a boolean or a path, got {value!r}")


@dataclass(frozen=True)
class TestConfig:
    """Per-test settings as written by the user."""

    __test__ = False

    thresholds: ThresholdSpec
    throttle_rate: Optional[float] = None
    warmup: Optional[bool] = None
    buffers: Mapping[str, Any] = field(default_factory=dict)
    name: Optional[str] = None
    iterations: Optional[int] = None
    network_throttling: Optional[NetworkSetting] = None
    export_trace: Union[bool, str, None] = None
    audit: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TestConfig":
        if not isinstance(data, Mapping):
            raise ConfigurationError("test configuration must be a mapping")
        thresholds = _get(data, "thresholds")
        if thresholds is None:
            raise ConfigurationError("test configuration must define 'thresholds'")
        network = _get(data, "network_throttling", "network")
        if isinstance(network, Mapping):
            network = resolve_network_conditions(network)
        return cls(
            thresholds=ThresholdSpec.from_mapping(thresholds),
            throttle_rate=_get(data, "throttle_rate"),
            warmup=_get(data, "warmup"),
            buffers=_get(data, "buffers") or {},
            name=_get(data, "name"),
            iterations=_get(data, "iterations"),
            network_throttling=network,
            export_trace=_get(data, "export_trace"),
            audit=_get(data, "audit", "lighthouse") or {},
        )


def load_test_config(path: Union[str, Path]) -> TestConfig:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigurationError(f"unable to read test configuration {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc
    if payload is None:
        raise ConfigurationError(f"test configuration {path} is empty")
    return TestConfig.from_mapping(payload)


@dataclass(frozen=True)
class ResolvedConfig:
    """Immutable per-test configuration handed to the runner and the workload."""

    name: str
    title: str
    throttle_rate: float
    warmup: bool
    iterations: int
    thresholds: ResolvedThresholds
    buffers: BufferConfig
    track_fps: bool
    track_memory: bool
    track_web_vitals: bool
    network: Optional[NetworkConditions]
    export_trace: TraceExportSettings
    audit: AuditSettings
    is_ci: bool
    store: StoreTimings = DEFAULTS.store

    @property
    def environment(self) -> str:
        return "ci" if self.is_ci else "local"

    @property
    def has_subject_thresholds(self) -> bool:
        return bool(self.thresholds.subjects)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _iter_threshold_values(thresholds: ResolvedThresholds) -> Iterator[Tuple[str, float]]:
    for subject, entry in thresholds.subjects.items():
        for level, value in asdict(entry.duration).items():
            yield f"subjects[{subject!r}].duration.{level}", value
        yield f"subjects[{subject!r}].rerenders", entry.rerenders
    for level, value in asdict(thresholds.fps).items():
        yield f"fps.{level}", value
    yield "memory.heap_growth", thresholds.heap_growth
    for name, value in asdict(thresholds.web_vitals).items():
        yield f"web_vitals.{name}", value
    for name, value in asdict(thresholds.audit).items():
        yield f"audit.{name}", value


def _validate_thresholds(thresholds: ResolvedThresholds) -> None:
    for label, value in _iter_threshold_values(thresholds):
        try:
            calculate_effective_threshold(value, 0)
        except ConfigurationError as exc:
            raise ConfigurationError(f"thresholds.{label}: {exc}") from None


def _resolve_iterations(value: Optional[int]) -> int:
    iterations = DEFAULTS.iterations if value is None else value
    if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations < 1:
        raise ConfigurationError(f"iterations must be >= 1, got {iterations}")
    return iterations


def _resolve_throttle_rate(value: Optional[float]) -> float:
    rate = DEFAULTS.throttle_rate if value is None else value
    if isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate < 1:
        raise ConfigurationError(f"throttle_rate must be a number >= 1 (1 disables throttling), got {rate}")
    return float(rate)


def _resolve_audit(spec: ThresholdSpec, settings: Mapping[str, Any]) -> AuditSettings:
    categories = _get(settings, "categories")
    form_factor = _get(settings, "form_factor")
    skip = _get(settings, "skip_audits")
    return AuditSettings(
        enabled=spec.runs_audit(),
        categories=tuple(categories) if categories else DEFAULTS.audit_categories,
        form_factor=form_factor or DEFAULTS.audit_form_factor,
        skip_audits=tuple(skip or ()),
    )


def resolve_config(test_config: TestConfig, title: str, is_ci: Optional[bool] = None) -> ResolvedConfig:
    """Resolves ``test_config`` for one test; every malformed value fails here."""
    ci = detect_ci() if is_ci is None else is_ci
    spec = test_config.thresholds
    thresholds = resolve_thresholds(spec, ci)
    _validate_thresholds(thresholds)
    network = None
    if test_config.network_throttling is not None:
        network = resolve_network_conditions(test_config.network_throttling)
    resolved = ResolvedConfig(
        name=test_config.name or generate_artifact_name(title),
        title=title,
        throttle_rate=_resolve_throttle_rate(test_config.throttle_rate),
        warmup=ci if test_config.warmup is None else bool(test_config.warmup),
        iterations=_resolve_iterations(test_config.iterations),
        thresholds=thresholds,
        buffers=resolve_buffers(test_config.buffers),
        track_fps=spec.tracks_fps(),
        track_memory=spec.tracks_memory(),
        track_web_vitals=spec.tracks_web_vitals(),
        network=network,
        export_trace=TraceExportSettings.resolve(test_config.export_trace),
        audit=_resolve_audit(spec, test_config.audit),
        is_ci=ci,
    )
    LOG.debug("resolved configuration for %r: %s", title, describe_config(resolved))
    return resolved


def _flag(enabled: bool) -> str:
    return "enabled" if enabled else "disabled"


def describe_config(resolved: ResolvedConfig) -> str:
    buffers = resolved.buffers
    buffer_parts = [f"duration={buffers.duration:g}%", f"rerenders={buffers.rerenders:g}%"]
    if resolved.track_fps:
        buffer_parts.append(f"fps={buffers.fps:g}%")
    if resolved.track_memory:
        buffer_parts.append(f"heap_growth={buffers.heap_growth:g}%")
    if resolved.track_web_vitals:
        buffer_parts.append(f"web_vitals.lcp={buffers.web_vitals.lcp:g}%")
    if resolved.audit.enabled:
        buffer_parts.append(f"audit={buffers.audit:g}%")

    if resolved.network is None:
        network = "disabled"
    else:
        network = preset_name(resolved.network) or "custom"
    if resolved.iterations > 1:
        iterations = f"{resolved.iterations}x" + (" (first is warmup)" if resolved.warmup else "")
    else:
        iterations = "single"
    throttle = f"{resolved.throttle_rate:g}x" if resolved.throttle_rate > 1 else "disabled"

    return (
        f"throttle={throttle}, warmup={_flag(resolved.warmup)}, fps={_flag(resolved.track_fps)}, "
        f"memory={_flag(resolved.track_memory)}, web_vitals={_flag(resolved.track_web_vitals)}, "
        f"audit={_flag(resolved.audit.enabled)}, network={network}, "
        f"trace={_flag(resolved.export_trace.enabled)}, iterations={iterations}, "
        f"buffers={', '.join(buffer_parts)}"
    )


def describe_network(resolved: ResolvedConfig) -> str:
    return "disabled" if resolved.network is None else format_network_conditions(resolved.network)
