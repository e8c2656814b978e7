"""Pure domain model: thresholds, statistics, measurements and errors."""

from .errors import (
    CapabilityUnsupportedError,
    ConfigurationError,
    ProbeTimeoutError,
    StorePhase,
    StoreStateError,
    ThresholdAssertionError,
    ThresholdViolation,
)
from .measurements import (
    AuditScores,
    CustomMetrics,
    FrameMetrics,
    HeapMetrics,
    HeapSnapshot,
    IterationMetrics,
    IterationResult,
    PerformanceMetrics,
    StoreSnapshot,
    SubjectSample,
    WebVitals,
)
from .statistics import aggregate_iteration_results, calculate_percentile, calculate_standard_deviation
from .thresholds import (
    WILDCARD_SUBJECT,
    BufferConfig,
    ResolvedThresholds,
    ThresholdSpec,
    calculate_effective_min_threshold,
    calculate_effective_threshold,
    resolve_buffers,
    resolve_thresholds,
    subject_threshold,
)

__all__ = [
    "AuditScores",
    "BufferConfig",
    "CapabilityUnsupportedError",
    "ConfigurationError",
    "CustomMetrics",
    "FrameMetrics",
    "HeapMetrics",
    "HeapSnapshot",
    "IterationMetrics",
    "IterationResult",
    "PerformanceMetrics",
    "ProbeTimeoutError",
    "ResolvedThresholds",
    "StorePhase",
    "StoreSnapshot",
    "StoreStateError",
    "SubjectSample",
    "ThresholdAssertionError",
    "ThresholdSpec",
    "ThresholdViolation",
    "WILDCARD_SUBJECT",
    "WebVitals",
    "aggregate_iteration_results",
    "calculate_effective_min_threshold",
    "calculate_effective_threshold",
    "calculate_percentile",
    "calculate_standard_deviation",
    "resolve_buffers",
    "resolve_thresholds",
    "subject_threshold",
]
