"""Probes: debug-session backed measurement and emulation capabilities."""

from .base import Probe, ProbeHandle, ProbeKind, ResettableProbeHandle
from .coordination import CoordinationTable
from .cpu_throttle import CpuThrottleConfig, CpuThrottleHandle, CpuThrottleProbe
from .frame_sampler import FrameSamplerHandle, FrameSamplerProbe
from .heap_sampler import HeapSamplerHandle, HeapSamplerProbe
from .network_throttle import (
    NETWORK_PRESETS,
    NetworkConditions,
    NetworkThrottleHandle,
    NetworkThrottleProbe,
    format_network_conditions,
    resolve_network_conditions,
)
from .registry import ProbeRegistry, default_registry
from .trace_capture import TraceCaptureHandle, TraceCaptureProbe, TraceCaptureResult

__all__ = [
    "NETWORK_PRESETS",
    "CoordinationTable",
    "CpuThrottleConfig",
    "CpuThrottleHandle",
    "CpuThrottleProbe",
    "FrameSamplerHandle",
    "FrameSamplerProbe",
    "HeapSamplerHandle",
    "HeapSamplerProbe",
    "NetworkConditions",
    "NetworkThrottleHandle",
    "NetworkThrottleProbe",
    "Probe",
    "ProbeHandle",
    "ProbeKind",
    "ProbeRegistry",
    "ResettableProbeHandle",
    "TraceCaptureHandle",
    "TraceCaptureProbe",
    "TraceCaptureResult",
    "default_registry",
    "format_network_conditions",
    "resolve_network_conditions",
]
