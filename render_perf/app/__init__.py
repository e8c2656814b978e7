"""Configuration, in-page operations, assertions and the test runner."""

from .assertions import assert_thresholds, collect_violations
from .config import (
    DEFAULTS,
    PerformanceDefaults,
    ResolvedConfig,
    TestConfig,
    describe_config,
    detect_ci,
    load_test_config,
    resolve_config,
)
from .runner import PerformanceController, PerformanceTestRunner, RunnerState, WorkloadContext

__all__ = [
    "DEFAULTS",
    "PerformanceController",
    "PerformanceDefaults",
    "PerformanceTestRunner",
    "ResolvedConfig",
    "RunnerState",
    "TestConfig",
    "WorkloadContext",
    "assert_thresholds",
    "collect_violations",
    "describe_config",
    "detect_ci",
    "load_test_config",
    "resolve_config",
]
