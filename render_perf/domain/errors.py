"""Exception taxonomy for performance test runs."""
from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, List, Optional


class ConfigurationError(ValueError):
    """Raised when thresholds, buffers or run settings are malformed."""


class CapabilityUnsupportedError(RuntimeError):
    """Raised by a session when the browser cannot serve a debug-protocol command."""


class ProbeTimeoutError(TimeoutError):
    """Raised when a probe does not receive its completion signal in time."""


class StorePhase(str, Enum):
    INITIALIZATION = "initialization"
    STABILIZATION = "stabilization"
    VALIDATION = "validation"


class StoreStateError(RuntimeError):
    """Raised when the in-page render store is missing, empty or never settles."""

    def __init__(
        self,
        message: str,
        phase: StorePhase,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.phase = phase
        self.context = dict(context or {})

    def detailed(self) -> str:
        text = f"{type(self).__name__} [{self.phase.value}]: {self}"
        if self.context:
            text += f"\nContext: {json.dumps(self.context, indent=2, sort_keys=True, default=str)}"
        return text


class ThresholdViolation(AssertionError):
    """A single measured value outside its effective boundary."""

    def __init__(self, metric: str, actual: float, effective: float, message: str) -> None:
        super().__init__(message)
        self.metric = metric
        self.actual = actual
        self.effective = effective


class ThresholdAssertionError(AssertionError):
    """Every threshold violation collected for one run."""

    def __init__(self, violations: List[ThresholdViolation]) -> None:
        if not violations:
            raise ValueError("violations cannot be empty")
        self.violations = list(violations)
        lines = [str(violation) for violation in self.violations]
        super().__init__(
            f"{len(lines)} performance threshold(s) violated:\n" + "\n".join(f"  - {line}" for line in lines)
        )

    @property
    def first(self) -> ThresholdViolation:
        return self.violations[0]
