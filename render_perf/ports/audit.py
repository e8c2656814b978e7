from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..domain.measurements import AuditScores

AUDIT_CATEGORIES = ("performance", "accessibility", "best-practices", "seo", "pwa")
FORM_FACTORS = ("mobile", "desktop")


class AuditExecutionError(RuntimeError):
    """Raised when a page audit cannot be executed or its report cannot be read."""


@dataclass(frozen=True)
class AuditThrottling:
    cpu_slowdown_multiplier: float = 1.0
    request_latency_ms: float = 0.0
    rtt_ms: float = 0.0
    download_throughput_kbps: float = 0.0
    upload_throughput_kbps: float = 0.0


@dataclass(frozen=True)
class AuditRequest:
    url: str
    categories: Tuple[str, ...]
    form_factor: str = "mobile"
    skip_audits: List[str] = field(default_factory=list)
    throttling: AuditThrottling = AuditThrottling()

    def __post_init__(self) -> None:
        if not self.url.strip():
            raise ValueError("url cannot be empty")
        if not self.categories:
            raise ValueError("at least one audit category is required")
        unknown = [category for category in self.categories if category not in AUDIT_CATEGORIES]
        if unknown:
            raise ValueError(f"unknown audit categories: {', '.join(unknown)}")
        if self.form_factor not in FORM_FACTORS:
            raise ValueError("form_factor must be 'mobile' or 'desktop'")


class AuditRunnerPort(ABC):
    """Port for page-audit tools that score a URL per category."""

    @abstractmethod
    async def run(self, request: AuditRequest) -> Optional[AuditScores]:
        """Audits ``request.url`` and returns 0-100 scores, or None when nothing ran."""
