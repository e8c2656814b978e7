from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional


class ArtifactSink(ABC):
    """Port for persisting the per-test JSON artifact."""

    @abstractmethod
    def attach(self, name: str, payload: Mapping[str, Any]) -> Optional[str]:
        """Stores ``payload`` under ``name`` and returns where it went, if anywhere."""
