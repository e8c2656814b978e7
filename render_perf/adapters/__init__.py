"""Concrete collaborators. ``playwright_page`` requires the ``playwright`` package."""

from .file_artifacts import FileArtifactSink
from .lighthouse import LighthouseRunner

__all__ = ["FileArtifactSink", "LighthouseRunner"]
