"""Collaborator capabilities consumed by the engine."""

from .artifacts import ArtifactSink
from .audit import AuditExecutionError, AuditRequest, AuditRunnerPort, AuditThrottling
from .session import Page, Session, SessionResult, SessionUnsupported, is_unsupported

__all__ = [
    "ArtifactSink",
    "AuditExecutionError",
    "AuditRequest",
    "AuditRunnerPort",
    "AuditThrottling",
    "Page",
    "Session",
    "SessionResult",
    "SessionUnsupported",
    "is_unsupported",
]
