"""Wires the runner to its default collaborators."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from .adapters.file_artifacts import FileArtifactSink
from .app.config import ResolvedConfig
from .app.runner import DEFAULT_OUTPUT_DIR, PerformanceTestRunner
from .ports.artifacts import ArtifactSink
from .ports.audit import AuditRunnerPort
from .ports.session import Page
from .probes.registry import ProbeRegistry, default_registry


def create_performance_test(
    page: Page,
    config: ResolvedConfig,
    *,
    registry: Optional[ProbeRegistry] = None,
    audit_runner: Optional[AuditRunnerPort] = None,
    artifact_sink: Optional[ArtifactSink] = None,
    output_dir: Path = DEFAULT_OUTPUT_DIR,
) -> PerformanceTestRunner:
    """Runner with the built-in probes and JSON artifacts under ``output_dir`` unless told otherwise."""
    output_dir = Path(output_dir)
    return PerformanceTestRunner(
        page,
        config,
        registry if registry is not None else default_registry(),
        artifact_sink=artifact_sink if artifact_sink is not None else FileArtifactSink(output_dir),
        audit_runner=audit_runner,
        output_dir=output_dir,
    )
