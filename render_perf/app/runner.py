"""One performance test, end to end.

``PerformanceTestRunner`` drives a user workload through setup, optional
warmup, one or more measured iterations, an optional page audit, assertion,
artifact attachment and cleanup. Cleanup always runs; at most one error leaves
``execute`` and a workload failure wins over a threshold failure.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..domain.measurements import (
    AuditScores,
    CustomMetrics,
    FrameMetrics,
    HeapMetrics,
    IterationResult,
    PerformanceMetrics,
    StoreSnapshot,
    WebVitals,
)
from ..domain.statistics import aggregate_iteration_results
from ..ports.artifacts import ArtifactSink
from ..ports.audit import AuditRunnerPort
from ..ports.session import Page
from ..probes.base import ProbeHandle, ProbeKind
from ..probes.coordination import CoordinationTable
from ..probes.registry import ProbeRegistry
from ..probes.trace_capture import TraceCaptureHandle
from . import store, web_vitals
from .artifacts import build_artifact
from .assertions import assert_thresholds
from .audit import build_audit_request
from .config import ResolvedConfig, describe_config
from .custom_metrics import CustomMetricsStore
from .trace_export import export_trace

LOG = logging.getLogger("render_perf.runner")

DEFAULT_OUTPUT_DIR = Path("test-results")

WINDOW_PROBES = (ProbeKind.FRAME_SAMPLER, ProbeKind.HEAP_SAMPLER)
THROTTLE_PROBES = (ProbeKind.CPU_THROTTLE, ProbeKind.NETWORK_THROTTLE)


class RunnerState(str, Enum):
    IDLE = "idle"
    SETUP = "setup"
    WARMUP = "warmup"
    ITERATING = "iterating"
    AUDITING = "auditing"
    ASSERTING = "asserting"
    ATTACHING = "attaching"
    CLEANUP = "cleanup"
    DONE = "done"


class PerformanceController:
    """Render-store and measurement controls handed to the workload."""

    def __init__(
        self,
        page: Page,
        config: ResolvedConfig,
        coordination: CoordinationTable,
        custom_metrics: CustomMetricsStore,
    ) -> None:
        self.page = page
        self.config = config
        self.coordination = coordination
        self.custom_metrics = custom_metrics

    async def wait_for_initialization(self, timeout_ms: Optional[int] = None) -> None:
        timings = self.config.store
        await store.wait_for_initialization(
            self.page,
            timings.initialization_timeout_ms if timeout_ms is None else timeout_ms,
            timings.check_interval_ms,
        )

    async def wait_until_stable(self, require_samples: bool = True, **overrides: int) -> None:
        timings = self.config.store
        await store.wait_until_stable(
            self.page,
            stability_period_ms=overrides.get("stability_period_ms", timings.stability_period_ms),
            check_interval_ms=overrides.get("check_interval_ms", timings.check_interval_ms),
            max_wait_ms=overrides.get("max_wait_ms", timings.max_wait_ms),
            require_samples=require_samples,
        )

    async def init(self) -> None:
        await self.wait_for_initialization()
        await self.wait_until_stable()

    async def reset(self) -> None:
        """Starts a fresh measurement window without navigating."""
        restarted = await self.coordination.reset_all_active()
        if restarted:
            LOG.debug("reset probes: %s", ", ".join(restarted))
        self.custom_metrics.reset()
        await store.reset_store(self.page)

    def mark(self, name: str) -> float:
        return self.custom_metrics.mark(name)

    def measure(self, name: str, start_mark: str, end_mark: str) -> float:
        return self.custom_metrics.measure(name, start_mark, end_mark)


@dataclass(frozen=True)
class WorkloadContext:
    page: Page
    config: ResolvedConfig
    performance: PerformanceController


Workload = Callable[[WorkloadContext], Awaitable[None]]


class PerformanceTestRunner:
    def __init__(
        self,
        page: Page,
        config: ResolvedConfig,
        registry: ProbeRegistry,
        *,
        artifact_sink: ArtifactSink,
        audit_runner: Optional[AuditRunnerPort] = None,
        output_dir: Path = DEFAULT_OUTPUT_DIR,
    ) -> None:
        self.page = page
        self.config = config
        self.registry = registry
        self.audit_runner = audit_runner
        self.output_dir = Path(output_dir)
        self.artifact_sink = artifact_sink
        self.coordination = CoordinationTable()
        self.custom_metrics = CustomMetricsStore()
        self.context = WorkloadContext(
            page=page,
            config=config,
            performance=PerformanceController(page, config, self.coordination, self.custom_metrics),
        )
        self.metrics: Optional[PerformanceMetrics] = None
        self.artifact_location: Optional[str] = None
        self.trace_path: Optional[Path] = None
        self._state = RunnerState.IDLE
        self._handles: Dict[str, ProbeHandle] = {}
        self._trace: Optional[TraceCaptureHandle] = None
        self._workload_error: Optional[Exception] = None

    @property
    def state(self) -> RunnerState:
        return self._state

    def _transition(self, state: RunnerState) -> None:
        LOG.debug("%s: %s -> %s", self.config.title, self._state.value, state.value)
        self._state = state

    async def execute(self, workload: Workload) -> PerformanceMetrics:
        if self._state is not RunnerState.IDLE:
            raise RuntimeError("PerformanceTestRunner handles exactly one test; create a new runner")
        LOG.info("%s: %s", self.config.title, describe_config(self.config))
        try:
            self._transition(RunnerState.SETUP)
            await self._setup()
            if self.config.iterations > 1:
                await self._run_iterations(workload)
            else:
                warmup_result = await self._run_warmup(workload) if self.config.warmup else None
                await self._run_single(workload, warmup_result)
            await self._run_audit()
            self._assert_and_attach()
        finally:
            self._transition(RunnerState.CLEANUP)
            await self._cleanup()
            self._transition(RunnerState.DONE)
        return self.metrics

    # setup and teardown

    async def _start_probe(self, kind: ProbeKind, config: Any = None) -> Optional[ProbeHandle]:
        handle = await self.registry.start_feature(kind, self.page, config)
        if handle is not None:
            self._handles[kind.value] = handle
        return handle

    async def _setup(self) -> None:
        if self.config.throttle_rate > 1:
            await self._start_probe(ProbeKind.CPU_THROTTLE, self.config.throttle_rate)
        if self.config.network is not None:
            await self._start_probe(ProbeKind.NETWORK_THROTTLE, self.config.network)
        if self.config.track_web_vitals:
            await web_vitals.inject_observer(self.page)
        if self.config.export_trace.enabled:
            self._trace = await self.registry.start_feature(ProbeKind.TRACE_CAPTURE, self.page)

    async def _cleanup(self) -> None:
        if self._trace is not None and self._trace.active:
            try:
                result = await self._trace.stop()
                if result is not None:
                    self.trace_path = export_trace(result, self.config.title, self.config.export_trace, self.output_dir)
            except Exception as exc:
                LOG.warning("Failed to export trace: %s", exc)
        self._trace = None
        await self.registry.stop_all(self._handles)
        self.coordination.clear()

    async def _reapply_throttling(self) -> None:
        for kind in THROTTLE_PROBES:
            handle = self._handles.get(kind.value)
            if handle is None or not handle.active:
                continue
            if not await handle.reapply():
                LOG.warning("Failed to re-apply %s after navigation", kind.value)

    async def _navigate_blank(self) -> None:
        try:
            await self.page.goto_blank()
        except Exception as exc:
            LOG.debug("navigation to blank page failed: %s", exc)
        await self._reapply_throttling()

    # measurement windows

    async def _start_window_probes(self) -> None:
        if self.config.track_fps:
            handle = await self._start_probe(ProbeKind.FRAME_SAMPLER)
            if handle is not None:
                self.coordination.set_handle(ProbeKind.FRAME_SAMPLER.value, handle)
        if self.config.track_memory:
            handle = await self._start_probe(ProbeKind.HEAP_SAMPLER)
            if handle is not None:
                self.coordination.set_handle(ProbeKind.HEAP_SAMPLER.value, handle)

    async def _stop_window_probes(self) -> Tuple[Optional[FrameMetrics], Optional[HeapMetrics]]:
        results: Dict[ProbeKind, Any] = {}
        for kind in WINDOW_PROBES:
            self.coordination.set_handle(kind.value, None)
            handle = self._handles.pop(kind.value, None)
            results[kind] = None if handle is None else await handle.stop()
        return results[ProbeKind.FRAME_SAMPLER], results[ProbeKind.HEAP_SAMPLER]

    async def _run_window(
        self, workload: Workload
    ) -> Tuple[Optional[FrameMetrics], Optional[HeapMetrics], Optional[Exception]]:
        """Runs the workload once between fresh frame and heap probes."""
        error: Optional[Exception] = None
        try:
            await self._start_window_probes()
            await workload(self.context)
        except Exception as exc:
            error = exc
        finally:
            frames, heap = await self._stop_window_probes()
        return frames, heap, error

    async def _capture_store(self) -> StoreSnapshot:
        if not self.config.has_subject_thresholds:
            return StoreSnapshot.empty()
        return await store.capture_snapshot(self.page)

    async def _capture_web_vitals(self) -> Optional[WebVitals]:
        if not self.config.track_web_vitals:
            return None
        try:
            return await web_vitals.capture_web_vitals(self.page)
        except Exception as exc:
            LOG.warning("Failed to capture web vitals: %s", exc)
            return None

    def _capture_custom_metrics(self) -> Optional[CustomMetrics]:
        snapshot = self.custom_metrics.snapshot()
        return snapshot if snapshot.has_entries() else None

    # iteration modes

    async def _run_warmup(self, workload: Workload) -> Optional[IterationResult]:
        self._transition(RunnerState.WARMUP)
        frames, heap, error = await self._run_window(workload)
        result: Optional[IterationResult] = None
        if error is not None:
            LOG.warning("Warmup run failed (continuing with the measured run): %s", error)
        else:
            try:
                result = IterationResult.from_snapshot(await self._capture_store(), frames, heap)
            except Exception as exc:
                LOG.warning("Warmup capture failed (continuing with the measured run): %s", exc)
        self.custom_metrics.reset()
        await self._navigate_blank()
        return result

    async def _run_single(self, workload: Workload, warmup_result: Optional[IterationResult]) -> None:
        self._transition(RunnerState.ITERATING)
        frames, heap, error = await self._run_window(workload)
        self._workload_error = error
        try:
            snapshot = await self._capture_store()
            metrics = PerformanceMetrics(
                store=snapshot,
                frames=frames,
                heap=heap,
                web_vitals=await self._capture_web_vitals(),
                custom=self._capture_custom_metrics(),
            )
            if warmup_result is not None:
                measured = IterationResult.from_snapshot(snapshot, frames, heap)
                metrics.iterations = aggregate_iteration_results([warmup_result, measured], discard_first=True)
            self.metrics = metrics
        except Exception as exc:
            if self._workload_error is None:
                self._workload_error = exc
            else:
                LOG.warning("Failed to capture metrics after a workload failure: %s", exc)

    async def _run_iterations(self, workload: Workload) -> None:
        self._transition(RunnerState.ITERATING)
        total = self.config.iterations
        LOG.debug("Running %d iterations%s", total, " (first is warmup)" if self.config.warmup else "")
        results: List[IterationResult] = []
        for index in range(total):
            LOG.debug("Iteration %d/%d", index + 1, total)
            frames, heap, error = await self._run_window(workload)
            if error is None:
                try:
                    results.append(IterationResult.from_snapshot(await self._capture_store(), frames, heap))
                except Exception as exc:
                    error = exc
            if error is not None:
                LOG.error("Iteration %d failed: %s", index + 1, error)
                self._workload_error = error
                break
            if index < total - 1:
                await self._navigate_blank()
                if self.config.track_web_vitals:
                    try:
                        await web_vitals.reset_web_vitals(self.page)
                    except Exception as exc:
                        LOG.debug("web vitals reset failed: %s", exc)

        if not results:
            return
        aggregated = aggregate_iteration_results(results, discard_first=self.config.warmup)
        last = results[-1]
        frames = None
        if aggregated.fps is not None and last.frame_metrics is not None:
            frames = FrameMetrics(
                avg=aggregated.fps,
                frame_count=last.frame_metrics.frame_count,
                tracking_duration_ms=last.frame_metrics.tracking_duration_ms,
            )
        self.metrics = PerformanceMetrics(
            store=StoreSnapshot(
                sample_count=math.ceil(aggregated.rerenders),
                total_duration=aggregated.duration,
                subjects=dict(aggregated.subjects),
            ),
            frames=frames,
            heap=last.heap_metrics,
            web_vitals=await self._capture_web_vitals(),
            custom=self._capture_custom_metrics(),
            iterations=aggregated,
        )

    # audit, assertion, attachment

    async def _audit_once(self) -> Optional[AuditScores]:
        return await self.audit_runner.run(build_audit_request(self.page.url, self.config))

    async def _run_audit(self) -> None:
        if not self.config.audit.enabled:
            return
        if self.audit_runner is None:
            LOG.warning("Audit thresholds configured but no audit runner was provided; skipping audit")
            return
        if self.metrics is None:
            LOG.debug("no metrics captured; skipping audit")
            return
        self._transition(RunnerState.AUDITING)
        if self.config.warmup:
            try:
                await self._audit_once()
            except Exception as exc:
                LOG.warning("Warmup audit failed, continuing: %s", exc)
        try:
            scores = await self._audit_once()
        except Exception as exc:
            if self._workload_error is None:
                raise
            LOG.warning("Audit failed after a workload failure: %s", exc)
            return
        if self.metrics is not None and scores is not None:
            self.metrics.audit = scores

    def _assert_and_attach(self) -> None:
        assertion_error: Optional[Exception] = None
        if self.metrics is not None:
            self._transition(RunnerState.ASSERTING)
            try:
                assert_thresholds(self.metrics, self.config)
            except Exception as exc:
                assertion_error = exc
            self._transition(RunnerState.ATTACHING)
            try:
                self.artifact_location = self.artifact_sink.attach(
                    self.config.name, build_artifact(self.metrics, self.config)
                )
            except Exception as exc:
                LOG.warning("Failed to attach performance results: %s", exc)
        if self._workload_error is not None:
            raise self._workload_error
        if assertion_error is not None:
            raise assertion_error
