import asyncio
import json
import tempfile
import unittest
from pathlib import Path

from render_perf.app import store, web_vitals
from render_perf.app.config import TestConfig, resolve_config
from render_perf.app.runner import PerformanceTestRunner, RunnerState
from render_perf.bootstrap import create_performance_test
from render_perf.domain.errors import StoreStateError, ThresholdAssertionError
from render_perf.domain.measurements import AuditScores
from render_perf.ports.audit import AuditExecutionError
from render_perf.probes.cpu_throttle import SET_RATE
from render_perf.probes.registry import default_registry

from fakes import FakeAuditRunner, FakePage, FakeSession, RecordingSink, frame_events, heap_response, store_payload

WILDCARD_150 = {"base": {"subjects": {"*": {"duration": 150, "rerenders": 20}}}}


def _config(thresholds=None, is_ci=False, **extra):
    data = {"thresholds": thresholds or WILDCARD_150, **extra}
    return resolve_config(TestConfig.from_mapping(data), "Renders list", is_ci=is_ci)


def _snapshots(*durations):
    return {store.SNAPSHOT_SCRIPT: [store_payload(5, duration) for duration in durations]}


class WorkloadRecorder:
    def __init__(self, fail_on=None, error=None):
        self.calls = 0
        self.fail_on = fail_on or ()
        self.error = error or ValueError("workload exploded")

    async def __call__(self, context):
        self.calls += 1
        if self.calls in self.fail_on:
            raise self.error


class RunnerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.output_dir = Path(self.tmp.name)
        self.sink = RecordingSink()

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _runner(self, page, config, **kwargs) -> PerformanceTestRunner:
        kwargs.setdefault("artifact_sink", self.sink)
        return PerformanceTestRunner(page, config, default_registry(), output_dir=self.output_dir, **kwargs)


class SingleRunTests(RunnerTestCase):
    def test_passing_run_attaches_artifact(self) -> None:
        page = FakePage(_snapshots(100))
        workload = WorkloadRecorder()
        runner = self._runner(page, _config())
        metrics = asyncio.run(runner.execute(workload))

        self.assertEqual(workload.calls, 1)
        self.assertEqual(metrics.store.total_duration, 100)
        self.assertIsNone(metrics.iterations)
        self.assertEqual(runner.state, RunnerState.DONE)
        [(name, payload)] = self.sink.attached
        self.assertEqual(name, "renders-list-performance-data")
        self.assertEqual(payload["environment"], "local")
        self.assertEqual(payload["metrics"]["store"]["total_duration"], 100)
        self.assertEqual(runner.artifact_location, "memory://renders-list-performance-data")
        self.assertEqual(page.blank_navigations, 0)

    def test_threshold_failure_still_attaches(self) -> None:
        page = FakePage(_snapshots(180))
        runner = self._runner(page, _config())
        with self.assertRaises(ThresholdAssertionError) as ctx:
            asyncio.run(runner.execute(WorkloadRecorder()))
        self.assertEqual(ctx.exception.first.metric, "total.duration")
        self.assertEqual(len(self.sink.attached), 1)
        self.assertEqual(runner.state, RunnerState.DONE)

    def test_warmup_run_is_discarded(self) -> None:
        page = FakePage(_snapshots(500, 100))
        workload = WorkloadRecorder()
        runner = self._runner(page, _config(warmup=True))
        metrics = asyncio.run(runner.execute(workload))

        self.assertEqual(workload.calls, 2)
        self.assertEqual(page.blank_navigations, 1)
        self.assertEqual(metrics.store.total_duration, 100)
        self.assertEqual(metrics.iterations.iterations, 1)
        self.assertEqual(metrics.iterations.duration, 100)
        self.assertEqual(len(metrics.iterations.results), 2)

    def test_failed_warmup_does_not_fail_the_test(self) -> None:
        page = FakePage(_snapshots(100))
        workload = WorkloadRecorder(fail_on=(1,))
        runner = self._runner(page, _config(warmup=True))
        with self.assertLogs("render_perf.runner", level="WARNING"):
            metrics = asyncio.run(runner.execute(workload))
        self.assertEqual(workload.calls, 2)
        self.assertIsNone(metrics.iterations)

    def test_workload_error_wins_over_assertion_error(self) -> None:
        page = FakePage(_snapshots(900))
        error = ValueError("click target missing")
        runner = self._runner(page, _config(throttle_rate=4))
        with self.assertRaises(ValueError) as ctx:
            asyncio.run(runner.execute(WorkloadRecorder(fail_on=(1,), error=error)))
        self.assertIs(ctx.exception, error)
        self.assertEqual(len(self.sink.attached), 1)
        [cpu_session] = page.sessions_with(SET_RATE)
        self.assertEqual(cpu_session.sent[-1], (SET_RATE, {"rate": 1}))
        self.assertTrue(cpu_session.detached)
        self.assertEqual(runner.state, RunnerState.DONE)

    def test_workload_error_raised_without_metrics(self) -> None:
        page = FakePage()
        error = ValueError("page crashed")
        runner = self._runner(page, _config())
        with self.assertRaises(ValueError) as ctx:
            asyncio.run(runner.execute(WorkloadRecorder(fail_on=(1,), error=error)))
        self.assertIs(ctx.exception, error)
        self.assertIsNone(runner.metrics)
        self.assertEqual(self.sink.attached, [])

    def test_missing_store_fails_the_test(self) -> None:
        runner = self._runner(FakePage(), _config())
        with self.assertRaises(StoreStateError):
            asyncio.run(runner.execute(WorkloadRecorder()))

    def test_runner_executes_once(self) -> None:
        runner = self._runner(FakePage(_snapshots(100)), _config())
        asyncio.run(runner.execute(WorkloadRecorder()))
        with self.assertRaises(RuntimeError):
            asyncio.run(runner.execute(WorkloadRecorder()))


class IterationTests(RunnerTestCase):
    def test_mean_after_warmup_passes(self) -> None:
        page = FakePage(_snapshots(500, 100, 102))
        workload = WorkloadRecorder()
        runner = self._runner(page, _config(iterations=3, warmup=True))
        metrics = asyncio.run(runner.execute(workload))

        self.assertEqual(workload.calls, 3)
        self.assertEqual(page.blank_navigations, 2)
        self.assertEqual(metrics.iterations.iterations, 2)
        self.assertEqual(metrics.iterations.duration, 101)
        self.assertEqual(metrics.store.total_duration, 101)
        self.assertEqual(metrics.store.sample_count, 5)
        self.assertEqual(len(metrics.iterations.results), 3)
        self.assertIsNotNone(metrics.iterations.standard_deviation)

    def test_mean_after_warmup_fails(self) -> None:
        page = FakePage(_snapshots(500, 200, 210))
        runner = self._runner(page, _config(iterations=3, warmup=True))
        with self.assertRaises(ThresholdAssertionError) as ctx:
            asyncio.run(runner.execute(WorkloadRecorder()))
        violation = ctx.exception.first
        self.assertEqual(violation.actual, 205)
        self.assertAlmostEqual(violation.effective, 180)
        self.assertEqual(runner.metrics.iterations.duration, 205)

    def test_without_warmup_every_iteration_counts(self) -> None:
        page = FakePage(_snapshots(500, 100, 102))
        runner = self._runner(page, _config(iterations=3, warmup=False))
        with self.assertRaises(ThresholdAssertionError):
            asyncio.run(runner.execute(WorkloadRecorder()))
        self.assertEqual(runner.metrics.iterations.iterations, 3)
        self.assertEqual(runner.metrics.iterations.duration, 234)

    def test_failing_iteration_stops_the_loop(self) -> None:
        page = FakePage(_snapshots(100, 100, 100, 100))
        workload = WorkloadRecorder(fail_on=(2,))
        runner = self._runner(page, _config(iterations=4))
        with self.assertRaises(ValueError):
            asyncio.run(runner.execute(workload))
        self.assertEqual(workload.calls, 2)
        self.assertEqual(len(runner.metrics.iterations.results), 1)

    def test_named_subject_budget_applies_to_totals(self) -> None:
        page = FakePage(_snapshots(900))
        config = _config({"base": {"subjects": {"App": {"duration": 10, "rerenders": 1}}}}, iterations=3)
        runner = self._runner(page, config)
        with self.assertRaises(ThresholdAssertionError) as ctx:
            asyncio.run(runner.execute(WorkloadRecorder()))
        self.assertEqual([v.metric for v in ctx.exception.violations], ["total.duration", "total.rerenders"])
        self.assertEqual(runner.metrics.store.total_duration, 900)
        self.assertEqual(len(self.sink.attached), 1)

    def test_throttling_reapplied_between_iterations(self) -> None:
        page = FakePage(_snapshots(100))
        runner = self._runner(page, _config(iterations=3, throttle_rate=4, network="slow-4g"))
        asyncio.run(runner.execute(WorkloadRecorder()))
        [cpu] = page.sessions_with(SET_RATE)
        [network] = page.sessions_with("Network.emulateNetworkConditions")
        # Start, two re-applications, release on cleanup.
        self.assertEqual(cpu.methods.count(SET_RATE), 4)
        self.assertEqual(network.methods.count("Network.emulateNetworkConditions"), 4)

    def test_frame_and_heap_probes_per_iteration(self) -> None:
        def session():
            return FakeSession(
                responses={"Performance.getMetrics": [heap_response(1000), heap_response(1600)]},
                trace_events=frame_events(61),
            )

        page = FakePage(session_factory=session)
        config = _config(
            {"base": {"fps": 55, "memory": {"heap_growth": 1024}}},
            iterations=2,
        )
        runner = self._runner(page, config)
        metrics = asyncio.run(runner.execute(WorkloadRecorder()))

        self.assertEqual(len(page.sessions), 4)
        self.assertTrue(all(session.detached for session in page.sessions))
        self.assertEqual(metrics.iterations.fps, 60)
        self.assertEqual(metrics.iterations.heap_growth, 600)
        self.assertEqual(metrics.frames.avg, 60)
        self.assertEqual(metrics.heap.heap_growth, 600)
        self.assertEqual(len(runner.coordination), 0)


class OptionalFeatureTests(RunnerTestCase):
    def test_unsupported_browser_skips_probes(self) -> None:
        page = FakePage(_snapshots(100), unsupported=True)
        config = _config(
            {"base": {"subjects": {"*": {"duration": 150, "rerenders": 20}}, "fps": 60, "memory": {"heap_growth": 1}}},
            throttle_rate=4,
        )
        metrics = asyncio.run(self._runner(page, config).execute(WorkloadRecorder()))
        self.assertIsNone(metrics.frames)
        self.assertIsNone(metrics.heap)

    def test_workload_reset_restarts_heap_window(self) -> None:
        page = FakePage(
            {store.RESET_SCRIPT: True},
            session_factory=lambda: FakeSession(
                responses={
                    "Performance.getMetrics": [heap_response(1000), heap_response(5000), heap_response(5200)]
                }
            ),
        )

        async def workload(context):
            context.performance.mark("start")
            await context.performance.reset()
            context.performance.mark("settled")
            context.performance.mark("end")
            context.performance.measure("settle", "settled", "end")

        config = _config({"base": {"memory": {"heap_growth": 1024}}})
        metrics = asyncio.run(self._runner(page, config).execute(workload))
        self.assertEqual(metrics.heap.heap_growth, 200)
        self.assertIn(store.RESET_SCRIPT, page.evaluated)
        self.assertEqual([mark.name for mark in metrics.custom.marks], ["settled", "end"])
        self.assertEqual([measure.name for measure in metrics.custom.measures], ["settle"])

    def test_custom_metrics_attached(self) -> None:
        async def workload(context):
            context.performance.mark("a")
            context.performance.mark("b")
            context.performance.measure("ab", "a", "b")

        metrics = asyncio.run(self._runner(FakePage(_snapshots(100)), _config()).execute(workload))
        self.assertEqual([measure.name for measure in metrics.custom.measures], ["ab"])

    def test_web_vitals_are_judged(self) -> None:
        page = FakePage(
            {
                web_vitals.IS_INITIALIZED_SCRIPT: True,
                web_vitals.CAPTURE_SCRIPT: {"lcp": 3500, "inp": 40, "cls": None, "ttfb": 100, "fcp": 800},
            }
        )
        runner = self._runner(page, _config({"base": {"web_vitals": {"lcp": 2500}}}))
        with self.assertRaises(ThresholdAssertionError) as ctx:
            asyncio.run(runner.execute(WorkloadRecorder()))
        self.assertEqual(ctx.exception.first.metric, "web_vitals.lcp")
        self.assertEqual(page.init_scripts, [web_vitals.SETUP_SCRIPT])

    def test_audit_scores_are_judged(self) -> None:
        audit_runner = FakeAuditRunner(AuditScores(performance=80, url="http://localhost:3000/list"))
        runner = self._runner(
            FakePage(), _config({"base": {"audit": {"performance": 90}}}), audit_runner=audit_runner
        )
        with self.assertRaises(ThresholdAssertionError) as ctx:
            asyncio.run(runner.execute(WorkloadRecorder()))
        self.assertEqual(ctx.exception.first.metric, "audit.performance")
        [request] = audit_runner.requests
        self.assertEqual(request.url, "http://localhost:3000/list")
        self.assertEqual(runner.metrics.audit.performance, 80)

    def test_warmup_audit_runs_first(self) -> None:
        audit_runner = FakeAuditRunner(AuditScores(performance=99))
        config = _config({"base": {"audit": {"performance": 90}}}, warmup=True)
        asyncio.run(self._runner(FakePage(), config, audit_runner=audit_runner).execute(WorkloadRecorder()))
        self.assertEqual(len(audit_runner.requests), 2)

    def test_audit_failure_propagates(self) -> None:
        audit_runner = FakeAuditRunner(error=AuditExecutionError("lighthouse missing"))
        runner = self._runner(FakePage(), _config({"base": {"audit": {"performance": 90}}}), audit_runner=audit_runner)
        with self.assertRaises(AuditExecutionError):
            asyncio.run(runner.execute(WorkloadRecorder()))
        self.assertEqual(runner.state, RunnerState.DONE)

    def test_audit_skipped_when_workload_left_no_metrics(self) -> None:
        audit_runner = FakeAuditRunner()
        thresholds = {"base": {"subjects": {"*": {"duration": 150, "rerenders": 20}}, "audit": {"performance": 90}}}
        config = _config(thresholds, warmup=True)
        runner = self._runner(FakePage(), config, audit_runner=audit_runner)
        error = ValueError("page crashed")
        with self.assertRaises(ValueError) as ctx:
            asyncio.run(runner.execute(WorkloadRecorder(fail_on=(1, 2), error=error)))
        self.assertIs(ctx.exception, error)
        self.assertIsNone(runner.metrics)
        self.assertEqual(audit_runner.requests, [])

    def test_audit_without_runner_is_skipped(self) -> None:
        runner = self._runner(FakePage(), _config({"base": {"audit": {"performance": 90}}}))
        with self.assertLogs("render_perf.runner", level="WARNING"):
            metrics = asyncio.run(runner.execute(WorkloadRecorder()))
        self.assertIsNone(metrics.audit)

    def test_trace_exported_on_cleanup(self) -> None:
        page = FakePage(_snapshots(100), session_factory=lambda: FakeSession(trace_events=frame_events(3)))
        trace_file = self.output_dir / "traces" / "list.json"
        runner = self._runner(page, _config(export_trace=str(trace_file)))
        asyncio.run(runner.execute(WorkloadRecorder()))

        self.assertEqual(runner.trace_path, trace_file)
        payload = json.loads(trace_file.read_text(encoding="utf-8"))
        self.assertEqual(len(payload["traceEvents"]), 3)
        self.assertEqual(payload["metadata"]["testName"], "Renders list")
        self.assertTrue(page.sessions[0].detached)

    def test_default_sink_writes_json(self) -> None:
        runner = create_performance_test(FakePage(_snapshots(100)), _config(), output_dir=self.output_dir)
        asyncio.run(runner.execute(WorkloadRecorder()))
        path = self.output_dir / "renders-list-performance-data.json"
        self.assertEqual(runner.artifact_location, str(path))
        self.assertEqual(json.loads(path.read_text(encoding="utf-8"))["throttle"], 1)


if __name__ == "__main__":
    unittest.main()
