import asyncio
import unittest

from render_perf.app import store, web_vitals
from render_perf.app.custom_metrics import CustomMetricsStore
from render_perf.domain.errors import StorePhase, StoreStateError

from fakes import FakePage, store_payload


class RenderStoreTests(unittest.TestCase):
    def test_initialization_succeeds_once_mounted(self) -> None:
        page = FakePage({store.IS_MOUNTED_SCRIPT: [False, False, True]})
        asyncio.run(store.wait_for_initialization(page, timeout_ms=1000, check_interval_ms=1))
        self.assertEqual(page.evaluated.count(store.IS_MOUNTED_SCRIPT), 3)

    def test_initialization_timeout(self) -> None:
        page = FakePage({store.IS_MOUNTED_SCRIPT: False})
        with self.assertRaises(StoreStateError) as ctx:
            asyncio.run(store.wait_for_initialization(page, timeout_ms=20, check_interval_ms=5))
        self.assertEqual(ctx.exception.phase, StorePhase.INITIALIZATION)
        self.assertEqual(ctx.exception.context, {"timeout": 20})
        self.assertIn("[initialization]", ctx.exception.detailed())

    def test_stable_once_count_stops_moving(self) -> None:
        page = FakePage({store.SAMPLE_COUNT_SCRIPT: [1, 2, 3, 3]})
        asyncio.run(
            store.wait_until_stable(page, stability_period_ms=0, check_interval_ms=1, max_wait_ms=1000)
        )
        self.assertEqual(page.evaluated.count(store.SAMPLE_COUNT_SCRIPT), 4)

    def test_zero_samples_never_stabilize_when_required(self) -> None:
        page = FakePage({store.SAMPLE_COUNT_SCRIPT: 0})
        with self.assertRaises(StoreStateError) as ctx:
            asyncio.run(store.wait_until_stable(page, stability_period_ms=0, check_interval_ms=2, max_wait_ms=20))
        self.assertEqual(ctx.exception.phase, StorePhase.STABILIZATION)
        self.assertEqual(ctx.exception.context["lastSampleCount"], 0)
        self.assertEqual(ctx.exception.context["maxWaitMs"], 20)

    def test_zero_samples_accepted_when_not_required(self) -> None:
        page = FakePage({store.SAMPLE_COUNT_SCRIPT: 0})
        asyncio.run(
            store.wait_until_stable(
                page, stability_period_ms=0, check_interval_ms=1, max_wait_ms=1000, require_samples=False
            )
        )

    def test_reset_requires_mounted_store(self) -> None:
        asyncio.run(store.reset_store(FakePage({store.RESET_SCRIPT: True})))
        with self.assertRaises(StoreStateError) as ctx:
            asyncio.run(store.reset_store(FakePage({store.RESET_SCRIPT: False})))
        self.assertEqual(ctx.exception.phase, StorePhase.VALIDATION)
        self.assertEqual(ctx.exception.context, {"action": "reset"})

    def test_capture_snapshot(self) -> None:
        payload = store_payload(
            3,
            42.5,
            {"List": {"duration": 30, "baseDuration": 28, "rerenders": 2, "phases": {"update": 2}}},
        )
        snapshot = asyncio.run(store.capture_snapshot(FakePage({store.SNAPSHOT_SCRIPT: payload})))
        self.assertEqual(snapshot.sample_count, 3)
        self.assertEqual(snapshot.total_duration, 42.5)
        self.assertEqual(snapshot.subjects["List"].base_duration, 28)
        self.assertEqual(snapshot.subjects["List"].rerenders, 2)

    def test_capture_rejects_missing_or_empty_store(self) -> None:
        with self.assertRaises(StoreStateError):
            asyncio.run(store.capture_snapshot(FakePage()))
        with self.assertRaises(StoreStateError) as ctx:
            asyncio.run(store.capture_snapshot(FakePage({store.SNAPSHOT_SCRIPT: store_payload(0, 0)})))
        self.assertEqual(ctx.exception.context, {"sampleCount": 0})


class WebVitalsTests(unittest.TestCase):
    def test_inject_registers_init_script(self) -> None:
        page = FakePage()
        asyncio.run(web_vitals.inject_observer(page))
        self.assertEqual(page.init_scripts, [web_vitals.SETUP_SCRIPT])

    def test_capture_initializes_lazily(self) -> None:
        page = FakePage(
            {
                web_vitals.IS_INITIALIZED_SCRIPT: False,
                web_vitals.CAPTURE_SCRIPT: {"lcp": 1200.5, "inp": None, "cls": None, "ttfb": 80, "fcp": 900},
            }
        )
        vitals = asyncio.run(web_vitals.capture_web_vitals(page))
        self.assertIn(web_vitals.SETUP_SCRIPT, page.evaluated)
        self.assertEqual(vitals.lcp, 1200.5)
        self.assertIsNone(vitals.cls)
        self.assertTrue(vitals.has_values())

    def test_capture_without_store(self) -> None:
        page = FakePage({web_vitals.IS_INITIALIZED_SCRIPT: True})
        self.assertIsNone(asyncio.run(web_vitals.capture_web_vitals(page)))
        self.assertNotIn(web_vitals.SETUP_SCRIPT, page.evaluated)


class CustomMetricsTests(unittest.TestCase):
    def setUp(self) -> None:
        ticks = iter([10.0, 10.1, 10.35])
        self.metrics = CustomMetricsStore(clock=lambda: next(ticks))

    def test_mark_and_measure(self) -> None:
        self.assertAlmostEqual(self.metrics.mark("start"), 100)
        self.assertAlmostEqual(self.metrics.mark("end"), 350)
        self.assertAlmostEqual(self.metrics.measure("load", "start", "end"), 250)
        snapshot = self.metrics.snapshot()
        self.assertEqual([mark.name for mark in snapshot.marks], ["start", "end"])
        [measure] = snapshot.measures
        self.assertAlmostEqual(measure.start_time, 100)
        self.assertTrue(snapshot.has_entries())

    def test_measure_unknown_mark(self) -> None:
        self.metrics.mark("start")
        with self.assertRaises(KeyError) as ctx:
            self.metrics.measure("load", "start", "end")
        self.assertIn("Available marks: start", str(ctx.exception))

    def test_reset(self) -> None:
        self.metrics.mark("start")
        self.metrics.reset()
        self.assertFalse(self.metrics.snapshot().has_entries())


if __name__ == "__main__":
    unittest.main()
