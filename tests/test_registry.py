import asyncio
import unittest

from render_perf.probes.base import ProbeHandle, ProbeKind, ResettableProbeHandle
from render_perf.probes.coordination import CoordinationTable
from render_perf.probes.cpu_throttle import CpuThrottleProbe
from render_perf.probes.registry import ProbeRegistry, default_registry

from fakes import FakePage, FakeSession


class ExplodingHandle(ProbeHandle[None]):
    async def stop(self):
        raise RuntimeError("stop exploded")


class CountingHandle(ResettableProbeHandle[None]):
    def __init__(self) -> None:
        super().__init__(ProbeKind.HEAP_SAMPLER, FakeSession(), FakePage())
        self.restarts = 0

    async def _restart(self) -> None:
        self.restarts += 1


class ProbeRegistryTests(unittest.TestCase):
    def test_default_registry_knows_every_probe(self) -> None:
        registry = default_registry()
        self.assertEqual(
            registry.names(),
            ["cpu-throttle", "network-throttle", "frame-sampler", "heap-sampler", "trace-capture"],
        )
        self.assertTrue(registry.has("heap-sampler"))
        self.assertFalse(registry.has("long-tasks"))
        self.assertIsNone(registry.get("long-tasks"))

    def test_duplicate_registration(self) -> None:
        registry = ProbeRegistry()
        registry.register(CpuThrottleProbe())
        with self.assertRaises(ValueError):
            registry.register(CpuThrottleProbe())

    def test_start_unknown_or_unregistered(self) -> None:
        registry = ProbeRegistry()
        with self.assertRaises(KeyError):
            asyncio.run(registry.start_feature("long-tasks", FakePage()))
        with self.assertRaises(KeyError) as ctx:
            asyncio.run(registry.start_feature(ProbeKind.FRAME_SAMPLER, FakePage()))
        self.assertIn("frame-sampler", str(ctx.exception))

    def test_start_feature_delegates(self) -> None:
        page = FakePage()
        handle = asyncio.run(default_registry().start_feature("cpu-throttle", page, 2))
        self.assertEqual(handle.kind, ProbeKind.CPU_THROTTLE)
        self.assertEqual(len(page.sessions), 1)

    def test_stop_all_survives_a_failing_handle(self) -> None:
        page = FakePage()
        registry = default_registry()

        async def scenario():
            cpu = await registry.start_feature("cpu-throttle", page, 4)
            handles = {
                "cpu-throttle": cpu,
                "broken": ExplodingHandle(ProbeKind.HEAP_SAMPLER, FakeSession(), page),
            }
            with self.assertLogs("render_perf.probes.registry", level="WARNING"):
                results = await registry.stop_all(handles)
            return cpu, handles, results

        cpu, handles, results = asyncio.run(scenario())
        self.assertEqual(results, {"cpu-throttle": None, "broken": None})
        self.assertEqual(handles, {})
        self.assertFalse(cpu.active)
        self.assertTrue(page.sessions[0].detached)


class CoordinationTableTests(unittest.TestCase):
    def test_set_get_and_remove(self) -> None:
        table = CoordinationTable()
        handle = CountingHandle()
        table.set_handle("heap-sampler", handle)
        self.assertIs(table.get_handle("heap-sampler"), handle)
        table.set_handle("heap-sampler", None)
        self.assertIsNone(table.get_handle("heap-sampler"))
        self.assertEqual(len(table), 0)

    def test_reset_if_active(self) -> None:
        table = CoordinationTable()
        handle = CountingHandle()
        table.set_handle("heap-sampler", handle)

        async def scenario():
            missing = await table.reset_if_active("frame-sampler")
            first = await table.reset_if_active("heap-sampler")
            await handle.stop()
            after_stop = await table.reset_if_active("heap-sampler")
            return missing, first, after_stop

        missing, first, after_stop = asyncio.run(scenario())
        self.assertFalse(missing)
        self.assertTrue(first)
        self.assertFalse(after_stop)
        self.assertEqual(handle.restarts, 1)

    def test_reset_all_active_skips_stopped_handles(self) -> None:
        table = CoordinationTable()
        live, stopped = CountingHandle(), CountingHandle()
        table.set_handle("frame-sampler", live)
        table.set_handle("heap-sampler", stopped)

        async def scenario():
            await stopped.stop()
            return await table.reset_all_active()

        self.assertEqual(asyncio.run(scenario()), ["frame-sampler"])
        self.assertEqual(live.restarts, 1)
        self.assertEqual(stopped.restarts, 0)
        table.clear()
        self.assertEqual(len(table), 0)


if __name__ == "__main__":
    unittest.main()
