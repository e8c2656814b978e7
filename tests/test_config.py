import tempfile
import unittest
from pathlib import Path
from unittest import mock

from render_perf.app.config import (
    TestConfig,
    TraceExportSettings,
    describe_config,
    detect_ci,
    generate_artifact_name,
    load_test_config,
    resolve_config,
)
from render_perf.domain.errors import ConfigurationError
from render_perf.probes.network_throttle import NETWORK_PRESETS

CONFIG_YAML = """\
name: list-rendering
throttleRate: 4
iterations: 5
network: fast-3g
exportTrace: traces/list.json
buffers:
  duration: 10
thresholds:
  base:
    subjects:
      "*":
        duration: 100
        rerenders: 10
    fps: 55
  ci:
    subjects:
      "*":
        duration: 150
"""


def _config(**overrides) -> TestConfig:
    data = {"thresholds": {"base": {"subjects": {"*": {"duration": 100, "rerenders": 10}}}}}
    data.update(overrides)
    return TestConfig.from_mapping(data)


class LoadTestConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_yaml_with_camel_case_keys(self) -> None:
        path = self.tmp_path / "list.yaml"
        path.write_text(CONFIG_YAML, encoding="utf-8")
        resolved = resolve_config(load_test_config(path), "List renders", is_ci=True)
        self.assertEqual(resolved.name, "list-rendering")
        self.assertEqual(resolved.throttle_rate, 4)
        self.assertEqual(resolved.iterations, 5)
        self.assertEqual(resolved.network, NETWORK_PRESETS["fast-3g"])
        self.assertEqual(resolved.export_trace.output_path, "traces/list.json")
        self.assertEqual(resolved.buffers.duration, 10)
        self.assertEqual(resolved.thresholds.subjects["*"].duration.avg, 150)
        self.assertTrue(resolved.track_fps)
        self.assertFalse(resolved.track_memory)
        self.assertTrue(resolved.warmup)
        self.assertEqual(resolved.environment, "ci")

    def test_empty_file(self) -> None:
        path = self.tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            load_test_config(path)

    def test_missing_file_and_bad_yaml(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_test_config(self.tmp_path / "missing.yaml")
        path = self.tmp_path / "broken.yaml"
        path.write_text("thresholds: [unclosed", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            load_test_config(path)

    def test_thresholds_are_required(self) -> None:
        with self.assertRaises(ConfigurationError):
            TestConfig.from_mapping({"iterations": 3})


class ResolveConfigTests(unittest.TestCase):
    def test_local_defaults(self) -> None:
        resolved = resolve_config(_config(), "Renders list", is_ci=False)
        self.assertEqual(resolved.name, "renders-list-performance-data")
        self.assertEqual(resolved.throttle_rate, 1)
        self.assertEqual(resolved.iterations, 1)
        self.assertFalse(resolved.warmup)
        self.assertIsNone(resolved.network)
        self.assertFalse(resolved.export_trace.enabled)
        self.assertFalse(resolved.audit.enabled)
        self.assertEqual(resolved.environment, "local")
        self.assertTrue(resolved.has_subject_thresholds)

    def test_explicit_warmup_wins_over_ci_flag(self) -> None:
        self.assertFalse(resolve_config(_config(warmup=False), "t", is_ci=True).warmup)
        self.assertTrue(resolve_config(_config(warmup=True), "t", is_ci=False).warmup)

    def test_ci_detection_from_environment(self) -> None:
        self.assertTrue(detect_ci({"CI": "true"}))
        self.assertFalse(detect_ci({"CI": ""}))
        self.assertFalse(detect_ci({}))
        with mock.patch.dict("os.environ", {"CI": "1"}):
            self.assertTrue(resolve_config(_config(), "t").is_ci)

    def test_invalid_iterations_and_throttle(self) -> None:
        with self.assertRaises(ConfigurationError):
            resolve_config(_config(iterations=0), "t", is_ci=False)
        with self.assertRaises(ConfigurationError):
            resolve_config(_config(iterations=2.5), "t", is_ci=False)
        with self.assertRaises(ConfigurationError):
            resolve_config(_config(throttle_rate=0.5), "t", is_ci=False)

    def test_negative_threshold_is_named(self) -> None:
        config = TestConfig.from_mapping({"thresholds": {"base": {"memory": {"heap_growth": -1}}}})
        with self.assertRaises(ConfigurationError) as ctx:
            resolve_config(config, "t", is_ci=False)
        self.assertIn("memory.heap_growth", str(ctx.exception))

    def test_audit_settings(self) -> None:
        config = TestConfig.from_mapping(
            {
                "thresholds": {"base": {"audit": {"performance": 90}}},
                "lighthouse": {"categories": ["performance"], "formFactor": "desktop", "skipAudits": ["uses-http2"]},
            }
        )
        resolved = resolve_config(config, "t", is_ci=False)
        self.assertTrue(resolved.audit.enabled)
        self.assertEqual(resolved.audit.categories, ("performance",))
        self.assertEqual(resolved.audit.form_factor, "desktop")
        self.assertEqual(resolved.audit.skip_audits, ("uses-http2",))
        with self.assertRaises(ConfigurationError):
            resolve_config(TestConfig.from_mapping({"thresholds": {"base": {}}, "audit": {"formFactor": "tv"}}), "t")

    def test_trace_export_settings(self) -> None:
        self.assertFalse(TraceExportSettings.resolve(None).enabled)
        self.assertTrue(TraceExportSettings.resolve(True).enabled)
        self.assertEqual(TraceExportSettings.resolve("out.json").output_path, "out.json")
        with self.assertRaises(ConfigurationError):
            TraceExportSettings.resolve(3)

    def test_artifact_name(self) -> None:
        self.assertEqual(generate_artifact_name("Renders  Big List (v2)!"), "renders-big-list-v2-performance-data")

    def test_describe_config(self) -> None:
        resolved = resolve_config(
            _config(throttle_rate=4, iterations=3, network_throttling="slow-4g"), "t", is_ci=True
        )
        summary = describe_config(resolved)
        self.assertIn("throttle=4x", summary)
        self.assertIn("warmup=enabled", summary)
        self.assertIn("network=slow-4g", summary)
        self.assertIn("iterations=3x (first is warmup)", summary)
        self.assertIn("buffers=duration=20%, rerenders=20%", summary)


if __name__ == "__main__":
    unittest.main()
