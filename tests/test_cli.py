import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from render_perf.__main__ import run_cli

CONFIG_YAML = """\
throttle_rate: 4
thresholds:
  base:
    subjects:
      "*":
        duration: 100
        rerenders: 10
    memory:
      heap_growth: 1048576
  ci:
    subjects:
      "*":
        duration: 150
"""


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.config_path = Path(self.tmp.name) / "checkout.yaml"
        self.config_path.write_text(CONFIG_YAML, encoding="utf-8")

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _run(self, argv):
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout, mock.patch(
            "sys.stderr", new_callable=io.StringIO
        ) as stderr:
            exit_code = run_cli(argv)
        return exit_code, stdout.getvalue(), stderr.getvalue()

    def test_resolve_local(self) -> None:
        exit_code, out, _ = self._run(["resolve", "--config", str(self.config_path), "--local"])
        self.assertEqual(exit_code, 0)
        data = json.loads(out)
        self.assertEqual(data["name"], "checkout-performance-data")
        self.assertEqual(data["environment"], "local")
        self.assertFalse(data["warmup"])
        self.assertTrue(data["track_memory"])
        self.assertEqual(data["thresholds"]["subjects"]["*"]["duration"]["avg"], 100)
        self.assertIn("throttle=4x", data["summary"])

    def test_resolve_ci_with_title(self) -> None:
        exit_code, out, _ = self._run(
            ["resolve", "--config", str(self.config_path), "--ci", "--title", "Checkout flow"]
        )
        self.assertEqual(exit_code, 0)
        data = json.loads(out)
        self.assertEqual(data["name"], "checkout-flow-performance-data")
        self.assertEqual(data["thresholds"]["subjects"]["*"]["duration"]["avg"], 150)
        self.assertTrue(data["warmup"])

    def test_invalid_config(self) -> None:
        self.config_path.write_text("iterations: 0\nthresholds:\n  base: {}\n", encoding="utf-8")
        exit_code, out, err = self._run(["resolve", "--config", str(self.config_path)])
        self.assertEqual(exit_code, 1)
        self.assertEqual(out, "")
        self.assertIn("invalid configuration", err)

    def test_presets(self) -> None:
        exit_code, out, _ = self._run(["presets"])
        self.assertEqual(exit_code, 0)
        lines = out.strip().splitlines()
        self.assertEqual(len(lines), 5)
        self.assertIn("slow-3g: 400ms latency, down=500 Kbps, up=500 Kbps", lines)
        self.assertIn("offline", lines)

    def test_subcommand_required(self) -> None:
        with self.assertRaises(SystemExit):
            self._run([])


if __name__ == "__main__":
    unittest.main()
