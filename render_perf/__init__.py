"""Browser performance-test orchestration: probes, thresholds, statistics and a test runner."""

__version__ = "0.1.0"
