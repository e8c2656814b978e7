"""Judging measured metrics against resolved thresholds.

Every check runs; violations are collected and raised together as one
``ThresholdAssertionError`` so that the artifact can still be attached before
the test fails.
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import List, Optional

from ..domain.errors import ThresholdAssertionError, ThresholdViolation
from ..domain.measurements import PercentileSet, PerformanceMetrics, SubjectSample
from ..domain.thresholds import (
    PERCENTILE_LEVELS,
    WILDCARD_SUBJECT,
    PercentileThresholds,
    SubjectThresholds,
    effective_boundary,
    subject_threshold,
)
from ..formatting import format_bytes, format_duration
from .config import ResolvedConfig

LOG = logging.getLogger("render_perf.assertions")

MEMOIZATION_TOLERANCE_RATIO = 0.05


class ViolationCollector:
    def __init__(self) -> None:
        self.violations: List[ThresholdViolation] = []

    def add(self, metric: str, actual: float, effective: float, message: str) -> None:
        LOG.debug("violation %s: %s", metric, message)
        self.violations.append(ThresholdViolation(metric, actual, effective, message))


def _check_duration(
    out: ViolationCollector,
    label: str,
    actual: float,
    threshold: float,
    buffer: float,
    throttle_rate: float,
) -> None:
    effective = effective_boundary("duration", threshold, buffer)
    if not actual < effective:
        out.add(
            f"{label}.duration",
            actual,
            effective,
            f"{label}: should complete within {format_duration(effective, 1)} (actual: {format_duration(actual)}, "
            f"throttle: {throttle_rate:g}x, threshold: {threshold:g}ms + {buffer:g}% buffer)",
        )


def _check_rerenders(out: ViolationCollector, label: str, actual: float, threshold: float, buffer: float) -> None:
    effective = effective_boundary("rerenders", threshold, buffer, round_result=True)
    if actual > effective:
        out.add(
            f"{label}.rerenders",
            actual,
            effective,
            f"{label}: should trigger <={effective} renders (actual: {actual:g}, "
            f"threshold: {threshold:g} + {buffer:g}% buffer)",
        )


def _check_memoization(out: ViolationCollector, label: str, duration: float, base_duration: float) -> None:
    if base_duration <= 0:
        return
    allowed = max(1.0, base_duration * MEMOIZATION_TOLERANCE_RATIO)
    if not duration < base_duration + allowed:
        out.add(
            f"{label}.memoization",
            duration,
            base_duration + allowed,
            f"{label}: memoization should reduce render time (actual: {format_duration(duration)}, "
            f"base: {format_duration(base_duration)}, tolerance: {format_duration(allowed)})",
        )


def _check_duration_percentiles(
    out: ViolationCollector,
    label: str,
    actual: PercentileSet,
    thresholds: PercentileThresholds,
    buffer: float,
) -> None:
    for level in PERCENTILE_LEVELS:
        threshold = getattr(thresholds, level)
        if threshold <= 0:
            continue
        value = getattr(actual, level)
        effective = effective_boundary("duration", threshold, buffer)
        if value > effective:
            out.add(
                f"{label}.duration.{level}",
                value,
                effective,
                f"{label}: {level} duration should be <={format_duration(effective, 1)} "
                f"(actual: {format_duration(value)}, threshold: {threshold:g}ms + {buffer:g}% buffer)",
            )


def _check_subject(
    out: ViolationCollector,
    label: str,
    sample: SubjectSample,
    thresholds: SubjectThresholds,
    config: ResolvedConfig,
    percentiles: Optional[PercentileSet],
) -> None:
    buffers = config.buffers
    if thresholds.duration.avg > 0:
        _check_duration(out, label, sample.duration, thresholds.duration.avg, buffers.duration, config.throttle_rate)
    _check_rerenders(out, label, sample.rerenders, thresholds.rerenders, buffers.rerenders)
    _check_memoization(out, label, sample.duration, sample.base_duration)
    if percentiles is not None and thresholds.duration.has_percentiles():
        _check_duration_percentiles(out, label, percentiles, thresholds.duration, buffers.duration)


def _check_subjects(out: ViolationCollector, metrics: PerformanceMetrics, config: ResolvedConfig) -> None:
    store = metrics.store
    if store.sample_count <= 0:
        out.add("activity", store.sample_count, 1, "Should record at least one render sample")
    summary = metrics.iterations.percentiles if metrics.iterations else None

    if not store.subjects:
        # No per-subject breakdown: judge the totals against "*", else the first configured subject.
        configured = config.thresholds.subjects
        thresholds = configured.get(WILDCARD_SUBJECT) or next(iter(configured.values()))
        total = SubjectSample(
            duration=store.total_duration,
            rerenders=store.sample_count,
            base_duration=store.total_base_duration,
        )
        _check_subject(out, "total", total, thresholds, config, summary.duration if summary else None)
        return

    for subject, sample in store.subjects.items():
        thresholds = subject_threshold(subject, config.thresholds)
        percentiles = None
        if summary is not None and subject in summary.subjects:
            percentiles = summary.subjects[subject].duration
        _check_subject(out, subject, sample, thresholds, config, percentiles)


def _check_fps(out: ViolationCollector, metrics: PerformanceMetrics, config: ResolvedConfig) -> None:
    thresholds = config.thresholds.fps
    buffer = config.buffers.fps
    actual = metrics.iterations.fps if metrics.iterations and metrics.iterations.fps is not None else None
    if actual is None:
        actual = metrics.frames.avg
    effective = effective_boundary("fps", thresholds.avg, buffer)
    if actual < effective:
        out.add(
            "fps",
            actual,
            effective,
            f"Should maintain >={effective:.1f} FPS (actual: {actual:.2f} FPS, "
            f"threshold: {thresholds.avg:g} FPS - {buffer:g}% buffer)",
        )
    summary = metrics.iterations.percentiles if metrics.iterations else None
    if summary is None or summary.fps is None or not thresholds.has_percentiles():
        return
    for level in PERCENTILE_LEVELS:
        threshold = getattr(thresholds, level)
        if threshold <= 0:
            continue
        value = getattr(summary.fps, level)
        effective = effective_boundary("fps", threshold, buffer)
        if value < effective:
            out.add(
                f"fps.{level}",
                value,
                effective,
                f"{level} FPS should be >={effective:.1f} (actual: {value:.2f}, "
                f"threshold: {threshold:g} - {buffer:g}% buffer)",
            )


def _check_heap(out: ViolationCollector, metrics: PerformanceMetrics, config: ResolvedConfig) -> None:
    threshold = config.thresholds.heap_growth
    if threshold <= 0:
        return
    actual = metrics.iterations.heap_growth if metrics.iterations and metrics.iterations.heap_growth is not None else None
    if actual is None:
        actual = metrics.heap.heap_growth
    buffer = config.buffers.heap_growth
    effective = effective_boundary("heap_growth", threshold, buffer)
    if actual > effective:
        out.add(
            "heap_growth",
            actual,
            effective,
            f"Should not exceed {format_bytes(effective)} heap growth (actual: {format_bytes(actual)}, "
            f"threshold: {format_bytes(threshold)} + {buffer:g}% buffer)",
        )


def _check_web_vitals(out: ViolationCollector, metrics: PerformanceMetrics, config: ResolvedConfig) -> None:
    thresholds = asdict(config.thresholds.web_vitals)
    buffers = asdict(config.buffers.web_vitals)
    actual_values = asdict(metrics.web_vitals)
    for name, threshold in thresholds.items():
        actual = actual_values.get(name)
        if actual is None or threshold <= 0:
            continue
        effective = effective_boundary("web_vitals", threshold, buffers[name])
        if actual > effective:
            unit = "" if name == "cls" else "ms"
            out.add(
                f"web_vitals.{name}",
                actual,
                effective,
                f"{name.upper()} should be <={effective:.3g}{unit} (actual: {actual:.3g}{unit}, "
                f"threshold: {threshold:g}{unit} + {buffers[name]:g}% buffer)",
            )


def _check_audit(out: ViolationCollector, metrics: PerformanceMetrics, config: ResolvedConfig) -> None:
    scores = asdict(metrics.audit)
    buffer = config.buffers.audit
    for category, threshold in asdict(config.thresholds.audit).items():
        actual = scores.get(category)
        if actual is None or threshold <= 0:
            continue
        effective = effective_boundary("audit", threshold, buffer)
        if actual < effective:
            out.add(
                f"audit.{category}",
                actual,
                effective,
                f"Audit {category} score should be >={effective:.1f} (actual: {actual}, "
                f"threshold: {threshold:g} - {buffer:g}% buffer)",
            )


def collect_violations(metrics: PerformanceMetrics, config: ResolvedConfig) -> List[ThresholdViolation]:
    out = ViolationCollector()
    if config.has_subject_thresholds:
        _check_subjects(out, metrics, config)
    if config.track_fps and metrics.frames is not None:
        _check_fps(out, metrics, config)
    if config.track_memory and metrics.heap is not None:
        _check_heap(out, metrics, config)
    if config.track_web_vitals and metrics.web_vitals is not None:
        _check_web_vitals(out, metrics, config)
    if config.audit.enabled and metrics.audit is not None:
        _check_audit(out, metrics, config)
    return out.violations


def assert_thresholds(metrics: PerformanceMetrics, config: ResolvedConfig) -> None:
    violations = collect_violations(metrics, config)
    if violations:
        raise ThresholdAssertionError(violations)
