"""Aggregation of per-iteration results into means, spreads and percentiles."""
from __future__ import annotations

import math
from statistics import fmean, pstdev
from typing import Dict, Iterable, List, Optional, Sequence

from .measurements import (
    IterationMetrics,
    IterationResult,
    PercentileSet,
    PercentileSummary,
    StandardDeviation,
    SubjectPercentiles,
    SubjectSample,
    round_to,
)


def calculate_average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return fmean(values)


def calculate_standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return pstdev(values)


def calculate_percentile(values: Sequence[float], percentile: float) -> float:
    """Linear interpolation between closest ranks, ``rank = p/100 * (n - 1)``."""
    if percentile < 0 or percentile > 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {percentile}")
    if not values:
        return 0.0
    ordered = sorted(values)
    if len(ordered) == 1:
        return ordered[0]
    rank = percentile / 100 * (len(ordered) - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return ordered[lower]
    return ordered[lower] + (rank - lower) * (ordered[upper] - ordered[lower])


def calculate_percentiles(values: Sequence[float], decimals: int = 2) -> PercentileSet:
    return PercentileSet(
        p50=round_to(calculate_percentile(values, 50), decimals),
        p95=round_to(calculate_percentile(values, 95), decimals),
        p99=round_to(calculate_percentile(values, 99), decimals),
    )


def _subject_series(results: Iterable[IterationResult]) -> Dict[str, List[SubjectSample]]:
    series: Dict[str, List[SubjectSample]] = {}
    for result in results:
        for subject, sample in result.subjects.items():
            series.setdefault(subject, []).append(sample)
    return series


def calculate_subject_percentiles(results: Sequence[IterationResult]) -> Dict[str, SubjectPercentiles]:
    percentiles: Dict[str, SubjectPercentiles] = {}
    for subject, samples in _subject_series(results).items():
        # A subject seen in a single iteration has no distribution.
        if len(samples) < 2:
            continue
        percentiles[subject] = SubjectPercentiles(
            duration=calculate_percentiles([sample.duration for sample in samples]),
            rerenders=calculate_percentiles([sample.rerenders for sample in samples], 0),
        )
    return percentiles


def calculate_subject_means(results: Sequence[IterationResult]) -> Dict[str, SubjectSample]:
    means: Dict[str, SubjectSample] = {}
    for subject, samples in _subject_series(results).items():
        means[subject] = SubjectSample(
            duration=round_to(calculate_average([sample.duration for sample in samples])),
            rerenders=round_to(calculate_average([sample.rerenders for sample in samples])),
            base_duration=round_to(calculate_average([sample.base_duration for sample in samples])),
        )
    return means


def calculate_percentile_summary(results: Sequence[IterationResult]) -> PercentileSummary:
    fps_values = [result.fps for result in results if result.fps is not None]
    return PercentileSummary(
        duration=calculate_percentiles([result.duration for result in results]),
        rerenders=calculate_percentiles([result.rerenders for result in results], 0),
        fps=calculate_percentiles(fps_values) if fps_values else None,
        subjects=calculate_subject_percentiles(results),
    )


def aggregate_iteration_results(
    results: Sequence[IterationResult],
    discard_first: bool = False,
) -> IterationMetrics:
    """Aggregate iteration results.

    With ``discard_first`` and more than one result the first entry is left out of
    every statistic but stays in ``results``. Spread and percentiles need at
    least two effective results.
    """
    history = list(results)
    effective = history[1:] if discard_first and len(history) > 1 else history
    if not effective:
        return IterationMetrics(iterations=0, duration=0.0, rerenders=0.0, results=history)

    durations = [result.duration for result in effective]
    rerenders = [result.rerenders for result in effective]
    fps_values = [result.fps for result in effective if result.fps is not None]
    heap_values = [result.heap_growth for result in effective if result.heap_growth is not None]

    standard_deviation: Optional[StandardDeviation] = None
    percentiles: Optional[PercentileSummary] = None
    if len(effective) > 1:
        standard_deviation = StandardDeviation(
            duration=round_to(calculate_standard_deviation(durations)),
            rerenders=round_to(calculate_standard_deviation(rerenders)),
            fps=round_to(calculate_standard_deviation(fps_values)) if len(fps_values) > 1 else None,
            heap_growth=round_to(calculate_standard_deviation(heap_values), 0) if len(heap_values) > 1 else None,
        )
        percentiles = calculate_percentile_summary(effective)

    return IterationMetrics(
        iterations=len(effective),
        duration=round_to(calculate_average(durations)),
        rerenders=round_to(calculate_average(rerenders)),
        results=history,
        fps=round_to(calculate_average(fps_values)) if fps_values else None,
        heap_growth=round_to(calculate_average(heap_values), 0) if heap_values else None,
        subjects=calculate_subject_means(effective),
        standard_deviation=standard_deviation,
        percentiles=percentiles,
    )
