"""
Post-run analysis helpers.

Runners report raw statistics; the pass/fail judgements made on top of
them live here so the CLI and test suites share one definition:

- endurance degradation: compare the mean latency of the first half of
  the monitoring series with the second half;
- per-interval behaviour: difference consecutive cumulative points;
- spike recovery: is recovery latency back within a tolerance of base;
- stress steps: which step produced the breaking point.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from perf_engine.models import MonitoringPoint, PhaseResult, SpikeTestResult, StressTestResult


@dataclass(frozen=True)
class IntervalStats:
    """Behaviour of one monitoring interval, derived from two cumulative points."""

    start: float
    end: float
    sample_count: int
    error_count: int
    avg_response_time: float
    error_rate: float


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def degradation_percent(points: Sequence[MonitoringPoint]) -> float:
    """
    Percent change of mean latency between the two halves of a series.

    Positive values mean the second half was slower.  Returns ``0.0``
    when the series is too short to split or the first half has no
    latency to compare against.
    """
    if len(points) < 2:
        return 0.0

    middle = len(points) // 2
    first_half = _mean([point.avg_response_time for point in points[:middle]])
    second_half = _mean([point.avg_response_time for point in points[middle:]])
    if first_half <= 0:
        return 0.0
    return (second_half - first_half) / first_half * 100


def is_degraded(points: Sequence[MonitoringPoint], max_percent: float) -> bool:
    """Whether the series slowed down by more than *max_percent*."""
    return degradation_percent(points) > max_percent


def interval_deltas(points: Sequence[MonitoringPoint]) -> list[IntervalStats]:
    """
    Convert cumulative monitoring points into per-interval statistics.

    The first interval runs from the start of the test to the first
    point.  Intervals without new samples report zero latency and rate.
    """
    deltas: list[IntervalStats] = []
    previous_elapsed = 0.0
    previous_count = 0
    previous_errors = 0
    previous_total = 0.0

    for point in points:
        count = point.sample_count - previous_count
        errors = point.error_count - previous_errors
        total = point.total_response_time - previous_total
        deltas.append(
            IntervalStats(
                start=previous_elapsed,
                end=point.elapsed,
                sample_count=count,
                error_count=errors,
                avg_response_time=total / count if count else 0.0,
                error_rate=errors / count * 100 if count else 0.0,
            )
        )
        previous_elapsed = point.elapsed
        previous_count = point.sample_count
        previous_errors = point.error_count
        previous_total = point.total_response_time

    return deltas


def recovery_within(result: SpikeTestResult, tolerance: float) -> bool:
    """Whether spike recovery latency is within *tolerance* (fraction) of base."""
    return result.recovered(tolerance)


def breaking_point_step(result: StressTestResult) -> PhaseResult | None:
    """Return the step that produced the breaking point, if there is one."""
    if result.breaking_point is None:
        return None
    for step in result.results:
        if step.users == result.breaking_point:
            return step
    return None
