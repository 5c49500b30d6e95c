"""
Unit tests for post-run analysis helpers.
"""

from __future__ import annotations

import pytest

from perf_engine.analysis import (
    breaking_point_step,
    degradation_percent,
    interval_deltas,
    is_degraded,
    recovery_within,
)
from perf_engine.models import (
    EnduranceTestResult,
    MonitoringPoint,
    PhaseResult,
    SpikeTestResult,
    StressTestResult,
)


pytestmark = pytest.mark.unit


def _point(elapsed, count, errors, avg):
    return MonitoringPoint(
        elapsed=elapsed,
        sample_count=count,
        error_count=errors,
        avg_response_time=avg,
        error_rate=errors / count * 100 if count else 0.0,
        total_response_time=avg * count,
        max_response_time=avg,
    )


def test_degradation_compares_series_halves():
    points = [_point(1, 10, 0, 100), _point(2, 20, 0, 100), _point(3, 30, 0, 120), _point(4, 40, 0, 130)]

    assert degradation_percent(points) == pytest.approx(25)
    assert is_degraded(points, max_percent=20)
    assert not is_degraded(points, max_percent=30)


def test_degradation_of_short_or_empty_series_is_zero():
    assert degradation_percent([]) == 0
    assert degradation_percent([_point(1, 10, 0, 100)]) == 0
    assert degradation_percent([_point(1, 0, 0, 0), _point(2, 10, 0, 50)]) == 0


def test_speedup_reports_negative_degradation():
    points = [_point(1, 10, 0, 200), _point(2, 20, 0, 100)]

    assert degradation_percent(points) == pytest.approx(-50)


def test_interval_deltas_difference_cumulative_points():
    # Arrange: 10 samples at 100ms, then 10 more at 200ms with 5 failures.
    first = _point(60, 10, 0, 100)
    second = MonitoringPoint(
        elapsed=120,
        sample_count=20,
        error_count=5,
        avg_response_time=150,
        error_rate=25,
        total_response_time=3000,
        max_response_time=200,
    )

    # Act
    deltas = interval_deltas([first, second])

    # Assert
    assert [(d.start, d.end) for d in deltas] == [(0.0, 60), (60, 120)]
    assert deltas[1].sample_count == 10
    assert deltas[1].error_count == 5
    assert deltas[1].avg_response_time == pytest.approx(200)
    assert deltas[1].error_rate == pytest.approx(50)


def test_interval_without_new_samples_is_zero():
    deltas = interval_deltas([_point(1, 10, 0, 100), _point(2, 10, 0, 100)])

    assert deltas[1].sample_count == 0
    assert deltas[1].avg_response_time == 0
    assert deltas[1].error_rate == 0


def test_endurance_result_exposes_degradation():
    result = EnduranceTestResult(
        users=2,
        duration=1,
        monitoring_data=(_point(1, 10, 0, 100), _point(2, 20, 0, 150)),
        avg_response_time=125,
        max_response_time=150,
        avg_error_rate=0,
        total_requests=20,
    )

    assert result.degradation == pytest.approx(50)


def test_recovery_within_tolerance():
    result = SpikeTestResult(
        results=(
            PhaseResult(users=5, avg_response_time=100, error_rate=0, sample_count=10, phase="base"),
            PhaseResult(users=15, avg_response_time=500, error_rate=0, sample_count=30, phase="spike"),
            PhaseResult(users=5, avg_response_time=160, error_rate=0, sample_count=10, phase="recovery"),
        ),
        duration=3,
    )

    assert recovery_within(result, 0.6)
    assert not recovery_within(result, 0.5)


def test_breaking_point_step():
    steps = (
        PhaseResult(users=2, avg_response_time=10, error_rate=0, sample_count=10),
        PhaseResult(users=4, avg_response_time=30, error_rate=12, sample_count=10),
    )

    found = StressTestResult(results=steps, breaking_point=4, error_threshold=5, duration=2)
    missing = StressTestResult(results=steps[:1], breaking_point=None, error_threshold=5, duration=1)

    assert breaking_point_step(found) is steps[1]
    assert breaking_point_step(missing) is None
