"""
Integration tests driving real HTTP traffic through the runners.

Each test runs a short profile against the live Flask server and checks
the statistics the engine derives from it.
"""

from __future__ import annotations

import pytest

from perf_engine.client import ApiClient
from perf_engine.models import EnduranceConfig, LoadConfig, SpikeConfig, StressConfig


pytestmark = pytest.mark.integration


def test_load_test_against_healthy_endpoint(performance, api_client):
    # Arrange
    operation = api_client.operation("GET", "/")
    config = LoadConfig(duration=0.5, users=3, think_time=10)

    # Act
    result = performance.load_test(operation, config)

    # Assert
    assert result.test_type == "Load Test"
    assert result.total_requests > 0
    assert result.error_rate == 0
    assert result.avg_response_time > 0
    assert result.throughput > 0
    assert result.p95_response_time >= result.min_response_time


def test_load_test_records_http_failures(performance, api_client):
    operation = api_client.operation("GET", "/flaky")

    result = performance.load_test(operation, {"duration": 0.5, "users": 2, "thinkTime": 10})

    assert result.failed_requests > 0
    assert set(result.error_breakdown) == {"HTTP 503"}
    assert 30 <= result.error_rate <= 70


def test_unreachable_server_is_recorded_not_raised(performance):
    client = ApiClient("http://127.0.0.1:9", timeout=0.5)
    try:
        result = performance.load_test(
            client.operation("GET", "/"), LoadConfig(duration=0.2, users=1, think_time=20)
        )
    finally:
        client.close()

    assert result.total_requests > 0
    assert result.error_rate == 100


def test_stress_test_without_breaking_point(performance, api_client):
    config = StressConfig(
        max_users=4, step_size=2, step_duration=0.3, max_duration=30, error_threshold=5,
        think_time=10,
    )

    result = performance.stress_test(api_client.operation("GET", "/"), config)

    assert result.breaking_point is None
    assert [step.users for step in result.results] == [2, 4]


def test_stress_test_breaks_on_flaky_endpoint(performance, api_client):
    config = StressConfig(
        max_users=4, step_size=2, step_duration=0.3, max_duration=30, error_threshold=5,
        think_time=10,
    )

    result = performance.stress_test(api_client.operation("GET", "/flaky"), config)

    assert result.breaking_point == 2
    assert len(result.results) == 1


def test_spike_test_against_slow_endpoint(performance, api_client):
    config = SpikeConfig(
        base_users=2, spike_users=6, base_duration=0.4, spike_duration=0.3, recovery_duration=0.4,
        think_time=10,
    )

    result = performance.spike_test(api_client.operation("GET", "/slow"), config)

    assert [phase.phase for phase in result.results] == ["base", "spike", "recovery"]
    assert all(phase.sample_count > 0 for phase in result.results)
    assert result.recovered(0.5)


def test_endurance_test_against_health_endpoint(performance, api_client):
    config = EnduranceConfig(users=2, duration=0.0002, monitoring_interval=0.003, think_time=10)

    result = performance.endurance_test(api_client.operation("GET", "/api/health"), config)

    assert result.test_type == "Endurance Test"
    assert len(result.monitoring_data) >= 2
    assert result.avg_error_rate == 0
    assert result.monitoring_data[-1].sample_count == result.total_requests


def test_finished_steps_leave_no_open_sessions(performance, api_client):
    config = StressConfig(
        max_users=10, step_size=2, step_duration=0.2, max_duration=30, error_threshold=5,
        think_time=10,
    )

    result = performance.stress_test(api_client.operation("GET", "/"), config)

    assert [step.users for step in result.results] == [2, 4, 6, 8, 10]
    assert api_client.open_sessions <= result.results[-1].users
    assert api_client.open_sessions == 0
