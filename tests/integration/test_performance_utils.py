"""
Integration tests for session metrics collected by PerformanceUtils.
"""

from __future__ import annotations

import pytest

from perf_engine.errors import OperationFailure


pytestmark = pytest.mark.integration


def test_client_requests_feed_session_metrics(performance, api_client):
    # Act
    for _ in range(3):
        api_client.get("/")

    # Assert
    metrics = performance.get_current_metrics()
    assert metrics.sample_count == 3
    assert len(metrics.response_times) == 3
    assert metrics.errors == 0
    assert all(duration > 0 for duration in metrics.response_times)


def test_failed_requests_count_as_errors(performance, api_client):
    api_client.get("/missing")

    metrics = performance.get_current_metrics()

    assert metrics.errors == 1
    assert metrics.error_breakdown == {"HTTP 404": 1}


def test_clear_metrics(performance, api_client):
    api_client.get("/")
    api_client.get("/api/health")

    performance.clear_metrics()

    metrics = performance.get_current_metrics()
    assert metrics.response_times == []
    assert metrics.errors == 0


def test_track_records_and_reraises(performance, api_client):
    performance.track(lambda: api_client.get("/"))

    with pytest.raises(OperationFailure):
        performance.track(api_client.operation("GET", "/missing"))

    # Listener samples plus tracked samples for both calls.
    metrics = performance.get_current_metrics()
    assert metrics.sample_count == 4
    assert metrics.errors == 2


def test_close_detaches_from_client(performance, api_client):
    performance.close()

    api_client.get("/")

    assert performance.get_current_metrics().sample_count == 0


def test_client_stats_and_health_check(api_client):
    api_client.get("/")
    api_client.get("/missing")

    stats = api_client.get_performance_stats()
    health = api_client.health_check(["/", "/api/health"])

    assert stats["total_requests"] == 2
    assert stats["success_rate"] == pytest.approx(50)
    assert health.healthy
