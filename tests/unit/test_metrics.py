"""
Unit tests for the metrics recorder and snapshot statistics.
"""

from __future__ import annotations

import threading
import time

import pytest

from perf_engine.errors import EngineFault
from perf_engine.metrics import MetricsRecorder
from perf_engine.models import MetricsSnapshot, Sample


pytestmark = pytest.mark.unit


def test_record_and_snapshot(recorder, sample_factory):
    # Arrange
    recorder.record(sample_factory(duration_ms=10))
    recorder.record(sample_factory(duration_ms=30, success=False))

    # Act
    snapshot = recorder.snapshot()

    # Assert
    assert snapshot.sample_count == 2
    assert snapshot.error_count == 1
    assert snapshot.response_times == [10, 30]
    assert len(recorder) == 2


def test_snapshot_is_not_affected_by_later_records(recorder, sample_factory):
    recorder.record(sample_factory())
    snapshot = recorder.snapshot()

    recorder.record(sample_factory())
    recorder.record(sample_factory(success=False))

    assert snapshot.sample_count == 1
    assert snapshot.error_count == 0
    assert recorder.snapshot().sample_count == 3


def test_snapshot_samples_are_immutable(recorder, sample_factory):
    recorder.record(sample_factory())
    snapshot = recorder.snapshot()

    assert isinstance(snapshot.samples, tuple)
    with pytest.raises(AttributeError):
        snapshot.samples[0].duration_ms = 1  # type: ignore[misc]


def test_clear_resets_to_empty(recorder, sample_factory):
    """Test that a fresh snapshot after clear has no samples and no errors."""
    for _ in range(5):
        recorder.record(sample_factory(success=False))

    recorder.clear()
    snapshot = recorder.snapshot()

    assert snapshot.sample_count == 0
    assert snapshot.error_count == 0
    assert snapshot.response_times == []


def test_record_rejects_non_samples(recorder):
    with pytest.raises(EngineFault):
        recorder.record({"duration_ms": 5, "success": True})  # type: ignore[arg-type]


def test_concurrent_writers_lose_nothing():
    """Test that many threads recording at once never drop or corrupt samples."""
    # Arrange
    recorder = MetricsRecorder()
    writers = 8
    per_writer = 500
    barrier = threading.Barrier(writers)

    def write(writer_id: int) -> None:
        barrier.wait()
        for index in range(per_writer):
            recorder.record(
                Sample(
                    timestamp=time.time(),
                    duration_ms=float(index),
                    success=index % 5 != 0,
                    error_kind=None if index % 5 else f"writer-{writer_id}",
                )
            )

    threads = [threading.Thread(target=write, args=(i,)) for i in range(writers)]

    # Act
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # Assert
    snapshot = recorder.snapshot()
    assert snapshot.sample_count == writers * per_writer
    assert snapshot.error_count == writers * per_writer // 5
    assert snapshot.error_count == sum(1 for sample in snapshot.samples if not sample.success)


# -----------------------------------------------------------------------------
# Derived Statistics
# -----------------------------------------------------------------------------

def _snapshot(*samples: Sample) -> MetricsSnapshot:
    return MetricsSnapshot(
        samples=tuple(samples),
        error_count=sum(1 for sample in samples if not sample.success),
    )


def test_snapshot_statistics(sample_factory):
    snapshot = _snapshot(
        sample_factory(duration_ms=10),
        sample_factory(duration_ms=20),
        sample_factory(duration_ms=30),
        sample_factory(duration_ms=40, success=False, error_kind="Timeout"),
    )

    assert snapshot.avg_response_time == pytest.approx(25)
    assert snapshot.max_response_time == 40
    assert snapshot.min_response_time == 10
    assert snapshot.success_rate == pytest.approx(75)
    assert snapshot.error_rate == pytest.approx(25)
    assert snapshot.error_breakdown == {"Timeout": 1}
    assert snapshot.throughput(elapsed_seconds=2) == pytest.approx(1.5)
    assert snapshot.percentile(50) == pytest.approx(25)
    assert snapshot.percentile(100) == 40


def test_empty_snapshot_statistics_are_zero():
    snapshot = _snapshot()

    assert snapshot.avg_response_time == 0
    assert snapshot.max_response_time == 0
    assert snapshot.error_rate == 0
    assert snapshot.success_rate == 0
    assert snapshot.percentile(95) == 0
    assert snapshot.throughput(elapsed_seconds=0) == 0


def test_snapshot_to_dict_matches_metrics_shape(sample_factory):
    snapshot = _snapshot(sample_factory(duration_ms=12), sample_factory(success=False))

    data = snapshot.to_dict()

    assert data["response_times"][0] == 12
    assert data["errors"] == 1
    assert snapshot.errors == 1
