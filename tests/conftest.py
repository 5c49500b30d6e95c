"""
Shared pytest fixtures for the performance engine test suite.

Provides fresh recorders, sample factories and a small catalogue of
synthetic operations (constant latency, always failing, alternating)
so engine tests never depend on a real system under test.

Key Concepts Demonstrated:
- Factory fixtures for test data
- Deterministic synthetic workloads for timing-based code
- Environment selection before the package is imported
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable
from typing import Any

import pytest
from faker import Faker

# Select testing configuration before importing the package
os.environ["PERF_ENV"] = "testing"

from perf_engine.errors import OperationFailure
from perf_engine.metrics import MetricsRecorder
from perf_engine.models import Sample


fake = Faker()


class CountingOperation:
    """
    Thread-safe synthetic operation.

    Sleeps ``latency_ms`` per call and fails every ``fail_every``-th
    call (never when ``fail_every`` is 0).

    Attributes:
        calls: Number of invocations so far.
    """

    def __init__(self, latency_ms: float = 0.0, fail_every: int = 0, error_kind: str = "Synthetic"):
        self.latency_ms = latency_ms
        self.fail_every = fail_every
        self.error_kind = error_kind
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self) -> dict[str, Any]:
        with self._lock:
            self.calls += 1
            call_number = self.calls
        if self.latency_ms:
            time.sleep(self.latency_ms / 1000)
        if self.fail_every and call_number % self.fail_every == 0:
            raise OperationFailure(self.error_kind)
        return {"status": 200}


# -----------------------------------------------------------------------------
# Metrics Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def recorder() -> MetricsRecorder:
    """Fresh, empty recorder for each test."""
    return MetricsRecorder()


@pytest.fixture
def sample_factory() -> Callable[..., Sample]:
    """
    Factory fixture for :class:`Sample` instances.

    Example:
        def test_something(sample_factory):
            sample = sample_factory(success=False)
            assert sample.error_kind
    """

    def _create_sample(
        duration_ms: float | None = None,
        success: bool = True,
        error_kind: str | None = None,
    ) -> Sample:
        if duration_ms is None:
            duration_ms = fake.pyfloat(min_value=1, max_value=500)
        if not success and error_kind is None:
            error_kind = f"HTTP {fake.random_element([500, 502, 503, 504])}"
        return Sample(
            timestamp=time.time(),
            duration_ms=duration_ms,
            success=success,
            error_kind=error_kind,
        )

    return _create_sample


# -----------------------------------------------------------------------------
# Operation Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def operation_factory() -> Callable[..., CountingOperation]:
    """Factory fixture for :class:`CountingOperation` workloads."""
    return CountingOperation


@pytest.fixture
def fast_operation() -> CountingOperation:
    """Always succeeds in about 5ms."""
    return CountingOperation(latency_ms=5)


@pytest.fixture
def failing_operation() -> CountingOperation:
    """Always fails with ``error_kind == "HTTP 503"``."""
    return CountingOperation(latency_ms=2, fail_every=1, error_kind="HTTP 503")
