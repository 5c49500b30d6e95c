"""
Concurrency-safe collection of timing and outcome samples.

The recorder is the only object that many virtual users mutate at the
same time.  Every mutation goes through :meth:`MetricsRecorder.record`,
which appends under a lock, and every read goes through
:meth:`MetricsRecorder.snapshot`, which copies under the same lock.
Writers are therefore never blocked for longer than one copy.

A fresh recorder is created for every run (every stress step and spike
phase included) and handed to the scheduler explicitly; there is no
process-wide metrics state.
"""

from __future__ import annotations

import logging
import threading
import time

from perf_engine.errors import EngineFault
from perf_engine.models import MetricsSnapshot, Sample

logger = logging.getLogger(__name__)


class MetricsRecorder:
    """
    Append-only sample store shared by the workers of one run.

    Example:
        recorder = MetricsRecorder()
        recorder.record(Sample(time.time(), 12.5, True))
        snapshot = recorder.snapshot()
        assert snapshot.sample_count == 1
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._samples: list[Sample] = []
        self._error_count = 0

    def record(self, sample: Sample) -> None:
        """
        Append *sample*; safe to call from any worker thread.

        Raises:
            EngineFault: If *sample* is not a :class:`Sample`.
        """
        if not isinstance(sample, Sample):
            raise EngineFault(f"Recorder received {type(sample).__name__}, expected Sample")

        with self._lock:
            self._samples.append(sample)
            if not sample.success:
                self._error_count += 1

    def snapshot(self) -> MetricsSnapshot:
        """Return an immutable copy of everything recorded so far."""
        with self._lock:
            samples = tuple(self._samples)
            error_count = self._error_count
        return MetricsSnapshot(samples=samples, error_count=error_count, captured_at=time.time())

    def clear(self) -> None:
        """
        Reset to empty.

        Must not be called while a run is still recording into this
        recorder; runs use a fresh recorder instead.
        """
        with self._lock:
            self._samples = []
            self._error_count = 0
        logger.debug("Metrics recorder cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
