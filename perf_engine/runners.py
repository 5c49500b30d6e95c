"""
Test-mode runners.

Each runner turns one configuration variant into one result variant:

- :class:`LoadTestRunner` — fixed concurrency for a fixed duration.
- :class:`StressTestRunner` — steps concurrency up until the error
  rate crosses a threshold, reporting the breaking point.
- :class:`SpikeTestRunner` — base load, a sudden spike, then recovery
  at base load.
- :class:`EnduranceTestRunner` — one long run with periodic cumulative
  snapshots for degradation analysis.

Stress and spike tests are sequences of independent load runs driven
by a plain loop over phase descriptors; every run gets a fresh
:class:`MetricsRecorder`, so one phase's errors can never leak into the
statistics of another.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import NamedTuple

from perf_engine.errors import ConfigurationError, EngineFault
from perf_engine.metrics import MetricsRecorder
from perf_engine.models import (
    EnduranceConfig,
    EnduranceTestResult,
    LoadConfig,
    LoadTestResult,
    MetricsSnapshot,
    MonitoringPoint,
    PhaseResult,
    SpikeConfig,
    SpikeTestResult,
    StressConfig,
    StressTestResult,
)
from perf_engine.scheduler import Operation, VirtualUserScheduler

logger = logging.getLogger(__name__)

RecorderFactory = Callable[[], MetricsRecorder]


def _expect(config: object, expected: type) -> None:
    if not isinstance(config, expected):
        raise ConfigurationError(
            f"Expected {expected.__name__}, got {type(config).__name__}"
        )


# =============================================================================
# Load
# =============================================================================

class LoadTestRunner:
    """
    Runs one fixed-concurrency test.

    Attributes:
        last_snapshot: Metrics of the most recent run, for callers that
            need more than the summary (e.g. raw response times).
    """

    def __init__(self, recorder_factory: RecorderFactory = MetricsRecorder):
        self._recorder_factory = recorder_factory
        self.last_snapshot: MetricsSnapshot | None = None

    def run(self, operation: Operation, config: LoadConfig) -> LoadTestResult:
        """
        Drive ``config.users`` virtual users for ``config.duration`` seconds.

        Args:
            operation: Zero-argument unit of work.
            config: Load configuration.

        Returns:
            Summary statistics of the run.

        Raises:
            ConfigurationError: If *config* is not a valid ``LoadConfig``.
            EngineFault: If the engine itself failed during the run.
        """
        _expect(config, LoadConfig)

        recorder = self._recorder_factory()
        scheduler = VirtualUserScheduler(
            operation,
            recorder,
            users=config.users,
            ramp_up_time=config.ramp_up_time,
            think_time=config.think_time,
        )

        logger.info(
            f"Starting load test: {config.users} users, {config.duration}s duration, "
            f"ramp-up: {config.ramp_up_time}s, think-time: {config.think_time}ms"
        )
        elapsed = scheduler.run(config.duration)

        snapshot = recorder.snapshot()
        self.last_snapshot = snapshot
        result = LoadTestResult.from_snapshot(
            snapshot,
            users=config.users,
            elapsed=elapsed,
            requested_duration=config.duration,
        )

        logger.info(
            f"Load test completed: {result.total_requests} requests, "
            f"avg {result.avg_response_time:.2f}ms, "
            f"error rate {result.error_rate:.2f}%, "
            f"throughput {result.throughput:.2f} req/s"
        )
        return result


# =============================================================================
# Stress
# =============================================================================

class StressTestRunner:
    """Searches for the smallest user count that breaches the error threshold."""

    def __init__(self, load_runner: LoadTestRunner | None = None):
        self._load_runner = load_runner or LoadTestRunner()

    def run(self, operation: Operation, config: StressConfig) -> StressTestResult:
        """
        Step concurrency up by ``step_size`` until a step fails or bounds are hit.

        Steps run strictly one after another.  The search stops with a
        breaking point at the first step whose error rate exceeds
        ``error_threshold``; it stops without one when the next step
        would exceed ``max_users`` or the cumulative step time reaches
        ``max_duration``.

        Returns:
            All executed steps in order, plus the breaking point or ``None``.
        """
        _expect(config, StressConfig)

        logger.info(
            f"Starting stress test: up to {config.max_users} users in steps of "
            f"{config.step_size}, threshold {config.error_threshold}%"
        )

        steps: list[PhaseResult] = []
        breaking_point: int | None = None
        cumulative = 0.0
        users = config.step_size

        while True:
            load_result = self._load_runner.run(
                operation,
                LoadConfig(
                    duration=config.step_duration,
                    users=users,
                    ramp_up_time=config.ramp_up_time,
                    think_time=config.think_time,
                ),
            )
            step = PhaseResult.from_load_result(load_result)
            steps.append(step)
            cumulative += step.duration

            logger.info(
                f"Stress step {len(steps)}: {users} users, "
                f"avg {step.avg_response_time:.2f}ms, error rate {step.error_rate:.2f}%"
            )

            if step.error_rate > config.error_threshold:
                breaking_point = users
                break
            if users + config.step_size > config.max_users:
                break
            if cumulative >= config.max_duration:
                logger.info(f"Stress test reached max duration after {cumulative:.1f}s")
                break
            users += config.step_size

        if breaking_point is None:
            logger.info("Stress test finished without reaching a breaking point")
        else:
            logger.info(f"Breaking point found at {breaking_point} users")

        return StressTestResult(
            results=tuple(steps),
            breaking_point=breaking_point,
            error_threshold=config.error_threshold,
            duration=cumulative,
        )


# =============================================================================
# Spike
# =============================================================================

class SpikePhase(NamedTuple):
    """One phase of a spike test."""

    label: str
    users: int
    duration: float


class SpikeTestRunner:
    """Runs base, spike and recovery phases as three independent load runs."""

    def __init__(self, load_runner: LoadTestRunner | None = None):
        self._load_runner = load_runner or LoadTestRunner()

    @staticmethod
    def phases(config: SpikeConfig) -> tuple[SpikePhase, SpikePhase, SpikePhase]:
        return (
            SpikePhase("base", config.base_users, config.base_duration),
            SpikePhase("spike", config.spike_users, config.spike_duration),
            SpikePhase("recovery", config.base_users, config.recovery_duration),
        )

    def run(self, operation: Operation, config: SpikeConfig) -> SpikeTestResult:
        """
        Execute the three phases in order.

        The result reports raw per-phase statistics; whether recovery
        is "close enough" to base is left to
        :meth:`SpikeTestResult.recovered`.
        """
        _expect(config, SpikeConfig)

        results: list[PhaseResult] = []
        for phase in self.phases(config):
            logger.info(f"Spike test phase '{phase.label}': {phase.users} users for {phase.duration}s")
            load_result = self._load_runner.run(
                operation,
                LoadConfig(
                    duration=phase.duration,
                    users=phase.users,
                    think_time=config.think_time,
                ),
            )
            results.append(PhaseResult.from_load_result(load_result, phase=phase.label))

        base, spike, recovery = results
        result = SpikeTestResult(
            results=(base, spike, recovery),
            duration=sum(phase.duration for phase in results),
        )
        logger.info(
            f"Spike test completed: base {base.avg_response_time:.2f}ms, "
            f"spike {spike.avg_response_time:.2f}ms, "
            f"recovery {recovery.avg_response_time:.2f}ms"
        )
        return result


# =============================================================================
# Endurance
# =============================================================================

class EnduranceTestRunner:
    """Runs one long test while sampling cumulative metrics on a timer."""

    def __init__(self, recorder_factory: RecorderFactory = MetricsRecorder):
        self._recorder_factory = recorder_factory

    def run(self, operation: Operation, config: EnduranceConfig) -> EnduranceTestResult:
        """
        Drive ``config.users`` users for ``config.duration`` hours.

        A monitor thread snapshots the recorder at every
        ``monitoring_interval`` boundary; a closing point is appended
        once the run has drained, so the series is never empty.
        """
        _expect(config, EnduranceConfig)

        recorder = self._recorder_factory()
        scheduler = VirtualUserScheduler(
            operation,
            recorder,
            users=config.users,
            ramp_up_time=config.ramp_up_time,
            think_time=config.think_time,
        )
        monitoring: list[MonitoringPoint] = []
        monitor_faults: list[Exception] = []
        started = time.perf_counter()

        def monitor() -> None:
            interval = config.monitoring_interval_seconds
            boundary = 1
            try:
                while True:
                    remaining = started + boundary * interval - time.perf_counter()
                    if scheduler.stop_signal.wait(max(remaining, 0)):
                        return
                    point = MonitoringPoint.from_snapshot(
                        recorder.snapshot(), time.perf_counter() - started
                    )
                    monitoring.append(point)
                    logger.info(
                        f"Endurance checkpoint {boundary}: {point.sample_count} samples, "
                        f"avg {point.avg_response_time:.2f}ms, "
                        f"error rate {point.error_rate:.2f}%"
                    )
                    boundary += 1
            except Exception as exc:
                logger.error(f"Endurance monitor failed: {exc!r}")
                monitor_faults.append(exc)
                scheduler.stop()

        logger.info(
            f"Starting endurance test: {config.users} users for {config.duration}h, "
            f"monitoring every {config.monitoring_interval}min"
        )
        monitor_thread = threading.Thread(target=monitor, name="endurance-monitor", daemon=True)
        monitor_thread.start()
        try:
            elapsed = scheduler.run(config.duration_seconds)
        finally:
            scheduler.stop()
            monitor_thread.join()

        if monitor_faults:
            raise EngineFault(f"Endurance monitor aborted: {monitor_faults[0]!r}") from monitor_faults[0]

        final = recorder.snapshot()
        monitoring.append(MonitoringPoint.from_snapshot(final, elapsed))

        result = EnduranceTestResult(
            users=config.users,
            duration=elapsed / 3600,
            monitoring_data=tuple(monitoring),
            avg_response_time=final.avg_response_time,
            max_response_time=final.max_response_time,
            avg_error_rate=sum(point.error_rate for point in monitoring) / len(monitoring),
            total_requests=final.sample_count,
        )
        logger.info(
            f"Endurance test completed: {result.total_requests} requests over "
            f"{result.duration:.4f}h, avg {result.avg_response_time:.2f}ms, "
            f"max {result.max_response_time:.2f}ms, "
            f"avg error rate {result.avg_error_rate:.2f}%"
        )
        return result
