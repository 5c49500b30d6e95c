"""
Data model for the performance engine.

Every value that crosses a component boundary lives here: the samples
workers record, the snapshots runners read, the per-mode configuration
records callers pass in, and the per-mode result records the test
harness asserts on.

Configurations and results are tagged variants: one frozen dataclass
per test mode, each with only the fields that mode understands.
Results carry a fixed ``test_type`` discriminant so callers can branch on
the mode (``result.test_type == "Load Test"``).

Units are fixed and documented on every field: milliseconds for
latency and think-time, percentage points (0-100) for rates,
requests/second for throughput, seconds for load/stress/spike
durations, hours for endurance duration and minutes for the endurance
monitoring interval.
"""

from __future__ import annotations

import math
import threading
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union

import yaml

from perf_engine.errors import ConfigurationError


# -----------------------------------------------------------------------------
# Samples and Snapshots
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Sample:
    """
    Outcome of one operation invocation.

    Attributes:
        timestamp: Wall-clock time (epoch seconds) the invocation completed.
        duration_ms: Elapsed time of the invocation in milliseconds.
        success: Whether the operation returned without raising.
        error_kind: Failure label for unsuccessful samples.
    """

    timestamp: float
    duration_ms: float
    success: bool
    error_kind: str | None = None

    def __post_init__(self) -> None:
        if self.duration_ms < 0:
            raise ValueError(f"duration_ms must be >= 0, got {self.duration_ms}")


def percentile(sorted_values: list[float], p: float) -> float:
    """
    Linear-interpolated percentile of an already sorted list.

    Args:
        sorted_values: Values in ascending order.
        p: Percentile in the range 0-100.

    Returns:
        The interpolated value, or ``0.0`` for an empty list.
    """
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return sorted_values[0]
    k = (len(sorted_values) - 1) * p / 100
    lower = int(k)
    upper = min(lower + 1, len(sorted_values) - 1)
    return sorted_values[lower] + (k - lower) * (sorted_values[upper] - sorted_values[lower])


@dataclass(frozen=True)
class MetricsSnapshot:
    """
    Immutable, point-in-time copy of a recorder's contents.

    Samples are in completion order.  All derived statistics are
    computed from this copy, so a result is always consistent with one
    instant even while workers keep recording.
    """

    samples: tuple[Sample, ...]
    error_count: int
    captured_at: float = field(default_factory=time.time)

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def success_count(self) -> int:
        return self.sample_count - self.error_count

    @property
    def errors(self) -> int:
        """Alias of ``error_count`` for ``{"response_times", "errors"}`` style callers."""
        return self.error_count

    @property
    def response_times(self) -> list[float]:
        """Durations of every sample, in completion order."""
        return [sample.duration_ms for sample in self.samples]

    @property
    def total_response_time(self) -> float:
        return sum(self.response_times)

    @property
    def avg_response_time(self) -> float:
        if not self.samples:
            return 0.0
        return self.total_response_time / self.sample_count

    @property
    def max_response_time(self) -> float:
        return max(self.response_times, default=0.0)

    @property
    def min_response_time(self) -> float:
        return min(self.response_times, default=0.0)

    @property
    def success_rate(self) -> float:
        """Percentage of successful samples; 0 when nothing was recorded."""
        if not self.samples:
            return 0.0
        return self.success_count / self.sample_count * 100

    @property
    def error_rate(self) -> float:
        """Percentage of failed samples; 0 when nothing was recorded."""
        if not self.samples:
            return 0.0
        return (1 - self.success_count / self.sample_count) * 100

    @property
    def error_breakdown(self) -> dict[str, int]:
        """Count of failed samples per ``error_kind``."""
        counts = Counter(
            sample.error_kind or "Unknown" for sample in self.samples if not sample.success
        )
        return dict(counts)

    def percentile(self, p: float) -> float:
        """Response-time percentile in milliseconds."""
        return percentile(sorted(self.response_times), p)

    def throughput(self, elapsed_seconds: float) -> float:
        """Successful samples per second over *elapsed_seconds*."""
        if elapsed_seconds <= 0:
            return 0.0
        return self.success_count / elapsed_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "response_times": self.response_times,
            "errors": self.error_count,
            "captured_at": self.captured_at,
        }


# -----------------------------------------------------------------------------
# Virtual Users
# -----------------------------------------------------------------------------

class VirtualUserState(str, Enum):
    """Lifecycle of a virtual user within one run."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class VirtualUser:
    """
    One simulated client owned by the scheduler.

    Attributes:
        id: Zero-based index of the user within its run.
        start_offset: Seconds after the run starts before the first invocation.
        state: Current lifecycle state.
        iterations: Number of invocations completed so far.
    """

    id: int
    start_offset: float
    state: VirtualUserState = VirtualUserState.PENDING
    iterations: int = 0


# -----------------------------------------------------------------------------
# Configuration Variants
# -----------------------------------------------------------------------------

def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key of *keys* present in *data*, else *default*."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _require(data: dict[str, Any], *keys: str) -> Any:
    value = _pick(data, *keys)
    if value is None:
        raise ConfigurationError(f"Missing required option: {keys[0]}")
    return value


def _check_positive_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


def _check_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        raise ConfigurationError(f"{name} must be > 0, got {value!r}")
    _check_waitable(name, value)


def _check_non_negative(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value >= 0:
        raise ConfigurationError(f"{name} must be >= 0, got {value!r}")
    _check_waitable(name, value)


def _check_waitable(name: str, value: float) -> None:
    """Reject values a worker could not wait on (``inf``, above ``TIMEOUT_MAX``)."""
    if not math.isfinite(value) or value > threading.TIMEOUT_MAX:
        raise ConfigurationError(
            f"{name} must be finite and at most {threading.TIMEOUT_MAX}, got {value!r}"
        )


@dataclass(frozen=True)
class LoadConfig:
    """
    Fixed concurrency for a fixed duration.

    Attributes:
        duration: Run length in seconds.
        users: Number of concurrent virtual users.
        ramp_up_time: Seconds over which user start times are spread.
        think_time: Pause between invocations of one user, in milliseconds.
    """

    duration: float
    users: int
    ramp_up_time: float = 0.0
    think_time: float = 0.0

    def __post_init__(self) -> None:
        _check_positive("duration", self.duration)
        _check_positive_int("users", self.users)
        _check_non_negative("ramp_up_time", self.ramp_up_time)
        _check_non_negative("think_time", self.think_time)

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_think_time: float = 0.0) -> LoadConfig:
        """Build from snake_case or camelCase keys."""
        return cls(
            duration=_require(data, "duration"),
            users=_require(data, "users"),
            ramp_up_time=_pick(data, "ramp_up_time", "rampUpTime", default=0.0),
            think_time=_pick(data, "think_time", "thinkTime", default=default_think_time),
        )


@dataclass(frozen=True)
class StressConfig:
    """
    Step search for the breaking point.

    Attributes:
        max_users: Upper bound for the tested user count.
        step_size: Users added per step; the first step runs this many.
        step_duration: Seconds each step runs.
        max_duration: Cumulative seconds after which the search gives up.
        error_threshold: Error rate (percent) above which a step fails.
        ramp_up_time: Ramp-up forwarded to every step, in seconds.
        think_time: Think-time forwarded to every step, in milliseconds.
    """

    max_users: int
    step_size: int
    step_duration: float
    max_duration: float
    error_threshold: float
    ramp_up_time: float = 0.0
    think_time: float = 0.0

    def __post_init__(self) -> None:
        _check_positive_int("max_users", self.max_users)
        _check_positive_int("step_size", self.step_size)
        _check_positive("step_duration", self.step_duration)
        _check_positive("max_duration", self.max_duration)
        _check_non_negative("error_threshold", self.error_threshold)
        _check_non_negative("ramp_up_time", self.ramp_up_time)
        _check_non_negative("think_time", self.think_time)
        if self.error_threshold > 100:
            raise ConfigurationError(
                f"error_threshold is a percentage, got {self.error_threshold!r}"
            )
        if self.step_size > self.max_users:
            raise ConfigurationError(
                f"step_size ({self.step_size}) must not exceed max_users ({self.max_users})"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_think_time: float = 0.0) -> StressConfig:
        return cls(
            max_users=_require(data, "max_users", "maxUsers"),
            step_size=_require(data, "step_size", "stepSize"),
            step_duration=_require(data, "step_duration", "stepDuration"),
            max_duration=_require(data, "max_duration", "maxDuration"),
            error_threshold=_require(data, "error_threshold", "errorThreshold"),
            ramp_up_time=_pick(data, "ramp_up_time", "rampUpTime", default=0.0),
            think_time=_pick(data, "think_time", "thinkTime", default=default_think_time),
        )


@dataclass(frozen=True)
class SpikeConfig:
    """
    Base load, sudden spike, then recovery at base load.

    Attributes:
        base_users: Users during the base and recovery phases.
        spike_users: Users during the spike phase.
        base_duration: Seconds of base load.
        spike_duration: Seconds of spike load.
        recovery_duration: Seconds of recovery load.
        think_time: Think-time forwarded to every phase, in milliseconds.
    """

    base_users: int
    spike_users: int
    base_duration: float
    spike_duration: float
    recovery_duration: float
    think_time: float = 0.0

    def __post_init__(self) -> None:
        _check_positive_int("base_users", self.base_users)
        _check_positive_int("spike_users", self.spike_users)
        _check_positive("base_duration", self.base_duration)
        _check_positive("spike_duration", self.spike_duration)
        _check_positive("recovery_duration", self.recovery_duration)
        _check_non_negative("think_time", self.think_time)

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_think_time: float = 0.0) -> SpikeConfig:
        return cls(
            base_users=_require(data, "base_users", "baseUsers"),
            spike_users=_require(data, "spike_users", "spikeUsers"),
            base_duration=_require(data, "base_duration", "baseDuration"),
            spike_duration=_require(data, "spike_duration", "spikeDuration"),
            recovery_duration=_require(data, "recovery_duration", "recoveryDuration"),
            think_time=_pick(data, "think_time", "thinkTime", default=default_think_time),
        )


@dataclass(frozen=True)
class EnduranceConfig:
    """
    Long run with periodic monitoring.

    Attributes:
        users: Number of concurrent virtual users.
        duration: Run length in hours.
        monitoring_interval: Minutes between monitoring snapshots.
        ramp_up_time: Seconds over which user start times are spread.
        think_time: Pause between invocations of one user, in milliseconds.
    """

    users: int
    duration: float
    monitoring_interval: float
    ramp_up_time: float = 0.0
    think_time: float = 0.0

    def __post_init__(self) -> None:
        _check_positive_int("users", self.users)
        _check_positive("duration", self.duration)
        _check_positive("monitoring_interval", self.monitoring_interval)
        _check_non_negative("ramp_up_time", self.ramp_up_time)
        _check_non_negative("think_time", self.think_time)
        _check_waitable("duration (seconds)", self.duration_seconds)
        _check_waitable("monitoring_interval (seconds)", self.monitoring_interval_seconds)

    @property
    def duration_seconds(self) -> float:
        return self.duration * 3600

    @property
    def monitoring_interval_seconds(self) -> float:
        return self.monitoring_interval * 60

    @property
    def expected_points(self) -> int:
        """Number of interval boundaries that fall inside the run."""
        return math.floor(round(self.duration * 60 / self.monitoring_interval, 9))

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_think_time: float = 0.0) -> EnduranceConfig:
        return cls(
            users=_require(data, "users"),
            duration=_require(data, "duration"),
            monitoring_interval=_require(data, "monitoring_interval", "monitoringInterval"),
            ramp_up_time=_pick(data, "ramp_up_time", "rampUpTime", default=0.0),
            think_time=_pick(data, "think_time", "thinkTime", default=default_think_time),
        )


TestConfiguration = Union[LoadConfig, StressConfig, SpikeConfig, EnduranceConfig]

CONFIG_TYPES: dict[str, type] = {
    "load": LoadConfig,
    "stress": StressConfig,
    "spike": SpikeConfig,
    "endurance": EnduranceConfig,
}


def config_from_dict(data: dict[str, Any], default_think_time: float = 0.0) -> TestConfiguration:
    """
    Build the configuration variant named by the ``type`` key of *data*.

    Raises:
        ConfigurationError: If ``type`` is missing or unknown, or any
            option is invalid.
    """
    mode = str(data.get("type", "")).strip().lower()
    config_class = CONFIG_TYPES.get(mode)
    if config_class is None:
        raise ConfigurationError(
            f"Profile type must be one of {sorted(CONFIG_TYPES)}, got {data.get('type')!r}"
        )
    return config_class.from_dict(data, default_think_time=default_think_time)


def load_profile(path: Path, default_think_time: float = 0.0) -> TestConfiguration:
    """
    Read a test profile from a YAML file.

    Args:
        path: YAML file with a ``type`` key plus the options of that mode.
        default_think_time: Think-time (ms) used when the profile has none.

    Returns:
        The matching configuration variant.
    """
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Profile {path} must contain a mapping")
    return config_from_dict(data, default_think_time=default_think_time)


# -----------------------------------------------------------------------------
# Result Variants
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class LoadTestResult:
    """
    Summary of one fixed-concurrency run.

    Attributes:
        users: Concurrency the run was driven at.
        total_requests: Number of recorded samples.
        successful_requests: Samples whose operation succeeded.
        failed_requests: Samples whose operation failed.
        error_rate: ``(1 - successful / total) * 100``; 0 with no requests.
        avg_response_time: Mean latency in ms.
        min_response_time: Fastest latency in ms.
        max_response_time: Slowest latency in ms.
        percentiles: ``p50``/``p90``/``p95``/``p99`` latency in ms.
        throughput: ``total_requests / duration`` in requests/second.
        duration: Seconds actually elapsed, including the drain.
        requested_duration: Seconds the run was configured for.
        error_breakdown: Failed samples per ``error_kind``.
    """

    users: int
    total_requests: int
    successful_requests: int
    failed_requests: int
    error_rate: float
    avg_response_time: float
    min_response_time: float
    max_response_time: float
    throughput: float
    duration: float
    requested_duration: float
    percentiles: dict[str, float] = field(default_factory=dict)
    error_breakdown: dict[str, int] = field(default_factory=dict)
    test_type: str = field(default="Load Test", init=False)

    @classmethod
    def from_snapshot(
        cls,
        snapshot: MetricsSnapshot,
        *,
        users: int,
        elapsed: float,
        requested_duration: float,
    ) -> LoadTestResult:
        total = snapshot.sample_count
        return cls(
            users=users,
            total_requests=total,
            successful_requests=snapshot.success_count,
            failed_requests=snapshot.error_count,
            error_rate=snapshot.error_rate,
            avg_response_time=snapshot.avg_response_time,
            min_response_time=snapshot.min_response_time,
            max_response_time=snapshot.max_response_time,
            throughput=total / elapsed if elapsed > 0 else 0.0,
            duration=elapsed,
            requested_duration=requested_duration,
            percentiles={
                "p50": snapshot.percentile(50),
                "p90": snapshot.percentile(90),
                "p95": snapshot.percentile(95),
                "p99": snapshot.percentile(99),
            },
            error_breakdown=snapshot.error_breakdown,
        )

    @property
    def p95_response_time(self) -> float:
        return self.percentiles.get("p95", 0.0)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PhaseResult:
    """
    Statistics of one stress step or spike phase.

    Attributes:
        users: Concurrency of the phase.
        avg_response_time: Mean latency in ms.
        error_rate: Failed percentage (0-100).
        sample_count: Samples recorded in the phase.
        phase: Label for spike phases (``base``, ``spike``, ``recovery``).
        throughput: Requests/second over the phase.
        duration: Seconds the phase actually took.
    """

    users: int
    avg_response_time: float
    error_rate: float
    sample_count: int
    phase: str | None = None
    throughput: float = 0.0
    duration: float = 0.0

    @classmethod
    def from_load_result(cls, result: LoadTestResult, phase: str | None = None) -> PhaseResult:
        return cls(
            users=result.users,
            avg_response_time=result.avg_response_time,
            error_rate=result.error_rate,
            sample_count=result.total_requests,
            phase=phase,
            throughput=result.throughput,
            duration=result.duration,
        )


@dataclass(frozen=True)
class StressTestResult:
    """
    Outcome of a breaking-point search.

    ``breaking_point`` is the smallest tested user count whose error
    rate exceeded ``error_threshold``, or ``None`` when no step within
    the configured bounds crossed it.
    """

    results: tuple[PhaseResult, ...]
    breaking_point: int | None
    error_threshold: float
    duration: float
    test_type: str = field(default="Stress Test", init=False)

    @property
    def breaking_point_found(self) -> bool:
        return self.breaking_point is not None

    @property
    def max_users_tested(self) -> int:
        return max((step.users for step in self.results), default=0)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SpikeTestResult:
    """Base, spike and recovery phases, in execution order."""

    results: tuple[PhaseResult, PhaseResult, PhaseResult]
    duration: float
    test_type: str = field(default="Spike Test", init=False)

    @property
    def base(self) -> PhaseResult:
        return self.results[0]

    @property
    def spike(self) -> PhaseResult:
        return self.results[1]

    @property
    def recovery(self) -> PhaseResult:
        return self.results[2]

    @property
    def recovery_delta(self) -> float:
        """Absolute latency gap (ms) between recovery and base."""
        return abs(self.recovery.avg_response_time - self.base.avg_response_time)

    def recovered(self, tolerance: float = 0.5) -> bool:
        """
        Whether recovery latency is back within *tolerance* of base.

        Args:
            tolerance: Allowed gap as a fraction of base latency.
        """
        return self.recovery_delta <= self.base.avg_response_time * tolerance

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MonitoringPoint:
    """
    Cumulative endurance statistics at one moment.

    Each point covers everything recorded since the run started;
    difference consecutive points to get per-interval behaviour.

    Attributes:
        elapsed: Seconds since the run started.
        sample_count: Samples recorded so far.
        error_count: Failed samples so far.
        avg_response_time: Mean latency so far, in ms.
        error_rate: Failed percentage so far.
        total_response_time: Sum of latencies so far, in ms.
        max_response_time: Slowest latency so far, in ms.
    """

    elapsed: float
    sample_count: int
    error_count: int
    avg_response_time: float
    error_rate: float
    total_response_time: float
    max_response_time: float

    @classmethod
    def from_snapshot(cls, snapshot: MetricsSnapshot, elapsed: float) -> MonitoringPoint:
        return cls(
            elapsed=elapsed,
            sample_count=snapshot.sample_count,
            error_count=snapshot.error_count,
            avg_response_time=snapshot.avg_response_time,
            error_rate=snapshot.error_rate,
            total_response_time=snapshot.total_response_time,
            max_response_time=snapshot.max_response_time,
        )


@dataclass(frozen=True)
class EnduranceTestResult:
    """
    Outcome of a long run.

    Attributes:
        users: Concurrency of the run.
        duration: Hours actually elapsed.
        monitoring_data: Cumulative points, oldest first.
        avg_response_time: Mean latency across the whole run, in ms.
        max_response_time: Slowest latency across the whole run, in ms.
        avg_error_rate: Mean of the monitoring points' error rates.
        total_requests: Samples recorded across the whole run.
    """

    users: int
    duration: float
    monitoring_data: tuple[MonitoringPoint, ...]
    avg_response_time: float
    max_response_time: float
    avg_error_rate: float
    total_requests: int
    test_type: str = field(default="Endurance Test", init=False)

    @property
    def degradation(self) -> float:
        """Percent slowdown of the second half of the series over the first."""
        from perf_engine.analysis import degradation_percent

        return degradation_percent(self.monitoring_data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


TestResult = Union[LoadTestResult, StressTestResult, SpikeTestResult, EnduranceTestResult]
