"""
One-stop facade used by performance test suites.

:class:`PerformanceUtils` bundles the four runners behind the method
names test authors reach for (``load_test``, ``stress_test``,
``spike_test``, ``endurance_test``) and accepts either configuration
objects or plain dictionaries, including the camelCase keys of older
profiles (``rampUpTime``, ``thinkTime``, ...).

It also keeps a session-level :class:`MetricsRecorder`.  When built
around an :class:`ApiClient`, every request that client makes is
recorded there automatically; :meth:`PerformanceUtils.track` does the
same for any other callable.  Runs themselves never share this
recorder: each run still collects into its own fresh one.

Key Concepts Demonstrated:
- Facade over independent runners
- Passive metrics collection through client listeners
- Dictionary-or-dataclass configuration for readable test code
"""

from __future__ import annotations

import logging
import time
from typing import Any, TypeVar

from perf_engine.client import ApiClient, ApiResponse
from perf_engine.config import Config, get_config
from perf_engine.errors import error_kind_for
from perf_engine.metrics import MetricsRecorder
from perf_engine.models import (
    EnduranceConfig,
    EnduranceTestResult,
    LoadConfig,
    LoadTestResult,
    MetricsSnapshot,
    Sample,
    SpikeConfig,
    SpikeTestResult,
    StressConfig,
    StressTestResult,
)
from perf_engine.runners import (
    EnduranceTestRunner,
    LoadTestRunner,
    SpikeTestRunner,
    StressTestRunner,
)
from perf_engine.scheduler import Operation

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT", LoadConfig, StressConfig, SpikeConfig, EnduranceConfig)


class PerformanceUtils:
    """
    Entry point for load, stress, spike and endurance tests.

    Attributes:
        client: Optional HTTP client whose requests feed :attr:`metrics`.
        metrics: Session-level recorder behind :meth:`get_current_metrics`.
        settings: Configuration class in effect.
    """

    def __init__(self, client: ApiClient | None = None, settings: type[Config] | None = None):
        self.settings = settings or get_config()
        self.metrics = MetricsRecorder()
        self.client = client
        self._load_runner = LoadTestRunner()
        self._stress_runner = StressTestRunner(self._load_runner)
        self._spike_runner = SpikeTestRunner(self._load_runner)
        self._endurance_runner = EnduranceTestRunner()

        if client is not None:
            client.add_listener(self._record_response)

    def _record_response(self, response: ApiResponse) -> None:
        self.metrics.record(
            Sample(
                timestamp=time.time(),
                duration_ms=response.duration,
                success=response.ok,
                error_kind=response.error,
            )
        )

    def _coerce(self, config: ConfigT | dict[str, Any], config_class: type[ConfigT]) -> ConfigT:
        if isinstance(config, dict):
            return config_class.from_dict(
                config, default_think_time=self.settings.DEFAULT_THINK_TIME_MS
            )
        return config

    # -------------------------------------------------------------------------
    # Test Modes
    # -------------------------------------------------------------------------

    def load_test(self, operation: Operation, config: LoadConfig | dict[str, Any]) -> LoadTestResult:
        """Fixed concurrency for a fixed duration; see :class:`LoadTestRunner`."""
        return self._load_runner.run(operation, self._coerce(config, LoadConfig))

    def stress_test(
        self, operation: Operation, config: StressConfig | dict[str, Any]
    ) -> StressTestResult:
        """Breaking-point search; see :class:`StressTestRunner`."""
        return self._stress_runner.run(operation, self._coerce(config, StressConfig))

    def spike_test(self, operation: Operation, config: SpikeConfig | dict[str, Any]) -> SpikeTestResult:
        """Base, spike and recovery phases; see :class:`SpikeTestRunner`."""
        return self._spike_runner.run(operation, self._coerce(config, SpikeConfig))

    def endurance_test(
        self, operation: Operation, config: EnduranceConfig | dict[str, Any]
    ) -> EnduranceTestResult:
        """Long run with monitoring; see :class:`EnduranceTestRunner`."""
        return self._endurance_runner.run(operation, self._coerce(config, EnduranceConfig))

    # -------------------------------------------------------------------------
    # Session Metrics
    # -------------------------------------------------------------------------

    def track(self, operation: Operation) -> Any:
        """
        Invoke *operation* once, timing it into the session metrics.

        Exceptions are recorded and then re-raised, since a direct call
        is not part of a run that could absorb them.
        """
        started = time.perf_counter()
        try:
            outcome = operation()
        except Exception as exc:
            self.metrics.record(
                Sample(
                    timestamp=time.time(),
                    duration_ms=(time.perf_counter() - started) * 1000,
                    success=False,
                    error_kind=error_kind_for(exc),
                )
            )
            raise
        self.metrics.record(
            Sample(
                timestamp=time.time(),
                duration_ms=(time.perf_counter() - started) * 1000,
                success=True,
            )
        )
        return outcome

    def get_current_metrics(self) -> MetricsSnapshot:
        """Snapshot of the session metrics (``response_times``, ``errors``, ...)."""
        return self.metrics.snapshot()

    def clear_metrics(self) -> None:
        """Reset the session metrics; call between tests, never during a run."""
        self.metrics.clear()

    def close(self) -> None:
        """Detach from the client, if any."""
        if self.client is not None:
            self.client.remove_listener(self._record_response)
