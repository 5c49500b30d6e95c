"""
In-process performance-test engine.

Drives concurrent virtual users against a caller-supplied unit of work
and derives load, stress, spike and endurance statistics.

Key Concepts Demonstrated:
- Thread-per-user load generation with staggered ramp-up
- Lock-protected metrics collection with immutable snapshots
- Breaking-point search, multi-phase spike profiles and endurance
  monitoring built from the same load-run building block
"""

import logging

from perf_engine.config import get_config
from perf_engine.errors import (
    ConfigurationError,
    EngineFault,
    OperationFailure,
    PerformanceError,
)
from perf_engine.metrics import MetricsRecorder
from perf_engine.models import (
    EnduranceConfig,
    EnduranceTestResult,
    LoadConfig,
    LoadTestResult,
    MetricsSnapshot,
    MonitoringPoint,
    PhaseResult,
    Sample,
    SpikeConfig,
    SpikeTestResult,
    StressConfig,
    StressTestResult,
    VirtualUser,
    VirtualUserState,
    load_profile,
)
from perf_engine.runners import (
    EnduranceTestRunner,
    LoadTestRunner,
    SpikeTestRunner,
    StressTestRunner,
)
from perf_engine.scheduler import VirtualUserScheduler, current_virtual_user, on_user_stop
from perf_engine.client import ApiClient, ApiResponse
from perf_engine.performance import PerformanceUtils

# Configure logging
logging.basicConfig(
    level=get_config().LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

__all__ = [
    "ApiClient",
    "ApiResponse",
    "ConfigurationError",
    "EnduranceConfig",
    "EnduranceTestResult",
    "EnduranceTestRunner",
    "EngineFault",
    "LoadConfig",
    "LoadTestResult",
    "LoadTestRunner",
    "MetricsRecorder",
    "MetricsSnapshot",
    "MonitoringPoint",
    "OperationFailure",
    "PerformanceError",
    "PerformanceUtils",
    "PhaseResult",
    "Sample",
    "SpikeConfig",
    "SpikeTestResult",
    "SpikeTestRunner",
    "StressConfig",
    "StressTestResult",
    "StressTestRunner",
    "VirtualUser",
    "VirtualUserScheduler",
    "VirtualUserState",
    "current_virtual_user",
    "on_user_stop",
    "load_profile",
]
