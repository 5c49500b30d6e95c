"""
Performance engine configuration.

Defines environment-specific configuration classes for the engine and
its default HTTP unit of work.  Values are read from environment
variables with sensible defaults, and ``get_config`` selects the right
class from the ``PERF_ENV`` environment variable (or an explicit key).
"""

from __future__ import annotations

import os


class Config:
    """Base configuration with default settings."""

    LOG_LEVEL: str = os.environ.get("PERF_LOG_LEVEL", "INFO")

    # Pause between two invocations of the same virtual user, in milliseconds,
    # when a profile does not specify one.
    DEFAULT_THINK_TIME_MS: float = float(os.environ.get("PERF_DEFAULT_THINK_TIME_MS", "0"))

    # Seconds the default HTTP unit of work waits for a response.
    REQUEST_TIMEOUT: float = float(os.environ.get("PERF_REQUEST_TIMEOUT", "10"))

    # Recovery latency may differ from base latency by this fraction of base.
    SPIKE_RECOVERY_TOLERANCE: float = float(
        os.environ.get("PERF_SPIKE_RECOVERY_TOLERANCE", "0.5")
    )

    # Largest acceptable slowdown between the two halves of an endurance run.
    MAX_DEGRADATION_PERCENT: float = float(
        os.environ.get("PERF_MAX_DEGRADATION_PERCENT", "20")
    )

    DEFAULT_THRESHOLDS_PATH: str = os.environ.get(
        "PERF_THRESHOLDS_PATH", "tests/performance/thresholds.yml"
    )


class DevelopmentConfig(Config):
    """Development environment configuration."""

    LOG_LEVEL: str = os.environ.get("PERF_LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    """Testing environment configuration."""

    LOG_LEVEL: str = os.environ.get("TEST_PERF_LOG_LEVEL", "WARNING")

    # Short timeout keeps failure-path tests fast.
    REQUEST_TIMEOUT: float = float(os.environ.get("TEST_PERF_REQUEST_TIMEOUT", "2"))


class ProductionConfig(Config):
    """Configuration for CI performance gates."""

    LOG_LEVEL: str = os.environ.get("PERF_LOG_LEVEL", "INFO")


# Configuration mapping for easy access
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": Config,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Get the configuration class for the specified environment.

    Args:
        env: Environment name (development, testing, production).
             If None, uses the PERF_ENV environment variable.

    Returns:
        Configuration class for the specified environment.
    """
    if env is None:
        env = os.environ.get("PERF_ENV", "default")
    return config.get(env, config["default"])
