"""
Performance threshold gate.

Compares a :class:`LoadTestResult` against limits defined in a YAML
file so CI can turn a run into a pass/fail decision:

- **Error rate (%)** — ``max_error_rate_percent`` (required)
- **P95 latency (ms)** — ``max_p95_ms`` (required)
- **Average latency (ms)** — ``max_avg_response_ms`` (optional)
- **Throughput (req/s)** — ``min_throughput_rps`` (optional)

Key Concepts Demonstrated:
- YAML-driven performance gating
- Safe float conversion with clear error messages
- Human-readable summary table printed to stdout for CI logs
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from perf_engine.errors import ConfigurationError
from perf_engine.models import LoadTestResult

REQUIRED_KEYS = ("max_error_rate_percent", "max_p95_ms")
OPTIONAL_KEYS = ("max_avg_response_ms", "min_throughput_rps")


@dataclass(frozen=True)
class ThresholdCheck:
    """One metric compared against its limit."""

    metric: str
    actual: float
    limit: float
    passed: bool


@dataclass(frozen=True)
class ThresholdReport:
    """All checks for one result."""

    checks: tuple[ThresholdCheck, ...]

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def failures(self) -> list[ThresholdCheck]:
        return [check for check in self.checks if not check.passed]


def _parse_float(value: Any, field_name: str) -> float:
    """
    Coerce *value* to ``float``, stripping ``%`` suffixes if present.

    Raises:
        ConfigurationError: If the value is missing, empty, or non-numeric.
    """
    if value is None:
        raise ConfigurationError(f"Missing field: {field_name}")

    text = str(value).strip().replace("%", "")
    if text == "":
        raise ConfigurationError(f"Empty value for field: {field_name}")

    try:
        return float(text)
    except ValueError as exc:
        raise ConfigurationError(f"Non-numeric value for {field_name}: {value}") from exc


def parse_thresholds(data: dict[str, Any]) -> dict[str, float]:
    """
    Validate a thresholds mapping.

    Returns:
        The required limits plus any optional limits that were given.

    Raises:
        ConfigurationError: If a required key is missing or any value is
            non-numeric.
    """
    thresholds = {key: _parse_float(data.get(key), key) for key in REQUIRED_KEYS}
    for key in OPTIONAL_KEYS:
        if data.get(key) is not None:
            thresholds[key] = _parse_float(data[key], key)
    return thresholds


def load_thresholds(path: Path) -> dict[str, float]:
    """Read and validate threshold limits from a YAML file."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Thresholds file {path} must contain a mapping")
    return parse_thresholds(data)


def evaluate(result: LoadTestResult, thresholds: dict[str, float]) -> ThresholdReport:
    """Compare *result* against *thresholds*."""
    checks = [
        ThresholdCheck(
            metric="Error rate (%)",
            actual=result.error_rate,
            limit=thresholds["max_error_rate_percent"],
            passed=result.error_rate <= thresholds["max_error_rate_percent"],
        ),
        ThresholdCheck(
            metric="P95 latency (ms)",
            actual=result.p95_response_time,
            limit=thresholds["max_p95_ms"],
            passed=result.p95_response_time <= thresholds["max_p95_ms"],
        ),
    ]

    if "max_avg_response_ms" in thresholds:
        checks.append(
            ThresholdCheck(
                metric="Avg latency (ms)",
                actual=result.avg_response_time,
                limit=thresholds["max_avg_response_ms"],
                passed=result.avg_response_time <= thresholds["max_avg_response_ms"],
            )
        )
    if "min_throughput_rps" in thresholds:
        checks.append(
            ThresholdCheck(
                metric="Throughput (req/s)",
                actual=result.throughput,
                limit=thresholds["min_throughput_rps"],
                passed=result.throughput >= thresholds["min_throughput_rps"],
            )
        )

    return ThresholdReport(checks=tuple(checks))


def print_summary(report: ThresholdReport) -> None:
    """Print a human-readable results table to stdout for CI logs."""
    print("Performance Threshold Check")
    print("-" * 60)
    print(f"{'Metric':<22}{'Actual':>12}{'Limit':>14}{'Status':>12}")
    print("-" * 60)
    for check in report.checks:
        status = "PASS" if check.passed else "FAIL"
        print(f"{check.metric:<22}{check.actual:>12.2f}{check.limit:>14.2f}{status:>12}")
    print("-" * 60)
    print(f"Overall: {'PASS' if report.passed else 'FAIL'}")
