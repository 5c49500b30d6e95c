"""
Command-line entry point.

Runs a YAML test profile against an HTTP endpoint using the default
:class:`ApiClient` unit of work, prints the outcome, and turns it into
a CI decision:

- load profiles are gated against a thresholds file;
- spike profiles pass when recovery is within the configured tolerance;
- endurance profiles pass when degradation stays under the configured limit;
- stress profiles always pass and report the breaking point.

Exit codes follow a three-state convention so that CI can distinguish
"thresholds breached" from "script crashed":

- ``0`` — passed
- ``1`` — at least one threshold was breached
- ``2`` — the script itself failed (missing file, bad YAML, etc.)

Usage::

    perf-engine --profile tests/performance/profiles/smoke_load.yml \\
        --base-url http://localhost:5000 --path /api/health
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from perf_engine.analysis import degradation_percent
from perf_engine.client import ApiClient
from perf_engine.config import get_config
from perf_engine.models import (
    EnduranceConfig,
    EnduranceTestResult,
    LoadConfig,
    LoadTestResult,
    SpikeConfig,
    SpikeTestResult,
    StressConfig,
    StressTestResult,
    TestResult,
    load_profile,
)
from perf_engine.performance import PerformanceUtils
from perf_engine.thresholds import evaluate, load_thresholds, print_summary

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    settings = get_config()
    parser = argparse.ArgumentParser(
        description="Run a performance test profile against an HTTP endpoint."
    )
    parser.add_argument("--profile", required=True, type=Path, help="Path to a YAML test profile")
    parser.add_argument("--base-url", required=True, help="Scheme and host of the system under test")
    parser.add_argument("--path", default="/", help="Request path each virtual user hits")
    parser.add_argument("--method", default="GET", help="HTTP method each virtual user sends")
    parser.add_argument(
        "--thresholds",
        type=Path,
        default=Path(settings.DEFAULT_THRESHOLDS_PATH),
        help="Path to thresholds YAML file (load profiles only)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds",
    )
    return parser.parse_args(argv)


def _print_load(result: LoadTestResult) -> None:
    print(f"{result.test_type}: {result.users} users for {result.duration:.2f}s")
    print(f"  Total requests:  {result.total_requests}")
    print(f"  Successful:      {result.successful_requests}")
    print(f"  Failed:          {result.failed_requests}")
    print(f"  Error rate:      {result.error_rate:.2f}%")
    print(f"  Avg response:    {result.avg_response_time:.2f}ms")
    print(f"  P95 response:    {result.p95_response_time:.2f}ms")
    print(f"  Throughput:      {result.throughput:.2f} req/s")
    for kind, count in sorted(result.error_breakdown.items(), key=lambda item: -item[1]):
        print(f"  {count}x {kind}")


def _print_phases(result: StressTestResult | SpikeTestResult) -> None:
    print(f"{'Step':<10}{'Users':>8}{'Samples':>10}{'Avg (ms)':>12}{'Errors (%)':>12}")
    for index, step in enumerate(result.results, start=1):
        label = step.phase or str(index)
        print(
            f"{label:<10}{step.users:>8}{step.sample_count:>10}"
            f"{step.avg_response_time:>12.2f}{step.error_rate:>12.2f}"
        )


def report(result: TestResult) -> int:
    """
    Print *result* and decide the exit code for non-load modes.

    Load results are gated separately against the thresholds file.
    """
    settings = get_config()

    if isinstance(result, StressTestResult):
        print(f"{result.test_type}: threshold {result.error_threshold}%")
        _print_phases(result)
        if result.breaking_point_found:
            print(f"Breaking point: {result.breaking_point} users")
        else:
            print("Breaking point: not found within bounds")
        return EXIT_PASS

    if isinstance(result, SpikeTestResult):
        print(result.test_type)
        _print_phases(result)
        recovered = result.recovered(settings.SPIKE_RECOVERY_TOLERANCE)
        print(f"Recovery delta: {result.recovery_delta:.2f}ms ({'PASS' if recovered else 'FAIL'})")
        return EXIT_PASS if recovered else EXIT_THRESHOLD_BREACH

    if isinstance(result, EnduranceTestResult):
        degradation = degradation_percent(result.monitoring_data)
        print(f"{result.test_type}: {result.users} users for {result.duration:.4f}h")
        print(f"  Monitoring points: {len(result.monitoring_data)}")
        print(f"  Avg response:      {result.avg_response_time:.2f}ms")
        print(f"  Max response:      {result.max_response_time:.2f}ms")
        print(f"  Avg error rate:    {result.avg_error_rate:.2f}%")
        passed = degradation <= settings.MAX_DEGRADATION_PERCENT
        print(f"  Degradation:       {degradation:.2f}% ({'PASS' if passed else 'FAIL'})")
        return EXIT_PASS if passed else EXIT_THRESHOLD_BREACH

    _print_load(result)
    return EXIT_PASS


def main(argv: list[str] | None = None) -> int:
    """
    Entry point: load the profile, run it, report and gate.

    Returns:
        ``EXIT_PASS``, ``EXIT_THRESHOLD_BREACH`` or ``EXIT_SCRIPT_ERROR``.
    """
    args = parse_args(argv)
    settings = get_config()
    logging.getLogger("perf_engine").setLevel(settings.LOG_LEVEL)

    client = ApiClient(args.base_url, timeout=args.timeout)
    # Runners keep their own per-run recorders; no session metrics needed here.
    utils = PerformanceUtils(settings=settings)
    operation = client.operation(args.method, args.path)

    try:
        profile = load_profile(args.profile, default_think_time=settings.DEFAULT_THINK_TIME_MS)
        thresholds = load_thresholds(args.thresholds) if isinstance(profile, LoadConfig) else None

        runners = {
            LoadConfig: utils.load_test,
            StressConfig: utils.stress_test,
            SpikeConfig: utils.spike_test,
            EnduranceConfig: utils.endurance_test,
        }
        result = runners[type(profile)](operation, profile)

        exit_code = report(result)
        if thresholds is not None:
            threshold_report = evaluate(result, thresholds)
            print_summary(threshold_report)
            exit_code = EXIT_PASS if threshold_report.passed else EXIT_THRESHOLD_BREACH
        return exit_code
    except Exception as exc:
        print(f"Performance run failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR
    finally:
        client.close()


if __name__ == "__main__":
    raise SystemExit(main())
