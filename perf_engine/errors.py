"""
Exception taxonomy for the performance engine.

Three kinds of failure can happen while a performance test runs, and
each one travels a different path:

- :class:`OperationFailure` — the unit of work under test failed.  It is
  recorded as a failed sample and never leaves the scheduler, so one
  misbehaving virtual user cannot abort the run.
- :class:`ConfigurationError` — the caller supplied invalid parameters.
  Raised synchronously before any worker starts.
- :class:`EngineFault` — something inside the engine itself broke.
  Fatal; it propagates out of the runner instead of corrupting the
  statistics.
"""

from __future__ import annotations


class PerformanceError(Exception):
    """Base class for every error raised by the engine."""


class ConfigurationError(PerformanceError, ValueError):
    """Invalid test parameters; the run is rejected before it starts."""


class EngineFault(PerformanceError, RuntimeError):
    """An internal engine failure that must not be absorbed into metrics."""


class OperationFailure(PerformanceError):
    """
    Failure raised by a unit of work.

    Operations may raise any exception to signal failure; raising this
    one lets the caller choose the ``error_kind`` that ends up on the
    recorded sample (e.g. ``"HTTP 503"`` or ``"Timeout"``).

    Attributes:
        kind: Short, aggregatable label for the failure.
    """

    def __init__(self, kind: str, message: str | None = None):
        super().__init__(message or kind)
        self.kind = kind


def error_kind_for(exc: BaseException) -> str:
    """Return the ``error_kind`` label a failed sample should carry for *exc*."""
    if isinstance(exc, OperationFailure):
        return exc.kind
    return type(exc).__name__
