"""
Virtual-user scheduling.

:class:`VirtualUserScheduler` models simultaneous real users with one
OS thread per virtual user.  Each user repeatedly invokes the caller's
operation, records the outcome into a :class:`MetricsRecorder`, pauses
for the think-time, and goes again until a shared stop signal fires.

Start times are staggered evenly across the ramp-up window (user ``i``
starts at ``i * ramp_up_time / users``) so load grows roughly linearly
instead of as a step.

Stopping is cooperative.  The stop signal is a single
``threading.Event``; users observe it between iterations and while
waiting, but an operation that is already running always completes and
is recorded before its user exits.  Timeouts belong to the operation.

Key Concepts Demonstrated:
- Thread-per-user concurrency with an idempotent shared stop event
- Operation failures absorbed into samples, engine faults propagated
- Thread-local access to the current virtual user for per-user state
- Per-user stop hooks so operations can release what a user opened
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

from perf_engine.errors import ConfigurationError, EngineFault, error_kind_for
from perf_engine.metrics import MetricsRecorder
from perf_engine.models import Sample, VirtualUser, VirtualUserState

logger = logging.getLogger(__name__)

Operation = Callable[[], Any]

_context = threading.local()


def current_virtual_user() -> VirtualUser | None:
    """
    Return the virtual user executing the calling thread.

    Operations can use this to keep per-user state (a session, a
    login token, a data pool) keyed on ``user.id``.  Returns ``None``
    outside of a scheduler worker.
    """
    return getattr(_context, "user", None)


def on_user_stop(callback: Callable[[], None]) -> bool:
    """
    Run *callback* in the calling worker thread when its virtual user stops.

    Lets an operation release per-user resources (a session, a socket)
    as soon as the user exits instead of when the whole run ends.
    Callbacks run in registration order after the user's last
    invocation; an exception from one is treated as an engine fault.

    Returns:
        ``True`` if the callback was registered, ``False`` when called
        outside of a scheduler worker.
    """
    callbacks = getattr(_context, "stop_callbacks", None)
    if callbacks is None:
        return False
    callbacks.append(callback)
    return True


def _returned_error(outcome: Any) -> str | None:
    """
    Extract an error label from an operation's return value.

    Operations usually signal failure by raising, but outcome records
    such as ``{"status": 503, "error": "HTTP 503"}`` or an object with
    a truthy ``error`` attribute count as failures too.
    """
    if isinstance(outcome, Mapping):
        error = outcome.get("error")
    else:
        error = getattr(outcome, "error", None)
        # Methods named ``error`` (loggers, clients) are not outcomes.
        if callable(error) and not isinstance(error, BaseException):
            return None

    if not error:
        return None
    if isinstance(error, BaseException):
        return error_kind_for(error)
    return str(error)


def _is_wait_seconds(value: float) -> bool:
    """Whether *value* is usable as a ``threading.Event.wait`` timeout."""
    return math.isfinite(value) and 0 <= value <= threading.TIMEOUT_MAX


class VirtualUserScheduler:
    """
    Runs ``users`` concurrent workers against one operation.

    Attributes:
        virtual_users: One :class:`VirtualUser` per worker, in id order.
    """

    def __init__(
        self,
        operation: Operation,
        recorder: MetricsRecorder,
        users: int,
        ramp_up_time: float = 0.0,
        think_time: float = 0.0,
        stop_signal: threading.Event | None = None,
    ):
        """
        Args:
            operation: Zero-argument unit of work.
            recorder: Destination for every invocation's sample.
            users: Number of concurrent virtual users (> 0).
            ramp_up_time: Seconds over which user start times are spread.
            think_time: Pause between invocations, in milliseconds.
            stop_signal: Shared event; a private one is created if omitted.

        Raises:
            ConfigurationError: If any argument is invalid.
        """
        if not callable(operation):
            raise ConfigurationError("operation must be callable")
        if isinstance(users, bool) or not isinstance(users, int) or users <= 0:
            raise ConfigurationError(f"users must be a positive integer, got {users!r}")
        if not _is_wait_seconds(ramp_up_time):
            raise ConfigurationError(
                f"ramp_up_time must be >= 0 and at most {threading.TIMEOUT_MAX}s, got {ramp_up_time!r}"
            )
        if not _is_wait_seconds(think_time / 1000):
            raise ConfigurationError(
                f"think_time must be >= 0 and at most {threading.TIMEOUT_MAX}s, got {think_time!r}ms"
            )

        self._operation = operation
        self._recorder = recorder
        self._think_seconds = think_time / 1000
        self._stop_signal = stop_signal if stop_signal is not None else threading.Event()
        self._threads: list[threading.Thread] = []
        self._faults: list[Exception] = []
        self._faults_lock = threading.Lock()
        self._started = False

        self.virtual_users = [
            VirtualUser(id=index, start_offset=index * ramp_up_time / users)
            for index in range(users)
        ]

    @property
    def stop_signal(self) -> threading.Event:
        return self._stop_signal

    @property
    def recorder(self) -> MetricsRecorder:
        return self._recorder

    def start(self) -> None:
        """Launch one worker thread per virtual user."""
        if self._started:
            raise EngineFault("Scheduler instances run once; create a new one per run")
        self._started = True

        for user in self.virtual_users:
            thread = threading.Thread(
                target=self._run_user,
                args=(user,),
                name=f"virtual-user-{user.id}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

        logger.debug(f"Started {len(self._threads)} virtual users")

    def stop(self) -> None:
        """Ask every worker to finish its current iteration and exit."""
        self._stop_signal.set()

    def join(self) -> None:
        """
        Wait for every worker to settle.

        Raises:
            EngineFault: If any worker hit an engine-internal error.
        """
        for thread in self._threads:
            thread.join()

        if self._faults:
            first = self._faults[0]
            raise EngineFault(f"Virtual user aborted by engine fault: {first!r}") from first

    def run(self, duration: float | None) -> float:
        """
        Start, wait, stop and drain.

        Args:
            duration: Seconds to run, or ``None`` to run until the stop
                signal is set from outside.

        Returns:
            Seconds actually elapsed, including the drain of in-flight work.
        """
        if duration is not None and not _is_wait_seconds(duration):
            raise ConfigurationError(
                f"duration must be >= 0 and at most {threading.TIMEOUT_MAX}s, got {duration!r}"
            )

        started = time.perf_counter()
        self.start()
        try:
            if duration is None:
                self._stop_signal.wait()
            else:
                deadline = started + duration
                remaining = duration
                while remaining > 0 and not self._stop_signal.wait(remaining):
                    remaining = deadline - time.perf_counter()
        finally:
            self.stop()
            self.join()
        return time.perf_counter() - started

    # -------------------------------------------------------------------------
    # Worker Loop
    # -------------------------------------------------------------------------

    def _run_user(self, user: VirtualUser) -> None:
        _context.user = user
        _context.stop_callbacks = []
        try:
            # A stop that fires during the stagger means this user never runs.
            if user.start_offset > 0 and self._stop_signal.wait(user.start_offset):
                return

            user.state = VirtualUserState.RUNNING
            while not self._stop_signal.is_set():
                self._invoke_once()
                user.iterations += 1
                if self._think_seconds > 0 and self._stop_signal.wait(self._think_seconds):
                    break
        except Exception as exc:
            self._fault(user, exc)
        finally:
            user.state = VirtualUserState.STOPPED
            self._run_stop_callbacks(user)
            _context.user = None

    def _fault(self, user: VirtualUser, exc: Exception) -> None:
        logger.error(f"Engine fault in virtual user {user.id}: {exc!r}")
        with self._faults_lock:
            self._faults.append(exc)
        self._stop_signal.set()

    def _run_stop_callbacks(self, user: VirtualUser) -> None:
        callbacks = _context.stop_callbacks
        _context.stop_callbacks = None
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                self._fault(user, exc)

    def _invoke_once(self) -> None:
        started = time.perf_counter()
        error_kind: str | None = None
        try:
            outcome = self._operation()
        except Exception as exc:
            error_kind = error_kind_for(exc)
        else:
            error_kind = _returned_error(outcome)
        duration_ms = (time.perf_counter() - started) * 1000

        self._recorder.record(
            Sample(
                timestamp=time.time(),
                duration_ms=duration_ms,
                success=error_kind is None,
                error_kind=error_kind,
            )
        )
