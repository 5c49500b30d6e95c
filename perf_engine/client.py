"""
HTTP unit of work for performance tests.

:class:`ApiClient` is the default thing virtual users invoke: a thin
wrapper around ``requests`` that times every call and reports it as an
:class:`ApiResponse` (status, duration, body, error) instead of raising.
:meth:`ApiClient.operation` turns a request into the zero-argument
operation the scheduler expects, raising :class:`OperationFailure` on
transport errors and non-success statuses so they are recorded as
failed samples.

Each thread gets its own ``requests.Session``, so every virtual user
keeps its own connection pool and cookies, just like a real client.
A virtual user's session is closed as soon as that user stops, so
finished stress steps and spike phases leave no idle connections
open against the system under test.

Key Concepts Demonstrated:
- Per-thread sessions for concurrent virtual users
- Response listeners for passive metrics collection
- Safe JSON parsing that tolerates non-JSON bodies
- Bounded request history for long-running tests
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import requests

from perf_engine.config import get_config
from perf_engine.errors import OperationFailure
from perf_engine.scheduler import on_user_stop

logger = logging.getLogger(__name__)

ResponseListener = Callable[["ApiResponse"], None]


@dataclass(frozen=True)
class ApiResponse:
    """
    Outcome of one HTTP call.

    Attributes:
        method: HTTP method used.
        url: Absolute URL requested.
        status: HTTP status code, or ``None`` when no response arrived.
        duration: Elapsed time in milliseconds.
        data: Parsed JSON body, raw text for non-JSON bodies, else ``None``.
        error: Failure label (``"HTTP 404"``, ``"Timeout"``, ...) or ``None``.
    """

    method: str
    url: str
    status: int | None
    duration: float
    data: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class HealthCheckResult:
    """Aggregated result of :meth:`ApiClient.health_check`."""

    healthy: bool
    details: tuple[ApiResponse, ...]


def _safe_body(response: requests.Response) -> Any:
    """Return the JSON body, falling back to text when it is not JSON."""
    try:
        return response.json()
    except ValueError:
        return response.text or None


class ApiClient:
    """
    Timed HTTP client bound to one base URL.

    Example:
        client = ApiClient("https://www.saucedemo.com")
        response = client.get("/")
        assert client.validate_status(response, 200)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        history_limit: int = 1000,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        """
        Args:
            base_url: Scheme and host every path is appended to.
            timeout: Seconds to wait for a response; defaults to the
                configured ``REQUEST_TIMEOUT``.
            history_limit: Most recent responses kept in the history.
            session_factory: Builds the per-thread ``requests`` session.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else get_config().REQUEST_TIMEOUT
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._lock = threading.Lock()
        self._headers: dict[str, str] = {"Accept": "application/json, text/html;q=0.9"}
        self._auth_token: str | None = None
        self._history: deque[ApiResponse] = deque(maxlen=history_limit)
        self._listeners: list[ResponseListener] = []

    # -------------------------------------------------------------------------
    # Request Configuration
    # -------------------------------------------------------------------------

    def set_auth_token(self, token: str) -> None:
        """Send ``Authorization: Bearer <token>`` on every request."""
        self._auth_token = token

    def clear_auth_token(self) -> None:
        self._auth_token = None

    def set_headers(self, headers: dict[str, str]) -> None:
        """Merge *headers* into the headers sent on every request."""
        with self._lock:
            self._headers.update(headers)

    @property
    def headers(self) -> dict[str, str]:
        """Headers the next request will carry."""
        with self._lock:
            headers = dict(self._headers)
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    def add_listener(self, listener: ResponseListener) -> None:
        """Call *listener* with every :class:`ApiResponse` this client produces."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: ResponseListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
            on_user_stop(self._release_session)
        return session

    def _release_session(self) -> None:
        """Close the calling thread's session; runs when its virtual user stops."""
        session = getattr(self._local, "session", None)
        if session is None:
            return
        self._local.session = None
        with self._lock:
            if session in self._sessions:
                self._sessions.remove(session)
        session.close()

    @property
    def open_sessions(self) -> int:
        """Number of sessions opened and not yet closed."""
        with self._lock:
            return len(self._sessions)

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def request(self, method: str, path: str = "/", **kwargs: Any) -> ApiResponse:
        """
        Send one request and time it.

        Never raises for HTTP or transport failures; they are reported
        through :attr:`ApiResponse.error`.

        Args:
            method: HTTP method.
            path: Path relative to ``base_url`` (or an absolute URL).
            **kwargs: Passed through to ``requests.Session.request``.
        """
        url = self._url(path)
        headers = self.headers
        headers.update(kwargs.pop("headers", None) or {})
        kwargs.setdefault("timeout", self.timeout)

        status: int | None = None
        data: Any = None
        error: str | None = None
        started = time.perf_counter()
        try:
            response = self._session().request(method, url, headers=headers, **kwargs)
        except requests.Timeout:
            error = "Timeout"
        except requests.RequestException as exc:
            error = type(exc).__name__
        else:
            status = response.status_code
            data = _safe_body(response)
            if status >= 400:
                error = f"HTTP {status}"
        duration = (time.perf_counter() - started) * 1000

        api_response = ApiResponse(
            method=method.upper(),
            url=url,
            status=status,
            duration=duration,
            data=data,
            error=error,
        )
        if error:
            logger.debug(f"{api_response.method} {url} failed after {duration:.1f}ms: {error}")

        with self._lock:
            self._history.append(api_response)
            listeners = list(self._listeners)
        for listener in listeners:
            listener(api_response)
        return api_response

    def get(self, path: str = "/", **kwargs: Any) -> ApiResponse:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, json: Any = None, **kwargs: Any) -> ApiResponse:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Any = None, **kwargs: Any) -> ApiResponse:
        return self.request("PUT", path, json=json, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> ApiResponse:
        return self.request("DELETE", path, **kwargs)

    def operation(self, method: str = "GET", path: str = "/", **kwargs: Any) -> Callable[[], ApiResponse]:
        """
        Build a zero-argument unit of work for the scheduler.

        The returned callable raises :class:`OperationFailure` carrying
        the response's error label when the request fails.
        """

        def _operation() -> ApiResponse:
            response = self.request(method, path, **dict(kwargs))
            if response.error:
                raise OperationFailure(response.error, f"{method} {response.url}: {response.error}")
            return response

        return _operation

    # -------------------------------------------------------------------------
    # History and Statistics
    # -------------------------------------------------------------------------

    def get_request_history(self) -> list[ApiResponse]:
        with self._lock:
            return list(self._history)

    def clear_request_history(self) -> None:
        with self._lock:
            self._history.clear()

    def get_performance_stats(self) -> dict[str, float]:
        """
        Summarise the request history.

        Returns:
            ``total_requests``, ``average_response_time`` (ms) and
            ``success_rate`` (percent).
        """
        history = self.get_request_history()
        total = len(history)
        if not total:
            return {"total_requests": 0, "average_response_time": 0.0, "success_rate": 0.0}
        return {
            "total_requests": total,
            "average_response_time": sum(item.duration for item in history) / total,
            "success_rate": sum(1 for item in history if item.ok) / total * 100,
        }

    # -------------------------------------------------------------------------
    # Validation Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_status(response: ApiResponse, expected: int | Iterable[int]) -> bool:
        if isinstance(expected, int):
            return response.status == expected
        return response.status in set(expected)

    @staticmethod
    def validate_response_time(response: ApiResponse, max_ms: float) -> bool:
        return response.duration <= max_ms

    def health_check(self, paths: Iterable[str]) -> HealthCheckResult:
        """GET every path; healthy only if all of them succeed."""
        details = tuple(self.get(path) for path in paths)
        return HealthCheckResult(
            healthy=bool(details) and all(item.ok for item in details),
            details=details,
        )

    def close(self) -> None:
        """Close every per-thread session this client opened."""
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()
