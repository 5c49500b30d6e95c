"""
Live HTTP fixtures for integration tests.

Starts a small Flask application in a background thread so the engine
can drive real HTTP traffic through :class:`ApiClient`.

Key Concepts Demonstrated:
- Live server fixture on an ephemeral port
- Endpoints with controlled latency and failure patterns
- Client fixtures bound to the live server
"""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Generator

import pytest
from flask import Flask, jsonify
from werkzeug.serving import make_server

from perf_engine.client import ApiClient
from perf_engine.performance import PerformanceUtils


def create_target_app() -> Flask:
    """
    Build the system under test.

    Routes:
        ``/``            fast JSON response
        ``/slow``        responds after about 50ms
        ``/flaky``       503 on every other request
        ``/api/health``  health endpoint
    """
    application = Flask(__name__)
    counter = itertools.count(1)
    lock = threading.Lock()

    @application.route("/")
    def index():
        return jsonify({"message": "ok"})

    @application.route("/slow")
    def slow():
        time.sleep(0.05)
        return jsonify({"message": "slow"})

    @application.route("/flaky")
    def flaky():
        with lock:
            call_number = next(counter)
        if call_number % 2 == 0:
            return jsonify({"error": "Service unavailable"}), 503
        return jsonify({"message": "ok"})

    @application.route("/api/health")
    def health():
        return jsonify({"status": "healthy"})

    return application


# -----------------------------------------------------------------------------
# Server Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture(scope="session")
def live_server() -> Generator[str, None, None]:
    """
    Start the target app in a background thread.

    Yields:
        str: Base URL of the running server.
    """
    server = make_server("127.0.0.1", 0, create_target_app(), threaded=True)
    server_thread = threading.Thread(target=server.serve_forever, name="live-server")
    server_thread.daemon = True
    server_thread.start()

    yield f"http://127.0.0.1:{server.server_port}"

    server.shutdown()
    server_thread.join(timeout=5)


# -----------------------------------------------------------------------------
# Client Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def api_client(live_server: str) -> Generator[ApiClient, None, None]:
    """Fresh client bound to the live server."""
    client = ApiClient(live_server)
    yield client
    client.close()


@pytest.fixture
def performance(api_client: ApiClient) -> Generator[PerformanceUtils, None, None]:
    """Facade whose session metrics follow ``api_client``."""
    utils = PerformanceUtils(api_client)
    yield utils
    utils.close()
