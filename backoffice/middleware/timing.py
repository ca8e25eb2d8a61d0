"""
Request id and duration headers, plus access logging.

Every response carries ``X-Request-ID`` (the caller's, or a fresh one)
and ``X-Request-Duration-Ms``. Requests slower than
``SLOW_REQUEST_MS`` are logged at WARNING and 5xx responses at ERROR;
the rest go to DEBUG.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000

# Probes are polled constantly by the orchestrator
_UNLOGGED_PATHS = frozenset({"/api/v1/health", "/api/v1/health/ready", "/api/v1/health/live"})


def init_request_timing(app: Flask):

    @app.before_request
    def _stamp_request():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_request(response):
        started = getattr(g, "request_start", None)
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path not in _UNLOGGED_PATHS:
            _log_access(response.status_code, elapsed_ms)
        return response


def _log_access(status: int, elapsed_ms: float):
    if elapsed_ms > SLOW_REQUEST_MS:
        level, label = logging.WARNING, "Slow request"
    elif status >= 500:
        level, label = logging.ERROR, "Server error"
    else:
        level, label = logging.DEBUG, "Request"
    logger.log(
        level, "%s: %s %s -> %d in %.0fms", label, request.method, request.path, status, elapsed_ms,
        extra={
            "request_id": g.request_id,
            "method": request.method,
            "path": request.path,
            "status": status,
            "duration_ms": round(elapsed_ms, 1),
            "remote_addr": request.remote_addr,
        },
    )
