"""
Request timing middleware.

Every response gets ``X-Request-ID`` (echoed from the caller or generated)
and ``X-Request-Duration-Ms``.  Item and order routes log the ids from the
URL so request lines line up with the executor's transition lines.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probes are polled constantly; time them but do not log them
_SKIP_LOG = frozenset({"/api/v1/health", "/api/v1/health/live"})

SLOW_THRESHOLD_MS = 1000


def _route_ids() -> dict:
    args = request.view_args or {}
    return {key: args[key] for key in ("order_id", "item_id") if key in args}


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id
        if request.path in _SKIP_LOG:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "request_id": g.request_id,
            **_route_ids(),
        }
        if response.status_code >= 500:
            level = logging.ERROR
        elif duration_ms > SLOW_THRESHOLD_MS:
            level = logging.WARNING
        else:
            level = logging.DEBUG
        logger.log(level, "%s %s %d", request.method, request.path, response.status_code, extra=extra)
        return response
