"""
Request timing middleware.

Every response carries ``X-Request-ID`` (echoed from the caller when sent)
and ``X-Request-Duration-Ms``. Requests over the slow threshold are logged at
WARNING, 5xx at ERROR, the rest at DEBUG. Scan triggers are measured against
SCAN_SLOW_THRESHOLD_MS.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000
SCAN_SLOW_THRESHOLD_MS = 10_000

_QUIET_PATHS = frozenset({"/api/health"})
_SCAN_ENDPOINTS = frozenset({
    "notification_bp.scheduled_check",
    "notification_bp.auto_check",
    "notification_bp.check",
})


def _log_level(status: int, duration_ms: float, threshold: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > threshold:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_timer(response):
        start = g.pop("request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in _QUIET_PATHS:
            return response

        threshold = SCAN_SLOW_THRESHOLD_MS if request.endpoint in _SCAN_ENDPOINTS else SLOW_THRESHOLD_MS
        logger.log(
            _log_level(response.status_code, duration_ms, threshold),
            "%s %s -> %d (%.0fms)", request.method, request.path, response.status_code, duration_ms,
            extra={
                "status": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.remote_addr,
                "project_id": (request.view_args or {}).get("project_id"),
            },
        )
        return response
