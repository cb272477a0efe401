"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in taskflow/__init__.py with no default limits.

Usage:
    from taskflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Full rescans touch every open task and project
SCAN_TRIGGER_LIMIT = "12/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

_SCAN_ENDPOINTS = (
    "notification_bp.scheduled_check",
    "notification_bp.auto_check",
    "notification_bp.check",
)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Scan triggers:    12/minute
        - Project/task API: 60/minute
        - Notifications:    200/minute (polled by the UI)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for endpoint in _SCAN_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view:
            app.view_functions[endpoint] = limiter.limit(SCAN_TRIGGER_LIMIT)(view)

    for bp_name in ("project_bp", "task_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("notification_bp")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — scans: %s, write: %s, read: %s",
        SCAN_TRIGGER_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
