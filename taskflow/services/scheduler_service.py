"""
Taskflow — Scheduler Service.

Entry points that run the due/overdue scans, on demand (HTTP, CLI) or on an
interval (APScheduler ``BackgroundScheduler``).

Architecture:
    - SchedulerTrigger: aggregates the three scan procedures; no state between runs
    - register_job / run_job: named job registry with run timing
    - SchedulerService: starts the background interval job once per process

Each scan runs in its own transaction. A scan that raises is rolled back,
logged, and reported in ``errors``; the remaining scans still run and their
counts are kept.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, current_app

from taskflow.middleware.logging_config import job_context
from taskflow.models import db
from taskflow.repositories.notification_repository import NotificationRepository
from taskflow.repositories.project_repository import ProjectRepository
from taskflow.repositories.task_repository import TaskRepository
from taskflow.services.bulk_notifier import BulkNotifier
from taskflow.services.due_scanner import DueScanner
from taskflow.utils.helpers import utcnow

logger = logging.getLogger(__name__)

# (statistics key, scan label, DueScanner method)
FULL_SCANS = (
    ("dueTaskNotifications", "due_soon_tasks", "scan_due_soon_tasks"),
    ("overdueTaskNotifications", "overdue_tasks", "scan_overdue_tasks"),
    ("projectNotifications", "due_soon_projects", "scan_due_soon_projects"),
)
TASK_SCANS = FULL_SCANS[:2]


def build_scanner(session=None, app_config=None) -> DueScanner:
    """Wire a DueScanner to SQLAlchemy repositories on the given session."""
    session = session or db.session
    app_config = app_config if app_config is not None else current_app.config
    notifications = NotificationRepository(session)
    tasks = TaskRepository(session)
    projects = ProjectRepository(session)
    return DueScanner(
        tasks, projects, notifications,
        BulkNotifier(notifications, tasks, projects),
        task_window=timedelta(days=app_config.get("TASK_DUE_SOON_DAYS", 3)),
        project_window=timedelta(days=app_config.get("PROJECT_DUE_SOON_DAYS", 7)),
    )


class SchedulerTrigger:
    """Runs scan procedures in sequence and sums their created-counts."""

    def __init__(self, session, scanner: DueScanner):
        self.session = session
        self.scanner = scanner

    def run_notification_checks(self, now: datetime | None = None) -> dict:
        """Full rescan: due-soon tasks, overdue tasks, due-soon projects."""
        return self._run(FULL_SCANS, now)

    def run_task_checks(self, now: datetime | None = None) -> dict:
        """Lightweight rescan of tasks only."""
        return self._run(TASK_SCANS, now)

    def _run(self, scans, now) -> dict:
        now = now or utcnow()
        report = {key: 0 for key, _label, _method in scans}
        errors = []
        for key, label, method in scans:
            try:
                report[key] = getattr(self.scanner, method)(now)
                self.session.commit()
            except Exception as exc:
                self.session.rollback()
                logger.exception("Notification scan %s failed", label)
                errors.append({"scan": label, "error": f"{label} scan failed ({type(exc).__name__})"})
        report["totalCreated"] = sum(report[key] for key, _label, _method in scans)
        report["errors"] = errors
        logger.info("Notification checks finished: %s", report)
        return report


def build_trigger(session=None, app_config=None) -> SchedulerTrigger:
    session = session or db.session
    return SchedulerTrigger(session, build_scanner(session, app_config))


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("notification_checks")
        def run_checks(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


@register_job("notification_checks")
def notification_checks_job(app: Flask) -> dict:
    """Full due/overdue notification scan."""
    return build_trigger(db.session, app.config).run_notification_checks()


def run_job(app: Flask, job_name: str) -> dict:
    """Execute a registered job inside an app context.

    Returns:
        Dict with job_name, status, duration_ms, result or error.
    """
    fn = _job_registry.get(job_name)
    if not fn:
        return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

    start = time.monotonic()
    result = None
    error = None
    status = "success"
    try:
        with app.app_context(), job_context(job_name):
            result = fn(app)
    except Exception as exc:
        status = "failed"
        error = type(exc).__name__
        logger.exception("Job %s failed", job_name)

    duration_ms = int((time.monotonic() - start) * 1000)
    if isinstance(result, dict) and result.get("errors"):
        status = "partial"
    logger.info("Job %s finished status=%s duration_ms=%d", job_name, status, duration_ms)
    return {
        "job_name": job_name,
        "status": status,
        "duration_ms": duration_ms,
        "result": result,
        "error": error,
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Background scheduler
# ═══════════════════════════════════════════════════════════════════════════

class SchedulerService:
    """Owns the process-wide BackgroundScheduler (started at most once)."""

    _scheduler: BackgroundScheduler | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        app.extensions["taskflow_scheduler"] = cls
        if not app.config.get("ENABLE_SCHEDULER", False):
            logger.info("Background scheduler disabled (ENABLE_SCHEDULER=False)")
            return
        cls.start(app)

    @classmethod
    def start(cls, app: Flask) -> BackgroundScheduler:
        if cls._scheduler is not None:
            logger.info("Background scheduler already running, skipping start")
            return cls._scheduler

        minutes = app.config.get("NOTIFICATION_SCAN_INTERVAL_MINUTES", 15)
        scheduler = BackgroundScheduler(timezone=app.config.get("SCHEDULER_TIMEZONE", "UTC"))
        scheduler.add_job(
            run_job,
            trigger="interval",
            minutes=minutes,
            args=(app, "notification_checks"),
            id="notification_checks",
            replace_existing=True,
            max_instances=1,      # no overlapping runs
            coalesce=True,        # merge missed runs
        )
        scheduler.start()
        cls._scheduler = scheduler
        logger.info("Background scheduler started: notification checks every %d minutes", minutes)
        return scheduler

    @classmethod
    def shutdown(cls) -> None:
        if cls._scheduler is not None:
            cls._scheduler.shutdown(wait=False)
            cls._scheduler = None
