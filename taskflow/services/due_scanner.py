"""
Taskflow — Due/Overdue Scanner.

Three independent, stateless scan procedures. Each reads the task or project
population, decides who needs a reminder, drops every (user, type, entity)
key that already has an unread reminder, and hands the rest to the Bulk
Notifier. Each returns the number of notifications actually created.

Windows (``now`` is injectable for tests):
    due-soon task:     now <= end_date <= now + task_window
    overdue task:      end_date < now
    due-soon project:  now <= end_date <= now + project_window

A task whose end date equals ``now`` is due-soon; one millisecond earlier it
is overdue. Due-soon and overdue are different notification types and are
never deduplicated against each other.

Procedures do not commit; the scheduler runs each one in its own transaction.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from taskflow.services.bulk_notifier import NotificationRequest
from taskflow.utils.helpers import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TASK_WINDOW = timedelta(days=3)
DEFAULT_PROJECT_WINDOW = timedelta(days=7)

_DAY_SECONDS = 24 * 60 * 60


def _whole_days(delta: timedelta) -> int:
    return math.ceil(delta.total_seconds() / _DAY_SECONDS)


def _days_left_text(days: int) -> str:
    if days <= 0:
        return "today"
    return f"within {days} day{'s' if days != 1 else ''}"


class DueScanner:
    def __init__(self, tasks, projects, notifications, notifier, *,
                 task_window: timedelta = DEFAULT_TASK_WINDOW,
                 project_window: timedelta = DEFAULT_PROJECT_WINDOW):
        self.tasks = tasks
        self.projects = projects
        self.notifications = notifications
        self.notifier = notifier
        self.task_window = task_window
        self.project_window = project_window

    # ── Scan procedures ───────────────────────────────────────────────────

    def scan_due_soon_tasks(self, now: datetime | None = None) -> int:
        now = ensure_utc(now) or utcnow()
        requests = []
        for task in self.tasks.due_between(now, now + self.task_window):
            days = _whole_days(ensure_utc(task.end_date) - now)
            project_name = task.project.name if task.project else ""
            for user_id in task.responsible_user_ids:
                requests.append(NotificationRequest(
                    user_id=user_id,
                    type="TASK_DUE_SOON",
                    title="Task due soon",
                    message=f'"{task.title}" must be completed {_days_left_text(days)}. '
                            f"Project: {project_name}",
                    task_id=task.id,
                    project_id=task.project_id,
                ))
        return self._create_missing("due-soon tasks", requests)

    def scan_overdue_tasks(self, now: datetime | None = None) -> int:
        now = ensure_utc(now) or utcnow()
        requests = []
        for task in self.tasks.overdue(now):
            days = max(_whole_days(now - ensure_utc(task.end_date)), 1)
            project_name = task.project.name if task.project else ""
            for user_id in task.responsible_user_ids:
                requests.append(NotificationRequest(
                    user_id=user_id,
                    type="TASK_OVERDUE",
                    title="Task overdue",
                    message=f'"{task.title}" is {days} day{"s" if days != 1 else ""} overdue. '
                            f"Project: {project_name}",
                    task_id=task.id,
                    project_id=task.project_id,
                ))
        return self._create_missing("overdue tasks", requests)

    def scan_due_soon_projects(self, now: datetime | None = None) -> int:
        now = ensure_utc(now) or utcnow()
        requests = []
        for project in self.projects.due_between(now, now + self.project_window):
            days = _whole_days(ensure_utc(project.end_date) - now)
            for member in project.members:
                requests.append(NotificationRequest(
                    user_id=member.user_id,
                    type="PROJECT_DUE_SOON",
                    title="Project due soon",
                    message=f'"{project.name}" must be completed {_days_left_text(days)}.',
                    project_id=project.id,
                ))
        return self._create_missing("due-soon projects", requests)

    # ── Dedup ─────────────────────────────────────────────────────────────

    def _create_missing(self, label: str, requests: list[NotificationRequest]) -> int:
        """Drop requests whose key already has an unread reminder, notify the rest."""
        outstanding = self.notifications.outstanding_reminder_keys(
            (r.user_id, r.type, r.task_id, r.project_id) for r in requests
        )
        fresh, seen = [], set(outstanding)
        for req in requests:
            if req.dedup_key in seen:
                continue
            seen.add(req.dedup_key)
            fresh.append(req)

        created = self.notifier.notify(fresh)
        logger.info("Scan %s: %d candidates, %d outstanding, %d created",
                    label, len(requests), len(requests) - len(fresh), created)
        return created
