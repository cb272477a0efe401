"""
Taskflow — Bulk Notifier.

Fan-out helper that turns notification requests, and task lifecycle events,
into notification rows written as one batch.

The notifier creates exactly what it is given: it applies no dedup policy of
its own. Callers that need reminder dedup (the due/overdue scanner) filter
before calling; the store's unique ``dedup_key`` is the last line that keeps
two concurrent scans from writing the same reminder.

Writes go into the caller's transaction; the caller commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from taskflow.core.exceptions import ValidationError
from taskflow.models.notification import NOTIFICATION_TYPES, build_dedup_key
from taskflow.services.events import TASK_ASSIGNED, TASK_COMPLETED, TaskEvent

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "TODO": "To do",
    "IN_PROGRESS": "In progress",
    "REVIEW": "In review",
    "COMPLETED": "Completed",
}


@dataclass(frozen=True)
class NotificationRequest:
    user_id: int
    type: str
    title: str
    message: str
    task_id: int | None = None
    project_id: int | None = None

    @property
    def dedup_key(self) -> str | None:
        return build_dedup_key(self.user_id, self.type, self.task_id, self.project_id)

    def validate(self) -> None:
        missing = [
            name for name in ("user_id", "type", "title", "message")
            if getattr(self, name) in (None, "")
        ]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={name: "required" for name in missing},
            )
        if self.type not in NOTIFICATION_TYPES:
            raise ValidationError(
                f"Invalid notification type. Must be one of: {sorted(NOTIFICATION_TYPES)}",
                details={"type": self.type},
            )

    def to_row(self) -> dict:
        return {
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "task_id": self.task_id,
            "project_id": self.project_id,
            "dedup_key": self.dedup_key,
        }


class BulkNotifier:
    """Persists notification batches and converts task events into them."""

    def __init__(self, notifications, tasks, projects):
        self.notifications = notifications
        self.tasks = tasks
        self.projects = projects

    def notify(self, requests) -> int:
        """Write all requests as one batch. Returns the number of rows created."""
        requests = list(requests)
        if not requests:
            return 0
        for req in requests:
            req.validate()
        created = self.notifications.bulk_insert([req.to_row() for req in requests])
        logger.debug("Bulk notifier wrote %d of %d notifications", created, len(requests))
        return created

    # ── Task events ───────────────────────────────────────────────────────

    def handle_event(self, event: TaskEvent) -> int:
        return self.handle_events([event])

    def handle_events(self, events) -> int:
        """Convert events to requests and write them in a single batch."""
        events = list(events)
        if not events:
            return 0
        tasks = {t.id: t for t in self.tasks.get_many({e.task_id for e in events})}
        requests = []
        for event in events:
            task = tasks.get(event.task_id)
            if task is None:
                logger.warning("Task event %s for missing task_id=%s ignored", event.kind, event.task_id)
                continue
            requests.extend(self._requests_for_event(event, task))
        return self.notify(requests)

    def _requests_for_event(self, event: TaskEvent, task) -> list[NotificationRequest]:
        project_name = task.project.name if task.project else ""

        def _req(user_id, ntype, title, message):
            return NotificationRequest(
                user_id=user_id, type=ntype, title=title, message=message,
                task_id=task.id, project_id=task.project_id,
            )

        if event.kind == TASK_ASSIGNED:
            due = f" Due: {task.end_date.date().isoformat()}." if task.end_date else ""
            return [
                _req(uid, "TASK_ASSIGNED", "New task assigned",
                     f'"{task.title}" was assigned to you. Project: {project_name}.{due}')
                for uid in dict.fromkeys(event.user_ids)
            ]

        if event.kind == TASK_COMPLETED:
            recipients = list(task.responsible_user_ids)
            for uid in self.projects.member_ids(task.project_id):
                if uid not in recipients:
                    recipients.append(uid)
            return [
                _req(uid, "TASK_COMPLETED", "Task completed",
                     f'"{task.title}" was completed. Project: {project_name}')
                for uid in recipients
            ]

        old_label = STATUS_LABELS.get(event.old_status, event.old_status)
        new_label = STATUS_LABELS.get(event.new_status, event.new_status)
        return [
            _req(uid, "TASK_STATUS_CHANGED", "Task status changed",
                 f'Status of "{task.title}" changed from "{old_label}" to "{new_label}".')
            for uid in task.responsible_user_ids
        ]
