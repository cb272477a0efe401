"""
Taskflow — Notification Service.

Request-facing notification operations: create, list, mark read, delete.
The service owns the commit; the repository only flushes.
"""

from __future__ import annotations

import logging

from taskflow.core.exceptions import NotFoundError, ValidationError
from taskflow.models import db
from taskflow.repositories.notification_repository import NotificationRepository
from taskflow.repositories.project_repository import UserRepository
from taskflow.services.bulk_notifier import NotificationRequest

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


class NotificationService:
    def __init__(self, session, notifications: NotificationRepository, users: UserRepository):
        self.session = session
        self.notifications = notifications
        self.users = users

    # ── Create ────────────────────────────────────────────────────────────

    def create(self, *, user_id, type, title, message, task_id=None, project_id=None):
        """Create a single notification.

        Returns:
            ``(notification, unread_count)`` after commit.
        """
        req = NotificationRequest(
            user_id=user_id, type=type, title=(title or "").strip(),
            message=(message or "").strip(), task_id=task_id, project_id=project_id,
        )
        req.validate()
        if self.users.get(user_id) is None:
            raise NotFoundError("User", user_id)

        row = req.to_row()
        # A manual reminder never fails on an outstanding one; it just does not hold the key
        if row["dedup_key"] and self.notifications.existing_unread_keys([row["dedup_key"]]):
            row["dedup_key"] = None
        notif = self.notifications.create(**row)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return notif, self.notifications.count_unread(user_id)

    # ── Query ─────────────────────────────────────────────────────────────

    def list_for_user(self, user_id, *, unread_only=False, limit=50, offset=0) -> dict:
        if user_id is None:
            raise ValidationError("userId is required", details={"userId": "required"})
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        items, total = self.notifications.list_for_user(
            user_id, unread_only=unread_only, limit=min(limit, MAX_PAGE_SIZE), offset=offset,
        )
        return {
            "notifications": [n.to_dict() for n in items],
            "unreadCount": self.notifications.count_unread(user_id),
            "total": total,
        }

    # ── Actions ───────────────────────────────────────────────────────────

    def _get_or_raise(self, notification_id):
        notif = self.notifications.get(notification_id)
        if notif is None:
            raise NotFoundError("Notification", notification_id)
        return notif

    def mark_read(self, notification_id):
        notif = self._get_or_raise(notification_id)
        self.notifications.mark_read(notif)
        self._commit()
        return notif

    def mark_all_read(self, user_id) -> int:
        if user_id is None:
            raise ValidationError("userId is required", details={"userId": "required"})
        count = self.notifications.mark_all_read(user_id)
        self._commit()
        logger.info("Marked %d notifications read for user %s", count, user_id)
        return count

    def delete(self, notification_id) -> None:
        notif = self._get_or_raise(notification_id)
        self.notifications.delete(notif)
        self._commit()

    def _commit(self):
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise


def build_notification_service(session=None) -> NotificationService:
    session = session or db.session
    return NotificationService(session, NotificationRepository(session), UserRepository(session))
