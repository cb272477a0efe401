"""
Taskflow — Notification domain model.

Models:
    - Notification: in-app notification record with read tracking

Reminder notifications (due-soon / overdue) carry a ``dedup_key`` while they
are unread. The unique constraint on that column is what keeps concurrent
scans from creating the same reminder twice; the key is released when the
notification is marked read.
"""

from datetime import datetime, timezone

from taskflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "TASK_DUE_SOON",
    "TASK_OVERDUE",
    "PROJECT_DUE_SOON",
    "TASK_ASSIGNED",
    "TASK_COMPLETED",
    "TASK_STATUS_CHANGED",
}

# Types produced by the periodic scan and therefore deduplicated
REMINDER_TYPES = {"TASK_DUE_SOON", "TASK_OVERDUE", "PROJECT_DUE_SOON"}


def build_dedup_key(user_id, notification_type, task_id=None, project_id=None):
    """Return the dedup key for a reminder, or None for event notifications.

    Task reminders are keyed by task, project reminders by project.
    """
    if notification_type not in REMINDER_TYPES:
        return None
    if task_id is not None:
        return f"{notification_type}:{user_id}:task:{task_id}"
    return f"{notification_type}:{user_id}:project:{project_id}"


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, nullable=False)

    # Context links
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True,
    )

    dedup_key = db.Column(db.String(120), nullable=True, unique=True,
                          comment="Set only while an unread reminder is outstanding")

    # Read tracking
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    task = db.relationship("Task")
    project = db.relationship("Project")

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)
        self.dedup_key = None

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "taskId": self.task_id,
            "projectId": self.project_id,
            "isRead": self.is_read,
            "readAt": self.read_at.isoformat() if self.read_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.type} → user {self.user_id}>"
