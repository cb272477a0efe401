"""
Taskflow — Task domain model.

Models:
    - Task: unit of work inside a project, optionally linked to a workflow step
    - TaskAssignment: co-assignee link (task ↔ user)
"""

from datetime import datetime, timezone

from taskflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TASK_STATUSES = {"TODO", "IN_PROGRESS", "REVIEW", "COMPLETED"}
TASK_PRIORITIES = {"LOW", "MEDIUM", "HIGH", "URGENT"}


def _utcnow():
    return datetime.now(timezone.utc)


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    workflow_step_id = db.Column(
        db.Integer, db.ForeignKey("workflow_steps.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    assigned_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
        comment="Primary assignee",
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="TODO",
                       comment="TODO | IN_PROGRESS | REVIEW | COMPLETED")
    priority = db.Column(db.String(20), nullable=False, default="MEDIUM",
                         comment="LOW | MEDIUM | HIGH | URGENT")
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    estimated_hours = db.Column(db.Float, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project", back_populates="tasks")
    workflow_step = db.relationship("WorkflowStep", back_populates="tasks")
    assigned_user = db.relationship("User", foreign_keys=[assigned_id])
    assignments = db.relationship("TaskAssignment", back_populates="task", cascade="all, delete-orphan")

    @property
    def responsible_user_ids(self) -> list[int]:
        """Primary assignee followed by co-assignees, each user once."""
        ids = []
        if self.assigned_id is not None:
            ids.append(self.assigned_id)
        for assignment in self.assignments:
            if assignment.user_id not in ids:
                ids.append(assignment.user_id)
        return ids

    def to_dict(self):
        return {
            "id": self.id,
            "projectId": self.project_id,
            "workflowStepId": self.workflow_step_id,
            "assignedId": self.assigned_id,
            "assignedUserIds": [a.user_id for a in self.assignments],
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "estimatedHours": self.estimated_hours,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]} [{self.status}]>"


class TaskAssignment(db.Model):
    __tablename__ = "task_assignments"
    __table_args__ = (
        db.UniqueConstraint("task_id", "user_id", name="uq_task_assignments_task_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    task = db.relationship("Task", back_populates="assignments")
    user = db.relationship("User")
