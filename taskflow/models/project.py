"""
Taskflow — Project domain model.

Models:
    - Project: top-level unit of work with lifecycle status
    - WorkflowStep: ordered stage inside a project (four created by default)
    - ProjectMember: user membership, used for project-level notifications
"""

from datetime import datetime, timezone

from taskflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = {"PLANNING", "IN_PROGRESS", "ON_HOLD", "COMPLETED", "CANCELLED"}
PRIORITIES = {"LOW", "MEDIUM", "HIGH", "URGENT"}

# Statuses that no longer need deadline reminders
CLOSED_PROJECT_STATUSES = ("COMPLETED", "CANCELLED")

DEFAULT_WORKFLOW_STEPS = (
    {"order": 1, "name": "Design", "color": "#EF4444"},
    {"order": 2, "name": "Prototype", "color": "#F59E0B"},
    {"order": 3, "name": "Test", "color": "#3B82F6"},
    {"order": 4, "name": "Production", "color": "#10B981"},
)


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """Project with a coarse lifecycle status driven by its workflow steps."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="PLANNING",
        comment="PLANNING | IN_PROGRESS | ON_HOLD | COMPLETED | CANCELLED",
    )
    priority = db.Column(db.String(20), nullable=False, default="MEDIUM",
                         comment="LOW | MEDIUM | HIGH | URGENT")
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    workflow_steps = db.relationship(
        "WorkflowStep", back_populates="project",
        order_by="WorkflowStep.order", cascade="all, delete-orphan",
    )
    members = db.relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")
    tasks = db.relationship("Task", back_populates="project", cascade="all, delete-orphan")

    def to_dict(self, include_steps=False):
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_steps:
            result["workflowSteps"] = [s.to_dict() for s in self.workflow_steps]
        return result

    def __repr__(self):
        return f"<Project {self.id}: {self.name[:40]} [{self.status}]>"


class WorkflowStep(db.Model):
    __tablename__ = "workflow_steps"
    __table_args__ = (
        db.UniqueConstraint("project_id", "order", name="uq_workflow_steps_project_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    order = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    color = db.Column(db.String(20), nullable=False, default="#6B7280")

    project = db.relationship("Project", back_populates="workflow_steps")
    tasks = db.relationship("Task", back_populates="workflow_step")

    def to_dict(self):
        return {
            "id": self.id,
            "projectId": self.project_id,
            "order": self.order,
            "name": self.name,
            "color": self.color,
        }

    def __repr__(self):
        return f"<WorkflowStep {self.id}: {self.order}. {self.name}>"


class ProjectMember(db.Model):
    __tablename__ = "project_members"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role = db.Column(db.String(30), nullable=False, default="member")
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    project = db.relationship("Project", back_populates="members")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "projectId": self.project_id,
            "userId": self.user_id,
            "role": self.role,
            "joinedAt": self.joined_at.isoformat() if self.joined_at else None,
        }
