"""
Taskflow — Project service layer.

A project is always created together with its default workflow steps
(Design → Prototype → Test → Production), in one transaction.
"""

from __future__ import annotations

import logging

from taskflow.core.exceptions import NotFoundError, ValidationError
from taskflow.models import db
from taskflow.models.project import (
    DEFAULT_WORKFLOW_STEPS,
    PRIORITIES,
    PROJECT_STATUSES,
    Project,
    ProjectMember,
    WorkflowStep,
)
from taskflow.repositories.project_repository import ProjectRepository, UserRepository
from taskflow.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)


def create_project(data: dict, session=None) -> Project:
    """Create a project and its four default workflow steps.

    Body keys: name (required), description, status, priority, startDate,
    endDate, memberIds.
    """
    session = session or db.session
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    status = data.get("status") or "PLANNING"
    if status not in PROJECT_STATUSES:
        raise ValidationError(f"status must be one of: {sorted(PROJECT_STATUSES)}")
    priority = data.get("priority") or "MEDIUM"
    if priority not in PRIORITIES:
        raise ValidationError(f"priority must be one of: {sorted(PRIORITIES)}")
    try:
        start_date = parse_datetime(data.get("startDate"))
        end_date = parse_datetime(data.get("endDate"))
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    member_ids = list(dict.fromkeys(data.get("memberIds") or []))
    missing = set(member_ids) - UserRepository(session).existing_ids(member_ids)
    if missing:
        raise NotFoundError("User", ", ".join(str(m) for m in sorted(missing)))

    project = Project(
        name=name,
        description=data.get("description"),
        status=status,
        priority=priority,
        start_date=start_date,
        end_date=end_date,
        workflow_steps=[WorkflowStep(**step) for step in DEFAULT_WORKFLOW_STEPS],
        members=[ProjectMember(user_id=uid) for uid in member_ids],
    )
    ProjectRepository(session).add(project)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("Project %s created with %d workflow steps", project.id, len(DEFAULT_WORKFLOW_STEPS))
    return project


def get_project(project_id: int, session=None) -> Project:
    project = ProjectRepository(session or db.session).get(project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def add_member(project_id: int, user_id, role: str = "member", session=None) -> ProjectMember:
    session = session or db.session
    projects = ProjectRepository(session)
    project = projects.get(project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    if user_id is None:
        raise ValidationError("userId is required", details={"userId": "required"})
    if UserRepository(session).get(user_id) is None:
        raise NotFoundError("User", user_id)
    if user_id in projects.member_ids(project_id):
        raise ValidationError(f"User {user_id} is already a member of project {project_id}")

    member = projects.add_member(project, user_id, role)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    return member
