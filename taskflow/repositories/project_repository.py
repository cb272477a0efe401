"""Project and user stores."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from taskflow.models.project import (
    CLOSED_PROJECT_STATUSES,
    Project,
    ProjectMember,
    WorkflowStep,
)
from taskflow.models.user import User


class ProjectRepository:
    def __init__(self, session):
        self.session = session

    def get(self, project_id: int) -> Project | None:
        return self.session.get(Project, project_id)

    def get_for_update(self, project_id: int) -> Project | None:
        """Load a project with a row lock (``SELECT ... FOR UPDATE``).

        ``populate_existing`` makes sure the identity map does not hand back
        a stale status read before the lock was taken.
        """
        stmt = (
            select(Project)
            .where(Project.id == project_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_step(self, project_id: int, step_id: int) -> WorkflowStep | None:
        return self.session.execute(
            select(WorkflowStep).where(
                WorkflowStep.id == step_id,
                WorkflowStep.project_id == project_id,
            )
        ).scalar_one_or_none()

    def due_between(self, start: datetime, end: datetime) -> list[Project]:
        """Projects still open with ``start <= end_date <= end``."""
        stmt = (
            select(Project)
            .where(
                Project.end_date.is_not(None),
                Project.end_date >= start,
                Project.end_date <= end,
                Project.status.notin_(CLOSED_PROJECT_STATUSES),
            )
            .options(selectinload(Project.members))
            .order_by(Project.end_date, Project.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def member_ids(self, project_id: int) -> list[int]:
        return list(self.session.execute(
            select(ProjectMember.user_id)
            .where(ProjectMember.project_id == project_id)
            .order_by(ProjectMember.id)
        ).scalars().all())

    def add(self, project: Project) -> Project:
        self.session.add(project)
        self.session.flush()
        return project

    def add_member(self, project: Project, user_id: int, role: str = "member") -> ProjectMember:
        member = ProjectMember(user_id=user_id, role=role)
        project.members.append(member)
        self.session.flush()
        return member


class UserRepository:
    def __init__(self, session):
        self.session = session

    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def existing_ids(self, user_ids) -> set[int]:
        ids = list(user_ids)
        if not ids:
            return set()
        return set(self.session.execute(
            select(User.id).where(User.id.in_(ids))
        ).scalars().all())
