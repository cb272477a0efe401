"""Task store — queries used by the scanner, the workflow engine and task services."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import selectinload

from taskflow.models.project import WorkflowStep
from taskflow.models.task import Task, TaskAssignment


class TaskRepository:
    def __init__(self, session):
        self.session = session

    def get(self, task_id: int) -> Task | None:
        return self.session.get(Task, task_id)

    def _open_tasks(self):
        return (
            select(Task)
            .where(Task.status != "COMPLETED", Task.end_date.is_not(None))
            .options(selectinload(Task.assignments), selectinload(Task.project))
            .order_by(Task.end_date, Task.id)
        )

    def due_between(self, start: datetime, end: datetime) -> list[Task]:
        """Open tasks with ``start <= end_date <= end``."""
        stmt = self._open_tasks().where(Task.end_date >= start, Task.end_date <= end)
        return list(self.session.execute(stmt).scalars().all())

    def overdue(self, now: datetime) -> list[Task]:
        """Open tasks with ``end_date < now``."""
        stmt = self._open_tasks().where(Task.end_date < now)
        return list(self.session.execute(stmt).scalars().all())

    def complete_step_tasks(self, project_id: int, step_id: int, now: datetime) -> list[int]:
        """Set every open task of a step to COMPLETED in one UPDATE.

        Returns the ids of the tasks that changed.
        """
        open_filter = (
            Task.project_id == project_id,
            Task.workflow_step_id == step_id,
            Task.status != "COMPLETED",
        )
        task_ids = list(self.session.execute(
            select(Task.id).where(*open_filter).with_for_update()
        ).scalars().all())
        if not task_ids:
            return []
        self.session.execute(
            update(Task)
            .where(Task.id.in_(task_ids), Task.status != "COMPLETED")
            .values(status="COMPLETED", completed_at=now, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return task_ids

    def step_completion(self, project_id: int) -> list[tuple[int, int, int]]:
        """Return ``(step_id, task_count, completed_count)`` for every step of a project.

        Steps without tasks are included with zero counts. Tasks without a
        step do not appear.
        """
        completed = func.coalesce(
            func.sum(case((Task.status == "COMPLETED", 1), else_=0)), 0
        )
        stmt = (
            select(WorkflowStep.id, func.count(Task.id), completed)
            .select_from(WorkflowStep)
            .outerjoin(Task, Task.workflow_step_id == WorkflowStep.id)
            .where(WorkflowStep.project_id == project_id)
            .group_by(WorkflowStep.id)
            .order_by(WorkflowStep.id)
        )
        return [(row[0], int(row[1]), int(row[2])) for row in self.session.execute(stmt)]

    def assigned_user_ids(self, task_id: int) -> set[int]:
        return set(self.session.execute(
            select(TaskAssignment.user_id).where(TaskAssignment.task_id == task_id)
        ).scalars().all())

    def add_assignment(self, task: Task, user_id: int) -> TaskAssignment:
        assignment = TaskAssignment(user_id=user_id)
        task.assignments.append(assignment)
        self.session.flush()
        return assignment

    def get_many(self, task_ids) -> list[Task]:
        if not task_ids:
            return []
        stmt = (
            select(Task).where(Task.id.in_(list(task_ids)))
            .options(selectinload(Task.assignments), selectinload(Task.project))
            .order_by(Task.id)
        )
        return list(self.session.execute(stmt).scalars().all())
