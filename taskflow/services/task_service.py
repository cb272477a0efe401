"""
Taskflow — Task service layer.

Task creation, co-assignment and status changes. Every mutation that
changes who is responsible for a task or what state it is in emits a
``TaskEvent`` to the Bulk Notifier in the same transaction.

Rules:
  - db.session.commit() happens only in the service layer.
  - Status changes are unconstrained: any status may follow any other.
"""

from __future__ import annotations

import logging

from taskflow.core.exceptions import NotFoundError, ValidationError
from taskflow.models import db
from taskflow.models.task import TASK_PRIORITIES, TASK_STATUSES, Task
from taskflow.repositories.notification_repository import NotificationRepository
from taskflow.repositories.project_repository import ProjectRepository, UserRepository
from taskflow.repositories.task_repository import TaskRepository
from taskflow.services.bulk_notifier import BulkNotifier
from taskflow.services.events import TaskEvent
from taskflow.utils.helpers import parse_datetime, utcnow

logger = logging.getLogger(__name__)


def _notifier(session) -> BulkNotifier:
    tasks = TaskRepository(session)
    return BulkNotifier(NotificationRepository(session), tasks, ProjectRepository(session))


def _commit(session):
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise


def _require_users(session, user_ids) -> list[int]:
    try:
        ids = list(dict.fromkeys(int(uid) for uid in user_ids))
    except (TypeError, ValueError) as exc:
        raise ValidationError("userIds must be a list of integer ids") from exc
    missing = set(ids) - UserRepository(session).existing_ids(ids)
    if missing:
        raise NotFoundError("User", ", ".join(str(m) for m in sorted(missing)))
    return ids


def create_task(project_id: int, data: dict, session=None) -> Task:
    """Create a task in a project, optionally assigned and linked to a step.

    Body keys: title (required), description, status, priority, startDate,
    endDate, estimatedHours, assignedId, workflowStepId, assignedUserIds.

    Raises:
        ValidationError: missing title, bad enum value or malformed date.
        NotFoundError: unknown project, step or user.
    """
    session = session or db.session
    projects = ProjectRepository(session)
    project = projects.get(project_id)
    if project is None:
        raise NotFoundError("Project", project_id)

    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    status = data.get("status", "TODO")
    if status not in TASK_STATUSES:
        raise ValidationError(f"status must be one of: {sorted(TASK_STATUSES)}")
    priority = data.get("priority", "MEDIUM")
    if priority not in TASK_PRIORITIES:
        raise ValidationError(f"priority must be one of: {sorted(TASK_PRIORITIES)}")
    try:
        start_date = parse_datetime(data.get("startDate"))
        end_date = parse_datetime(data.get("endDate"))
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    step_id = data.get("workflowStepId")
    if step_id is not None and projects.get_step(project_id, step_id) is None:
        raise NotFoundError("WorkflowStep", step_id)

    assigned_id = data.get("assignedId")
    co_assignees = data.get("assignedUserIds") or []
    user_ids = _require_users(session, ([assigned_id] if assigned_id is not None else []) + list(co_assignees))
    if assigned_id is not None:
        assigned_id = int(assigned_id)

    task = Task(
        project_id=project_id,
        workflow_step_id=step_id,
        assigned_id=assigned_id,
        title=title,
        description=data.get("description"),
        status=status,
        priority=priority,
        start_date=start_date,
        end_date=end_date,
        estimated_hours=data.get("estimatedHours"),
        completed_at=utcnow() if status == "COMPLETED" else None,
    )
    session.add(task)
    session.flush()

    tasks = TaskRepository(session)
    for uid in user_ids:
        if uid != assigned_id:
            tasks.add_assignment(task, uid)
    if user_ids:
        _notifier(session).handle_event(TaskEvent.assigned(task.id, user_ids))

    _commit(session)
    logger.info("Task %s created in project %s (%d assignees)", task.id, project_id, len(user_ids))
    return task


def assign_users(task_id: int, user_ids, session=None) -> int:
    """Add co-assignees and notify the ones that are new.

    Returns:
        Number of TASK_ASSIGNED notifications created.
    """
    session = session or db.session
    tasks = TaskRepository(session)
    task = tasks.get(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    if not user_ids:
        raise ValidationError("userIds is required", details={"userIds": "required"})

    ids = _require_users(session, user_ids)
    already = tasks.assigned_user_ids(task_id)
    if task.assigned_id is not None:
        already.add(task.assigned_id)
    new_ids = [uid for uid in ids if uid not in already]
    for uid in new_ids:
        tasks.add_assignment(task, uid)

    created = _notifier(session).handle_event(TaskEvent.assigned(task.id, new_ids)) if new_ids else 0
    _commit(session)
    logger.info("Task %s: %d new assignees", task_id, len(new_ids))
    return created


def update_task_status(task_id: int, status: str, session=None) -> Task:
    """Set a task's status; notify assignees (and members on completion) if it changed."""
    session = session or db.session
    if status not in TASK_STATUSES:
        raise ValidationError(f"status must be one of: {sorted(TASK_STATUSES)}",
                              details={"status": status})
    task = TaskRepository(session).get(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)

    old_status = task.status
    if old_status == status:
        return task

    task.status = status
    task.completed_at = utcnow() if status == "COMPLETED" else None
    session.flush()
    _notifier(session).handle_event(TaskEvent.status_changed(task.id, old_status, status))
    _commit(session)
    logger.info("Task %s status %s → %s", task_id, old_status, status)
    return task
