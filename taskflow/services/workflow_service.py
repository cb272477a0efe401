"""
Taskflow — Workflow Completion Engine.

Cascades a "complete this workflow step" request into a bulk task update and
a project status recomputation.

    complete_workflow_step(project_id, step_id, mark_as_completed)
      1. mark_as_completed=False → no-op (the engine only drives tasks forward)
      2. every open task of the step → COMPLETED (one UPDATE, committed)
      3. a step is complete iff it has ≥1 task and all of them are COMPLETED;
         a step with zero tasks is never complete
      4. all steps complete → project COMPLETED
      5. otherwise PLANNING → IN_PROGRESS; nothing else is forced
      6. tasks without a step are not part of the check

Concurrency:
    Requests against the same project are serialized by an in-process lock
    and, during recomputation, by a row lock on the project. Recomputation
    reads after the task update has committed, so two concurrent requests
    completing different steps cannot both miss the final transition.

Partial failure:
    The task update (2) and the recomputation (3-5) are separate
    transactions. If the project has vanished after (2) the recomputation is
    skipped. If the recomputation fails, the completed tasks stay committed
    and the error propagates.
"""

from __future__ import annotations

import logging
import threading

from taskflow.core.exceptions import NotFoundError
from taskflow.models import db
from taskflow.repositories.notification_repository import NotificationRepository
from taskflow.repositories.project_repository import ProjectRepository
from taskflow.repositories.task_repository import TaskRepository
from taskflow.services.bulk_notifier import BulkNotifier
from taskflow.services.events import TaskEvent
from taskflow.utils.helpers import utcnow

logger = logging.getLogger(__name__)

# Fixed pool; projects sharing a slot are serialized with each other too
_LOCK_POOL_SIZE = 64
_project_locks = tuple(threading.Lock() for _ in range(_LOCK_POOL_SIZE))


def _project_lock(project_id: int) -> threading.Lock:
    return _project_locks[project_id % _LOCK_POOL_SIZE]


def is_step_complete(task_count: int, completed_count: int) -> bool:
    return task_count > 0 and completed_count == task_count


class WorkflowCompletionEngine:
    def __init__(self, session, projects, tasks, notifier):
        self.session = session
        self.projects = projects
        self.tasks = tasks
        self.notifier = notifier

    def complete_workflow_step(self, project_id: int, step_id: int, mark_as_completed: bool) -> dict:
        """Complete every task of a step and cascade into project status.

        Returns:
            ``{"success": True, "tasksCompleted": n, "projectStatus": status|None}``

        Raises:
            NotFoundError: the step does not exist in the project.
        """
        if not mark_as_completed:
            logger.debug("Workflow step %s of project %s: markAsCompleted=false, no-op",
                         step_id, project_id)
            return {"success": True, "tasksCompleted": 0, "projectStatus": None}

        with _project_lock(project_id):
            completed_ids = self._complete_step_tasks(project_id, step_id)
            status = self._recompute_project_status(project_id)

        return {"success": True, "tasksCompleted": len(completed_ids), "projectStatus": status}

    def _complete_step_tasks(self, project_id: int, step_id: int) -> list[int]:
        if self.projects.get_step(project_id, step_id) is None:
            if self.projects.get(project_id) is None:
                raise NotFoundError("Project", project_id)
            raise NotFoundError("WorkflowStep", step_id)

        try:
            completed_ids = self.tasks.complete_step_tasks(project_id, step_id, utcnow())
            self.notifier.handle_events(TaskEvent.completed(task_id) for task_id in completed_ids)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Workflow step %s of project %s: %d tasks completed",
                    step_id, project_id, len(completed_ids))
        return completed_ids

    def _recompute_project_status(self, project_id: int) -> str | None:
        try:
            project = self.projects.get_for_update(project_id)
            if project is None:
                logger.warning("Project %s vanished after step completion; status not recomputed",
                               project_id)
                self.session.commit()
                return None

            steps = self.tasks.step_completion(project_id)
            all_complete = bool(steps) and all(
                is_step_complete(total, done) for _step_id, total, done in steps
            )
            old_status = project.status
            if all_complete:
                project.status = "COMPLETED"
            elif project.status == "PLANNING":
                project.status = "IN_PROGRESS"
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception("Status recomputation failed for project %s; completed tasks stay committed",
                             project_id)
            raise

        if project.status != old_status:
            logger.info("Project %s status %s → %s", project_id, old_status, project.status)
        return project.status


def build_engine(session=None) -> WorkflowCompletionEngine:
    session = session or db.session
    notifications = NotificationRepository(session)
    tasks = TaskRepository(session)
    projects = ProjectRepository(session)
    return WorkflowCompletionEngine(
        session, projects, tasks, BulkNotifier(notifications, tasks, projects),
    )
