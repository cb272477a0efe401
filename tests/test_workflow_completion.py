"""
Tests — Workflow Completion Engine.

Covers:
    1. Bulk completion of a step's tasks
    2. Project status cascade (COMPLETED, PLANNING → IN_PROGRESS)
    3. A step with zero tasks is never complete
    4. markAsCompleted=false is a no-op
    5. Unknown project / step
    6. TASK_COMPLETED notifications for the completed tasks
    7. Recomputation failure leaves the task update committed
    8. Concurrent completions of the last two steps still complete the project
"""

import threading
from unittest.mock import patch

import pytest

from taskflow import create_app
from taskflow.config import TestingConfig
from taskflow.core.exceptions import NotFoundError
from taskflow.models import db
from taskflow.models.notification import Notification
from taskflow.models.project import Project
from taskflow.models.task import Task
from taskflow.services.workflow_service import _project_lock, build_engine, is_step_complete


@pytest.fixture()
def engine(session):
    return build_engine(session)


def _fill_steps(project, make_task, **kwargs):
    """One open task per workflow step."""
    return [make_task(project, title=f"{step.name} work", step=step, **kwargs)
            for step in project.workflow_steps]


class TestStepCompletionRule:
    @pytest.mark.parametrize("total,done,expected", [
        (0, 0, False),
        (3, 2, False),
        (3, 3, True),
        (1, 1, True),
    ])
    def test_is_step_complete(self, total, done, expected):
        assert is_step_complete(total, done) is expected


class TestCompleteWorkflowStep:
    def test_completes_every_task_of_the_step(self, engine, session, make_project, make_task):
        project = make_project()
        design = project.workflow_steps[0]
        t1 = make_task(project, step=design)
        t2 = make_task(project, step=design, status="IN_PROGRESS")
        other = make_task(project, step=project.workflow_steps[1])

        result = engine.complete_workflow_step(project.id, design.id, True)

        assert result["success"] is True
        assert result["tasksCompleted"] == 2
        assert session.get(Task, t1.id).status == "COMPLETED"
        assert session.get(Task, t2.id).completed_at is not None
        assert session.get(Task, other.id).status == "TODO"

    def test_last_step_completes_the_project(self, engine, session, make_project, make_task):
        project = make_project(status="IN_PROGRESS")
        _fill_steps(project, make_task)
        steps = [s.id for s in project.workflow_steps]

        for step_id in steps[:-1]:
            result = engine.complete_workflow_step(project.id, step_id, True)
            assert result["projectStatus"] == "IN_PROGRESS"

        result = engine.complete_workflow_step(project.id, steps[-1], True)

        assert result["projectStatus"] == "COMPLETED"
        assert session.get(Project, project.id).status == "COMPLETED"

    def test_empty_step_blocks_project_completion(self, engine, session, make_project, make_task):
        project = make_project(status="IN_PROGRESS")
        for step in project.workflow_steps[:3]:
            make_task(project, step=step)

        for step in project.workflow_steps[:3]:
            engine.complete_workflow_step(project.id, step.id, True)

        assert session.get(Project, project.id).status == "IN_PROGRESS"

    def test_completing_an_empty_step_moves_planning_to_in_progress(self, engine, session, make_project):
        project = make_project(status="PLANNING")

        result = engine.complete_workflow_step(project.id, project.workflow_steps[0].id, True)

        assert result["tasksCompleted"] == 0
        assert result["projectStatus"] == "IN_PROGRESS"

    def test_on_hold_project_is_not_forced_forward(self, engine, make_project, make_task):
        project = make_project(status="ON_HOLD")
        _fill_steps(project, make_task)

        result = engine.complete_workflow_step(project.id, project.workflow_steps[0].id, True)

        assert result["projectStatus"] == "ON_HOLD"

    def test_tasks_without_a_step_are_ignored(self, engine, session, make_project, make_task):
        project = make_project(status="IN_PROGRESS")
        _fill_steps(project, make_task)
        loose = make_task(project, title="unassigned to any step")

        for step in project.workflow_steps:
            engine.complete_workflow_step(project.id, step.id, True)

        assert session.get(Project, project.id).status == "COMPLETED"
        assert session.get(Task, loose.id).status == "TODO"

    def test_mark_false_is_a_noop(self, engine, session, make_project, make_task):
        project = make_project(status="PLANNING")
        task = make_task(project, step=project.workflow_steps[0])

        result = engine.complete_workflow_step(project.id, project.workflow_steps[0].id, False)

        assert result == {"success": True, "tasksCompleted": 0, "projectStatus": None}
        assert session.get(Task, task.id).status == "TODO"
        assert session.get(Project, project.id).status == "PLANNING"

    def test_unknown_project(self, engine):
        with pytest.raises(NotFoundError) as exc:
            engine.complete_workflow_step(9999, 1, True)
        assert exc.value.resource == "Project"

    def test_step_of_another_project(self, engine, make_project):
        a = make_project(name="A")
        b = make_project(name="B")
        with pytest.raises(NotFoundError) as exc:
            engine.complete_workflow_step(a.id, b.workflow_steps[0].id, True)
        assert exc.value.resource == "WorkflowStep"

    def test_completed_tasks_notify_assignees_and_members(
        self, engine, session, make_user, make_project, make_task,
    ):
        assignee, member = make_user(), make_user()
        project = make_project(members=[assignee, member])
        step = project.workflow_steps[0]
        make_task(project, step=step, assignee=assignee)
        make_task(project, step=step, status="COMPLETED", assignee=assignee)

        engine.complete_workflow_step(project.id, step.id, True)

        rows = session.query(Notification).filter_by(type="TASK_COMPLETED").all()
        assert sorted(n.user_id for n in rows) == sorted([assignee.id, member.id])

    def test_recompute_failure_keeps_completed_tasks(self, engine, session, make_project, make_task):
        project = make_project(status="IN_PROGRESS")
        step = project.workflow_steps[0]
        task = make_task(project, step=step)

        with patch.object(engine.tasks, "step_completion", side_effect=RuntimeError("lock timeout")):
            with pytest.raises(RuntimeError):
                engine.complete_workflow_step(project.id, step.id, True)

        session.expire_all()
        assert session.get(Task, task.id).status == "COMPLETED"
        assert session.get(Project, project.id).status == "IN_PROGRESS"


# ═══════════════════════════════════════════════════════════════════════════
#  Concurrency
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture()
def file_app(tmp_path, monkeypatch):
    """App on a file-backed SQLite DB so threads get their own connections."""
    monkeypatch.setattr(TestingConfig, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{tmp_path / 'workflow.db'}")
    app = create_app("testing")
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


class TestConcurrentCompletion:
    def test_same_project_shares_a_lock(self):
        assert _project_lock(7) is _project_lock(7)

    def test_lock_pool_stays_bounded(self):
        assert len({id(_project_lock(pid)) for pid in range(1, 10_000)}) <= 64

    def test_last_two_steps_completed_concurrently(self, file_app, make_project, make_task):
        with file_app.app_context():
            project = make_project(status="IN_PROGRESS")
            steps = project.workflow_steps
            for step in steps[:2]:
                make_task(project, step=step, status="COMPLETED")
            for step in steps[2:]:
                make_task(project, step=step)
            db.session.commit()
            project_id = project.id
            last_two = [s.id for s in steps[2:]]

        barrier = threading.Barrier(len(last_two))
        results, errors = [], []

        def complete(step_id):
            with file_app.app_context():
                barrier.wait()
                try:
                    results.append(build_engine().complete_workflow_step(project_id, step_id, True))
                except Exception as exc:  # surfaced by the assertion below
                    errors.append(exc)

        threads = [threading.Thread(target=complete, args=(step_id,)) for step_id in last_two]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert sorted(r["tasksCompleted"] for r in results) == [1, 1]
        assert "COMPLETED" in {r["projectStatus"] for r in results}
        with file_app.app_context():
            assert db.session.get(Project, project_id).status == "COMPLETED"
