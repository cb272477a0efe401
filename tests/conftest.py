"""
Shared pytest fixtures for the Taskflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / make_project / make_task: factories writing straight to the DB
"""

from itertools import count

import pytest

from taskflow import create_app
from taskflow.models import db as _db
from taskflow.models.project import DEFAULT_WORKFLOW_STEPS, Project, ProjectMember, WorkflowStep
from taskflow.models.task import Task, TaskAssignment
from taskflow.models.user import User
from taskflow.utils.helpers import utcnow

_seq = count(1)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    def _make(name=None):
        n = next(_seq)
        user = User(name=name or f"User {n}", email=f"user{n}@example.com")
        _db.session.add(user)
        _db.session.flush()
        return user
    return _make


@pytest.fixture()
def make_project():
    def _make(name="Apollo", status="PLANNING", end_date=None, members=(), with_steps=True):
        project = Project(name=name, status=status, end_date=end_date)
        if with_steps:
            project.workflow_steps = [WorkflowStep(**step) for step in DEFAULT_WORKFLOW_STEPS]
        project.members = [ProjectMember(user_id=u.id) for u in members]
        _db.session.add(project)
        _db.session.flush()
        return project
    return _make


@pytest.fixture()
def make_task():
    def _make(project, title="Write report", status="TODO", end_date=None,
              assignee=None, co_assignees=(), step=None):
        task = Task(
            project_id=project.id,
            title=title,
            status=status,
            end_date=end_date,
            assigned_id=assignee.id if assignee else None,
            workflow_step_id=step.id if step else None,
            completed_at=utcnow() if status == "COMPLETED" else None,
        )
        task.assignments = [TaskAssignment(user_id=u.id) for u in co_assignees]
        _db.session.add(task)
        _db.session.flush()
        return task
    return _make


@pytest.fixture()
def now():
    """Reference instant passed explicitly to the scans."""
    return utcnow().replace(microsecond=0)
