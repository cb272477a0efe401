"""
Tests — Due/Overdue Scanner.

Covers:
    1. Window boundaries (end == now is due-soon, end < now is overdue)
    2. Idempotence across repeated scans
    3. Dedup independence between reminder types
    4. Recipients (assignee + co-assignees, project members)
    5. Project scan skips closed projects
"""

from datetime import timedelta

import pytest

from taskflow.models.notification import Notification
from taskflow.models.task import TaskAssignment
from taskflow.repositories.notification_repository import NotificationRepository
from taskflow.services.notification_service import build_notification_service
from taskflow.services.scheduler_service import build_scanner


@pytest.fixture()
def scanner(app, session):
    return build_scanner(session, app.config)


def _of_type(session, ntype):
    return session.query(Notification).filter_by(type=ntype).all()


# ═══════════════════════════════════════════════════════════════════════════
#  Windows
# ═══════════════════════════════════════════════════════════════════════════

class TestWindows:
    def test_end_equal_to_now_is_due_soon_not_overdue(self, scanner, now, make_user, make_project, make_task):
        user = make_user()
        make_task(make_project(), end_date=now, assignee=user)

        assert scanner.scan_due_soon_tasks(now) == 1
        assert scanner.scan_overdue_tasks(now) == 0

    def test_one_millisecond_before_now_is_overdue_not_due_soon(
        self, scanner, now, make_user, make_project, make_task,
    ):
        user = make_user()
        make_task(make_project(), end_date=now - timedelta(milliseconds=1), assignee=user)

        assert scanner.scan_due_soon_tasks(now) == 0
        assert scanner.scan_overdue_tasks(now) == 1

    def test_task_window_upper_bound_is_inclusive(self, scanner, now, make_user, make_project, make_task):
        user = make_user()
        project = make_project()
        make_task(project, title="edge", end_date=now + timedelta(days=3), assignee=user)
        make_task(project, title="later", end_date=now + timedelta(days=3, seconds=1), assignee=user)

        assert scanner.scan_due_soon_tasks(now) == 1

    def test_completed_and_undated_tasks_are_ignored(self, scanner, now, make_user, make_project, make_task):
        user = make_user()
        project = make_project()
        make_task(project, status="COMPLETED", end_date=now - timedelta(days=1), assignee=user)
        make_task(project, end_date=None, assignee=user)

        assert scanner.scan_overdue_tasks(now) == 0
        assert scanner.scan_due_soon_tasks(now) == 0

    def test_unassigned_task_produces_no_reminder(self, scanner, now, make_project, make_task):
        make_task(make_project(), end_date=now - timedelta(days=2))
        assert scanner.scan_overdue_tasks(now) == 0


# ═══════════════════════════════════════════════════════════════════════════
#  Dedup
# ═══════════════════════════════════════════════════════════════════════════

class TestDedup:
    def test_overdue_scan_is_idempotent(self, scanner, session, now, make_user, make_project, make_task):
        user = make_user()
        make_task(make_project(), end_date=now - timedelta(days=1), assignee=user)

        assert scanner.scan_overdue_tasks(now) == 1
        assert scanner.scan_overdue_tasks(now) == 0
        assert len(_of_type(session, "TASK_OVERDUE")) == 1

    def test_reading_a_reminder_allows_a_new_one(self, scanner, session, now, make_user, make_project, make_task):
        user = make_user()
        make_task(make_project(), end_date=now - timedelta(days=1), assignee=user)
        scanner.scan_overdue_tasks(now)

        NotificationRepository(session).mark_read(_of_type(session, "TASK_OVERDUE")[0])

        assert scanner.scan_overdue_tasks(now) == 1
        assert len(_of_type(session, "TASK_OVERDUE")) == 2

    def test_unread_manual_reminder_without_key_blocks_rescan(
        self, scanner, session, now, make_user, make_project, make_task,
    ):
        user = make_user()
        task = make_task(make_project(), end_date=now - timedelta(days=1), assignee=user)
        assert scanner.scan_overdue_tasks(now) == 1
        scanned = _of_type(session, "TASK_OVERDUE")[0]

        manual, _ = build_notification_service(session).create(
            user_id=user.id, type="TASK_OVERDUE", title="Task overdue",
            message="Please follow up", task_id=task.id,
        )
        assert manual.dedup_key is None
        NotificationRepository(session).mark_read(scanned)

        assert scanner.scan_overdue_tasks(now) == 0
        unread = [n.id for n in _of_type(session, "TASK_OVERDUE") if not n.is_read]
        assert unread == [manual.id]

    def test_due_soon_does_not_suppress_overdue(self, scanner, session, now, make_user, make_project, make_task):
        user = make_user()
        task = make_task(make_project(), end_date=now + timedelta(hours=1), assignee=user)
        assert scanner.scan_due_soon_tasks(now) == 1

        later = task.end_date + timedelta(hours=1)
        assert scanner.scan_overdue_tasks(later) == 1
        assert len(_of_type(session, "TASK_DUE_SOON")) == 1
        assert len(_of_type(session, "TASK_OVERDUE")) == 1

    def test_dedup_is_per_user(self, scanner, session, now, make_user, make_project, make_task):
        a, b = make_user(), make_user()
        task = make_task(make_project(), end_date=now - timedelta(days=1), assignee=a)
        scanner.scan_overdue_tasks(now)

        task.assignments.append(TaskAssignment(user_id=b.id))
        session.flush()

        assert scanner.scan_overdue_tasks(now) == 1
        assert {n.user_id for n in _of_type(session, "TASK_OVERDUE")} == {a.id, b.id}


# ═══════════════════════════════════════════════════════════════════════════
#  Recipients and messages
# ═══════════════════════════════════════════════════════════════════════════

class TestRecipients:
    def test_primary_and_co_assignees_each_get_one(self, scanner, session, now, make_user, make_project, make_task):
        a, b = make_user(), make_user()
        make_task(make_project(), end_date=now + timedelta(days=1), assignee=a, co_assignees=[a, b])

        assert scanner.scan_due_soon_tasks(now) == 2
        assert sorted(n.user_id for n in _of_type(session, "TASK_DUE_SOON")) == sorted([a.id, b.id])

    def test_overdue_message_counts_days(self, scanner, session, now, make_user, make_project, make_task):
        user = make_user()
        make_task(make_project(name="Zeus"), title="Ship it",
                  end_date=now - timedelta(days=2), assignee=user)
        scanner.scan_overdue_tasks(now)

        notif = _of_type(session, "TASK_OVERDUE")[0]
        assert notif.message == '"Ship it" is 2 days overdue. Project: Zeus'
        assert notif.title == "Task overdue"


class TestProjectScan:
    def test_members_of_due_project_are_notified(self, scanner, session, now, make_user, make_project):
        a, b = make_user(), make_user()
        project = make_project(end_date=now + timedelta(days=5), members=[a, b])

        assert scanner.scan_due_soon_projects(now) == 2
        rows = _of_type(session, "PROJECT_DUE_SOON")
        assert {n.project_id for n in rows} == {project.id}
        assert all(n.task_id is None for n in rows)

    @pytest.mark.parametrize("status", ["COMPLETED", "CANCELLED"])
    def test_closed_projects_are_skipped(self, scanner, now, make_user, make_project, status):
        make_project(status=status, end_date=now + timedelta(days=1), members=[make_user()])
        assert scanner.scan_due_soon_projects(now) == 0

    def test_project_outside_window_is_skipped(self, scanner, now, make_user, make_project):
        make_project(end_date=now + timedelta(days=8), members=[make_user()])
        assert scanner.scan_due_soon_projects(now) == 0

    def test_project_scan_is_idempotent(self, scanner, now, make_user, make_project):
        make_project(end_date=now + timedelta(days=2), members=[make_user()])
        assert scanner.scan_due_soon_projects(now) == 1
        assert scanner.scan_due_soon_projects(now) == 0
