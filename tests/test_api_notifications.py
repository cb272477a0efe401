"""
Tests — Notification API.

Covers:
    1. CRUD: create, list, mark read, mark all read, delete
    2. Scan triggers: scheduled-check, auto-check, check
    3. Error bodies: 400 validation, 404 not found, 500 generic
"""

from datetime import timedelta
from unittest.mock import patch

from werkzeug.exceptions import BadRequest, Conflict

from taskflow.models.notification import Notification
from taskflow.utils.helpers import utcnow


def _create(client, user_id, **overrides):
    body = {"userId": user_id, "type": "TASK_ASSIGNED", "title": "Hello", "message": "World"}
    body.update(overrides)
    return client.post("/api/notifications", json=body)


# ═══════════════════════════════════════════════════════════════════════════
#  CRUD
# ═══════════════════════════════════════════════════════════════════════════

class TestNotificationCrud:
    def test_create_returns_notification_and_unread_count(self, client, make_user):
        user = make_user()
        res = _create(client, user.id)

        assert res.status_code == 201
        data = res.get_json()
        assert data["unreadCount"] == 1
        assert data["notification"]["userId"] == user.id
        assert data["notification"]["isRead"] is False

    def test_create_missing_fields_is_400(self, client, make_user):
        user = make_user()
        res = client.post("/api/notifications", json={"userId": user.id, "type": "TASK_ASSIGNED"})

        assert res.status_code == 400
        data = res.get_json()
        assert data["success"] is False
        assert data["code"] == "ERR_VALIDATION_REQUIRED"
        assert set(data["details"]) == {"title", "message"}

    def test_create_invalid_type_is_400(self, client, make_user):
        res = _create(client, make_user().id, type="PROJECT_OVERDUE")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        assert "Invalid notification type" in res.get_json()["error"]

    def test_create_for_unknown_user_is_404(self, client):
        res = _create(client, 4242)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_manual_reminder_next_to_outstanding_one(self, client, session, make_user, make_project, make_task):
        user = make_user()
        task = make_task(make_project(), assignee=user)
        first = _create(client, user.id, type="TASK_OVERDUE", taskId=task.id)
        second = _create(client, user.id, type="TASK_OVERDUE", taskId=task.id)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.get_json()["unreadCount"] == 2

    def test_list_newest_first_with_pagination(self, client, make_user):
        user = make_user()
        for i in range(3):
            _create(client, user.id, title=f"n{i}")

        res = client.get(f"/api/notifications?userId={user.id}&limit=2")

        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 3
        assert data["unreadCount"] == 3
        assert [n["title"] for n in data["notifications"]] == ["n2", "n1"]

    def test_list_unread_only(self, client, make_user):
        user = make_user()
        first = _create(client, user.id).get_json()["notification"]
        _create(client, user.id)
        client.patch(f"/api/notifications/{first['id']}")

        data = client.get(f"/api/notifications?userId={user.id}&unreadOnly=true").get_json()

        assert data["total"] == 1
        assert data["unreadCount"] == 1

    def test_list_requires_user_id(self, client):
        res = client.get("/api/notifications")
        assert res.status_code == 400
        assert res.get_json()["details"] == {"userId": "required"}

    def test_mark_read(self, client, make_user):
        notif = _create(client, make_user().id).get_json()["notification"]

        res = client.patch(f"/api/notifications/{notif['id']}")

        assert res.status_code == 200
        assert res.get_json()["isRead"] is True
        assert res.get_json()["readAt"] is not None

    def test_mark_read_unknown_is_404(self, client):
        assert client.patch("/api/notifications/999").status_code == 404

    def test_mark_all_read(self, client, make_user):
        user, other = make_user(), make_user()
        _create(client, user.id)
        _create(client, user.id)
        _create(client, other.id)

        res = client.patch(f"/api/notifications/read-all?userId={user.id}")

        assert res.get_json() == {"success": True, "updated": 2}
        assert client.get(f"/api/notifications?userId={other.id}").get_json()["unreadCount"] == 1

    def test_delete(self, client, session, make_user):
        notif = _create(client, make_user().id).get_json()["notification"]

        res = client.delete(f"/api/notifications/{notif['id']}")

        assert res.get_json() == {"success": True}
        assert session.get(Notification, notif["id"]) is None
        assert client.delete(f"/api/notifications/{notif['id']}").status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
#  Scan triggers
# ═══════════════════════════════════════════════════════════════════════════

class TestScanTriggers:
    def _seed(self, make_user, make_project, make_task):
        now = utcnow()
        a, b = make_user(), make_user()
        project = make_project(end_date=now + timedelta(days=6), members=[a])
        make_task(project, end_date=now + timedelta(days=1), assignee=a)
        make_task(project, end_date=now - timedelta(days=1), assignee=b)

    def test_auto_check_statistics(self, client, make_user, make_project, make_task):
        self._seed(make_user, make_project, make_task)

        res = client.post("/api/notifications/auto-check")

        assert res.status_code == 200
        data = res.get_json()
        assert data["success"] is True
        assert data["statistics"] == {
            "dueTaskNotifications": 1,
            "overdueTaskNotifications": 1,
            "projectNotifications": 1,
            "totalCreated": 3,
        }
        assert "errors" not in data

    def test_scheduled_check_get_and_post(self, client, make_user, make_project, make_task):
        self._seed(make_user, make_project, make_task)

        first = client.get("/api/notifications/scheduled-check").get_json()
        second = client.post("/api/notifications/scheduled-check").get_json()

        assert first["success"] is True
        assert first["timestamp"]
        assert first["results"]["statistics"]["totalCreated"] == 3
        assert second["results"]["statistics"]["totalCreated"] == 0

    def test_check_runs_task_scans_only(self, client, session, make_user, make_project, make_task):
        self._seed(make_user, make_project, make_task)

        res = client.post("/api/notifications/check")

        assert res.get_json() == {"success": True, "message": "Notifications checked and created"}
        assert session.query(Notification).filter_by(type="PROJECT_DUE_SOON").count() == 0
        assert session.query(Notification).count() == 2

    def test_partial_failure_is_reported(self, client, make_user, make_project, make_task):
        self._seed(make_user, make_project, make_task)

        with patch("taskflow.services.due_scanner.DueScanner.scan_due_soon_projects",
                   side_effect=RuntimeError("secret connection string")):
            data = client.post("/api/notifications/auto-check").get_json()

        assert data["success"] is False
        assert data["statistics"]["totalCreated"] == 2
        assert data["errors"] == [
            {"scan": "due_soon_projects", "error": "due_soon_projects scan failed (RuntimeError)"},
        ]

    def test_unexpected_error_is_generic_500(self, client):
        with patch("taskflow.blueprints.notification_bp.build_trigger",
                   side_effect=RuntimeError("secret connection string")):
            res = client.post("/api/notifications/auto-check")

        assert res.status_code == 500
        data = res.get_json()
        assert data == {"success": False, "error": "Internal server error", "code": "ERR_INTERNAL"}

    def test_scheduled_check_failure_is_500(self, client):
        with patch("taskflow.blueprints.notification_bp.build_trigger",
                   side_effect=RuntimeError("secret")):
            res = client.get("/api/notifications/scheduled-check")

        assert res.status_code == 500
        body = res.get_json()
        assert body["error"] == "Scheduled notification check failed"
        assert body["code"] == "ERR_SCAN_FAILED"
        assert "secret" not in res.get_data(as_text=True)

    def test_http_error_keeps_its_status_and_code(self, client):
        with patch("taskflow.blueprints.notification_bp.build_trigger",
                   side_effect=BadRequest("Malformed trigger request")):
            res = client.post("/api/notifications/auto-check")

        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_BAD_REQUEST"
        assert res.get_json()["error"] == "Malformed trigger request"

    def test_other_client_errors_are_not_internal(self, client):
        with patch("taskflow.blueprints.notification_bp.build_trigger",
                   side_effect=Conflict("Scan already running")):
            res = client.post("/api/notifications/auto-check")

        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_REQUEST_REJECTED"
