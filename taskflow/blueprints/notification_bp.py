"""
Taskflow — Notification Blueprint.

Provides:
    - Notification CRUD (list, create, mark read, mark all read, delete)
    - Scan triggers: scheduled-check (cron / manual), auto-check (full scan),
      check (tasks only)

All failures return a JSON error body; see taskflow.blueprints.register_error_handlers.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from taskflow.blueprints import int_or_none, register_error_handlers
from taskflow.core.exceptions import ValidationError
from taskflow.services.notification_service import build_notification_service
from taskflow.services.scheduler_service import build_trigger
from taskflow.utils.errors import E, api_error
from taskflow.utils.helpers import parse_bool, utcnow

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api")
register_error_handlers(notification_bp)


def _statistics(report: dict) -> dict:
    return {
        "dueTaskNotifications": report["dueTaskNotifications"],
        "overdueTaskNotifications": report["overdueTaskNotifications"],
        "projectNotifications": report["projectNotifications"],
        "totalCreated": report["totalCreated"],
    }


def _auto_check_body() -> dict:
    report = build_trigger().run_notification_checks()
    body = {
        "success": not report["errors"],
        "message": "Automatic notification check completed"
        if not report["errors"] else "Automatic notification check completed with errors",
        "statistics": _statistics(report),
    }
    if report["errors"]:
        body["errors"] = report["errors"]
    return body


# ═══════════════════════════════════════════════════════════════════════════
#  SCAN TRIGGERS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications/scheduled-check", methods=["GET", "POST"])
def scheduled_check():
    """Entry point for an external cron job (GET) or a manual trigger (POST)."""
    try:
        results = _auto_check_body()
    except Exception:
        logger.exception("Scheduled notification check failed")
        return api_error(
            E.SCAN_FAILED, "Scheduled notification check failed",
            details={"timestamp": utcnow().isoformat()},
        )
    return jsonify({
        "success": results["success"],
        "message": "Scheduled notification check completed",
        "timestamp": utcnow().isoformat(),
        "results": results,
    })


@notification_bp.route("/notifications/auto-check", methods=["POST"])
def auto_check():
    """Run all three scans directly and return their statistics."""
    return jsonify(_auto_check_body())


@notification_bp.route("/notifications/check", methods=["POST"])
def check():
    """Lightweight check: due-soon and overdue tasks only."""
    report = build_trigger().run_task_checks()
    if report["errors"]:
        return jsonify({
            "success": False,
            "message": "Notifications checked with errors",
            "errors": report["errors"],
        })
    return jsonify({"success": True, "message": "Notifications checked and created"})


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATION CRUD
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """List a user's notifications, newest first.

    Query params: userId (required), unreadOnly, limit (default 50), offset.
    """
    user_id = int_or_none(request.args.get("userId"))
    if user_id is None:
        raise ValidationError("userId is required", details={"userId": "required"})
    limit = request.args.get("limit", 50, type=int)
    offset = request.args.get("offset", 0, type=int)
    unread_only = parse_bool(request.args.get("unreadOnly"))

    result = build_notification_service().list_for_user(
        user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify(result)


@notification_bp.route("/notifications", methods=["POST"])
def create_notification():
    """Create a notification.

    Body: {userId, type, title, message, taskId?, projectId?}
    """
    data = request.get_json(silent=True) or {}
    user_id = int_or_none(data.get("userId"))
    if data.get("userId") is not None and user_id is None:
        raise ValidationError("userId must be an integer id", details={"userId": "invalid"})

    notif, unread_count = build_notification_service().create(
        user_id=user_id,
        type=data.get("type"),
        title=data.get("title"),
        message=data.get("message"),
        task_id=int_or_none(data.get("taskId")),
        project_id=int_or_none(data.get("projectId")),
    )
    return jsonify({"notification": notif.to_dict(), "unreadCount": unread_count}), 201


@notification_bp.route("/notifications/read-all", methods=["PATCH"])
def mark_all_read():
    """Mark every unread notification of a user as read. Query: userId."""
    user_id = int_or_none(request.args.get("userId"))
    updated = build_notification_service().mark_all_read(user_id)
    return jsonify({"success": True, "updated": updated})


@notification_bp.route("/notifications/<int:notification_id>", methods=["PATCH"])
def mark_read(notification_id):
    notif = build_notification_service().mark_read(notification_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/<int:notification_id>", methods=["DELETE"])
def delete_notification(notification_id):
    build_notification_service().delete(notification_id)
    return jsonify({"success": True})
