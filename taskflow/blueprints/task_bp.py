"""
Taskflow — Task Blueprint.

Endpoints:
    POST   /api/tasks/<tid>/assign      body {"userIds": [..]}
    PATCH  /api/tasks/<tid>/status      body {"status": "..."}
"""

from flask import Blueprint, jsonify, request

from taskflow.blueprints import register_error_handlers
from taskflow.core.exceptions import ValidationError
from taskflow.services import task_service

task_bp = Blueprint("task_bp", __name__, url_prefix="/api")
register_error_handlers(task_bp)


@task_bp.route("/tasks/<int:task_id>/assign", methods=["POST"])
def assign_users(task_id):
    data = request.get_json(silent=True) or {}
    user_ids = data.get("userIds")
    if user_ids is not None and not isinstance(user_ids, list):
        raise ValidationError("userIds must be a list", details={"userIds": "invalid"})
    created = task_service.assign_users(task_id, user_ids)
    return jsonify({"success": True, "notificationsCreated": created})


@task_bp.route("/tasks/<int:task_id>/status", methods=["PATCH"])
def update_status(task_id):
    data = request.get_json(silent=True) or {}
    task = task_service.update_task_status(task_id, data.get("status"))
    return jsonify(task.to_dict())
