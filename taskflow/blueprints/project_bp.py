"""
Taskflow — Project Blueprint.

Endpoints:
    POST   /api/projects                                   create (with default workflow steps)
    GET    /api/projects/<pid>                             detail incl. workflow steps
    POST   /api/projects/<pid>/members                     add a member
    POST   /api/projects/<pid>/tasks                       create a task
    POST   /api/projects/<pid>/workflow/<step_id>          complete a workflow step
"""

import logging

from flask import Blueprint, jsonify, request

from taskflow.blueprints import int_or_none, register_error_handlers
from taskflow.core.exceptions import ValidationError
from taskflow.services import project_service, task_service
from taskflow.services.workflow_service import build_engine

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api")
register_error_handlers(project_bp)


@project_bp.route("/projects", methods=["POST"])
def create_project():
    data = request.get_json(silent=True) or {}
    project = project_service.create_project(data)
    return jsonify(project.to_dict(include_steps=True)), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(project_id)
    return jsonify(project.to_dict(include_steps=True))


@project_bp.route("/projects/<int:project_id>/members", methods=["POST"])
def add_member(project_id):
    data = request.get_json(silent=True) or {}
    user_id = int_or_none(data.get("userId"))
    member = project_service.add_member(project_id, user_id, data.get("role") or "member")
    return jsonify(member.to_dict()), 201


@project_bp.route("/projects/<int:project_id>/tasks", methods=["POST"])
def create_task(project_id):
    data = request.get_json(silent=True) or {}
    task = task_service.create_task(project_id, data)
    return jsonify(task.to_dict()), 201


@project_bp.route("/projects/<int:project_id>/workflow/<int:step_id>", methods=["POST"])
def complete_workflow_step(project_id, step_id):
    """Complete every task of a workflow step.

    Body: {"markAsCompleted": true}
    """
    data = request.get_json(silent=True) or {}
    mark = data.get("markAsCompleted")
    if not isinstance(mark, bool):
        raise ValidationError("markAsCompleted must be a boolean",
                              details={"markAsCompleted": "required"})
    result = build_engine().complete_workflow_step(project_id, step_id, mark)
    return jsonify(result)
