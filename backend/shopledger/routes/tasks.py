# Overview: Flask API routes for tasks and their approval workflow.

from flask import Blueprint, request, jsonify, g

from ..services import task_service
from ..validation import coerce_int
from ..decorators import require_auth, require_action
from .errors import handle_route_error


tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")


@tasks_bp.get("")
@require_auth
def list_tasks_route():
    tasks = task_service.list_tasks(g.current_user, status=request.args.get("status"))
    return jsonify({"items": [t.to_dict() for t in tasks], "count": len(tasks)}), 200


@tasks_bp.post("")
@require_auth
def create_task_route():
    """
    Request body:
    {"title": "...", "description": "...", "assigned_to_user_id": 2, "due_date": "2026-11-01", "priority": "HIGH"}
    """
    try:
        data = request.get_json(silent=True) or {}
        assignee = data.get("assigned_to_user_id")
        task = task_service.create_task(
            g.current_user,
            title=data.get("title"),
            assigned_to_user_id=coerce_int("assigned_to_user_id", assignee) if assignee is not None else None,
            due_date=data.get("due_date"),
            description=data.get("description"),
            priority=data.get("priority") or "MEDIUM",
        )
        return jsonify({"task": task.to_dict()}), 201
    except Exception as e:
        return handle_route_error(e, "Failed to create task")


@tasks_bp.post("/<int:task_id>/request-approval")
@require_auth
def request_approval_route(task_id: int):
    try:
        task = task_service.request_approval(g.current_user, task_id)
        return jsonify({"task": task.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to request task approval")


@tasks_bp.post("/<int:task_id>/approve")
@require_auth
@require_action("APPROVE_TASK")
def approve_task_route(task_id: int):
    try:
        task = task_service.approve_task(g.current_user, task_id)
        return jsonify({"task": task.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to approve task")


@tasks_bp.post("/<int:task_id>/reject")
@require_auth
@require_action("REJECT_TASK")
def reject_task_route(task_id: int):
    """Request body: {"note": "Shelf photos missing"}"""
    try:
        data = request.get_json(silent=True) or {}
        task = task_service.reject_task(g.current_user, task_id, data.get("note"))
        return jsonify({"task": task.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to reject task")


@tasks_bp.post("/<int:task_id>/complete")
@require_auth
@require_action("COMPLETE_TASK")
def complete_task_route(task_id: int):
    try:
        task = task_service.complete_task(g.current_user, task_id)
        return jsonify({"task": task.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to complete task")


@tasks_bp.post("/<int:task_id>/reopen")
@require_auth
@require_action("REOPEN_TASK")
def reopen_task_route(task_id: int):
    try:
        task = task_service.reopen_task(g.current_user, task_id)
        return jsonify({"task": task.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to reopen task")


@tasks_bp.delete("/<int:task_id>")
@require_auth
@require_action("DELETE_TASK")
def delete_task_route(task_id: int):
    try:
        task_service.delete_task(g.current_user, task_id)
        return jsonify({"message": "Task deleted"}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to delete task")
