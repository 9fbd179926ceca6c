# Overview: Flask API routes for user administration (admin only).

from flask import Blueprint, request, jsonify, g

from ..services import auth_service
from ..decorators import require_auth, require_action
from .errors import handle_route_error


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_action("MANAGE_USERS")
def list_users_route():
    users = auth_service.list_users(g.current_user)
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.get("/assignable")
@require_auth
def assignable_users_route():
    """Users the caller may assign tasks to (only themselves for personnel)."""
    users = auth_service.list_assignable_users(g.current_user)
    return jsonify({"items": [u.to_dict() for u in users]}), 200


@users_bp.post("")
@require_auth
@require_action("MANAGE_USERS")
def create_user_route():
    """
    Request body:
    {"username": "ayse", "password": "secret123", "display_name": "Ayse", "role": "PERSONNEL"}
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            data.get("username"),
            data.get("password") or "",
            display_name=data.get("display_name"),
            role=data.get("role") or "PERSONNEL",
            actor=g.current_user,
        )
        return jsonify({"user": user.to_dict()}), 201
    except Exception as e:
        return handle_route_error(e, "Failed to create user")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_action("MANAGE_USERS")
def delete_user_route(user_id: int):
    try:
        auth_service.delete_user(g.current_user, user_id)
        return jsonify({"message": "User deleted"}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to delete user")
