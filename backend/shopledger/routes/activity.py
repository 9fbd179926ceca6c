# Overview: Flask API routes for reading the activity log.

from flask import Blueprint, request, jsonify, g

from ..services import activity_service
from ..decorators import require_auth


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


@activity_bp.get("")
@require_auth
def list_activity_route():
    """
    Admins see everyone's activity; personnel see their own.

    Query params: entity, action, user_id, limit
    """
    entries = activity_service.list_activity(
        g.current_user,
        entity=request.args.get("entity"),
        action=request.args.get("action"),
        user_id=request.args.get("user_id", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200
