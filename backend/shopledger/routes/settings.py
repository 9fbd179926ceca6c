# Overview: Flask API routes for the shared settings lists.

from flask import Blueprint, request, jsonify, g

from ..services import settings_service
from ..decorators import require_auth, require_action
from .errors import handle_route_error


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
def get_settings_route():
    return jsonify({"settings": settings_service.get_settings().to_dict()}), 200


@settings_bp.patch("")
@require_auth
@require_action("UPDATE_SETTINGS")
def update_settings_route():
    """Request body: any subset of the list fields, e.g. {"sales_channels": ["Store", "Online"]}"""
    try:
        settings = settings_service.update_settings(g.current_user, request.get_json(silent=True) or {})
        return jsonify({"settings": settings.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to update settings")
