# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service
from .services.permission_service import can_perform


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user to the authenticated User. Returns 401 when the
    header is missing or the token is invalid, expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)

        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_action(action: str):
    """
    Require the current user to be allowed to perform `action`.

    Use after @require_auth. Denials are logged and answered with 403
    before the view runs.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if not can_perform(user, action):
                current_app.logger.warning(
                    "Permission denied: user_id=%s role=%s action=%s path=%s",
                    user.id, user.role, action, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_action": action,
                    "message": f"Permission denied: {action}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
