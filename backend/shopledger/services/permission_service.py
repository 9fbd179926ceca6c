# Overview: Service-layer role checks shared by routes and services.

from __future__ import annotations

import logging

from ..models import User
from ..permissions import ADMIN_ONLY_ACTIONS, ROLE_ADMIN

logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when the acting user's role does not allow an action."""
    pass


def is_admin(user: User | None) -> bool:
    return bool(user is not None and user.role == ROLE_ADMIN)


def can_perform(user: User, action: str) -> bool:
    if action in ADMIN_ONLY_ACTIONS:
        return is_admin(user)
    return user is not None and user.is_active


def require_action(user: User, action: str, *, resource: str | None = None) -> None:
    """
    Raise PermissionDeniedError if the user may not perform `action`.

    Denials are logged, never persisted. Called before any write so a
    rejected operation leaves no trace in the database.
    """
    if can_perform(user, action):
        return
    logger.warning(
        "Permission denied: user_id=%s role=%s action=%s resource=%s",
        getattr(user, "id", None),
        getattr(user, "role", None),
        action,
        resource,
    )
    raise PermissionDeniedError(f"Permission denied: {action}")
