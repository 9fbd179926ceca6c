# Overview: Append-only activity log writes and visibility-filtered reads.

from __future__ import annotations

from ..extensions import db
from ..models import ActivityLog, User
from .permission_service import can_perform

ACTION_LOGIN = "LOGIN"
ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_DELETE = "DELETE"
ACTION_STATUS_CHANGE = "STATUS_CHANGE"
ACTION_FINANCIAL = "FINANCIAL"

ENTITY_PRODUCT = "PRODUCT"
ENTITY_CUSTOMER = "CUSTOMER"
ENTITY_SALE = "SALE"
ENTITY_RETURN = "RETURN"
ENTITY_COLLECTION = "COLLECTION"
ENTITY_SETTINGS = "SETTINGS"
ENTITY_TASK = "TASK"


def log_activity(
    actor: User,
    action: str,
    entity: str,
    description: str,
    details: dict | None = None,
) -> ActivityLog:
    """
    Append an activity row inside the caller's transaction.

    No commit here; the row is persisted (or discarded) with the operation
    it describes.
    """
    entry = ActivityLog(
        user_id=actor.id,
        user_name=actor.display_name,
        user_role=actor.role,
        action=action,
        entity=entity,
        description=description[:512],
        details=details,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def visible_activity_query(actor: User):
    query = db.session.query(ActivityLog)
    if not can_perform(actor, "VIEW_ACTIVITY_ALL"):
        query = query.filter(ActivityLog.user_id == actor.id)
    return query


def list_activity(
    actor: User,
    *,
    entity: str | None = None,
    action: str | None = None,
    user_id: int | None = None,
    limit: int | None = None,
) -> list[ActivityLog]:
    query = visible_activity_query(actor)
    if entity:
        query = query.filter(ActivityLog.entity == entity)
    if action:
        query = query.filter(ActivityLog.action == action)
    if user_id is not None:
        query = query.filter(ActivityLog.user_id == user_id)
    query = query.order_by(ActivityLog.occurred_at.desc(), ActivityLog.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
