from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


class ActivityLog(db.Model):
    """
    Human-readable audit trail of user actions.

    IMMUTABLE: Never update or delete. Business logic never reads it.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_user_occurred", "user_id", "occurred_at"),
        db.Index("ix_activity_logs_entity", "entity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    user_name = db.Column(db.String(128), nullable=False)
    user_role = db.Column(db.String(16), nullable=False)

    action = db.Column(db.String(16), nullable=False)  # LOGIN, CREATE, UPDATE, DELETE, STATUS_CHANGE, FINANCIAL
    entity = db.Column(db.String(16), nullable=False)  # PRODUCT, CUSTOMER, SALE, RETURN, COLLECTION, SETTINGS, TASK
    description = db.Column(db.String(512), nullable=False)
    details = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurred_at": to_utc_z(self.occurred_at),
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_role": self.user_role,
            "action": self.action,
            "entity": self.entity,
            "description": self.description,
            "metadata": self.details,
        }
