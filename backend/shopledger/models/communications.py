from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_iso_date, to_utc_z, utcnow


class Task(db.Model):
    """
    Tasks assigned to users with an approval step.

    Assignees move a task from PENDING to WAITING_APPROVAL; admins approve
    it to COMPLETED or send it back to PENDING with a note.
    """
    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("ix_tasks_assigned_status", "assigned_to_user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_to_name = db.Column(db.String(128), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_name = db.Column(db.String(128), nullable=True)

    due_date = db.Column(db.Date, nullable=False)
    priority = db.Column(db.String(16), nullable=False, default="MEDIUM")  # VERY_HIGH, HIGH, MEDIUM, LOW, VERY_LOW
    status = db.Column(db.String(24), nullable=False, default="PENDING", index=True)  # PENDING, WAITING_APPROVAL, COMPLETED
    admin_note = db.Column(db.Text, nullable=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "assigned_to_user_id": self.assigned_to_user_id,
            "assigned_to_name": self.assigned_to_name,
            "created_by_user_id": self.created_by_user_id,
            "created_by_name": self.created_by_name,
            "due_date": to_iso_date(self.due_date),
            "priority": self.priority,
            "status": self.status,
            "admin_note": self.admin_note,
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
