from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


class AppSettings(db.Model):
    """
    Single-row store of shared taxonomy lists (categories, channels, ...).

    Lists are plain JSON arrays of strings.
    """
    __tablename__ = "app_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    product_categories = db.Column(db.JSON, nullable=False, default=list)
    variant_options = db.Column(db.JSON, nullable=False, default=list)
    customer_types = db.Column(db.JSON, nullable=False, default=list)
    sales_channels = db.Column(db.JSON, nullable=False, default=list)
    delivery_types = db.Column(db.JSON, nullable=False, default=list)
    shipping_companies = db.Column(db.JSON, nullable=False, default=list)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    LIST_FIELDS = (
        "product_categories",
        "variant_options",
        "customer_types",
        "sales_channels",
        "delivery_types",
        "shipping_companies",
    )

    def to_dict(self) -> dict:
        data = {field: list(getattr(self, field) or []) for field in self.LIST_FIELDS}
        data["updated_by_user_id"] = self.updated_by_user_id
        data["updated_at"] = to_utc_z(self.updated_at)
        return data
