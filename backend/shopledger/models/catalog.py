from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Sellable product variant.

    price_cents is tax-exclusive. stock_quantity may go negative when the
    store sells ahead of stock. Archived products stay in the table so old
    sales keep their reference.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_base_variant", "base_name", "variant_name"),
        db.Index("ix_products_lifecycle", "lifecycle_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    base_name = db.Column(db.String(255), nullable=False)
    variant_name = db.Column(db.String(128), nullable=True)
    category = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    lifecycle_status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE, ARCHIVED

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_name = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def display_name(self) -> str:
        if self.variant_name:
            return f"{self.base_name} - {self.variant_name}"
        return self.base_name

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "base_name": self.base_name,
            "variant_name": self.variant_name,
            "name": self.display_name,
            "category": self.category,
            "description": self.description,
            "price_cents": self.price_cents,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "lifecycle_status": self.lifecycle_status,
            "created_by_user_id": self.created_by_user_id,
            "created_by_name": self.created_by_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class ProductCost(db.Model):
    """
    Cost sheet for one product: raw material usage plus flat other costs.

    raw_materials: [{"name", "unit_price_cents", "usage_percent"}]
    other_costs:   [{"name", "unit_cost_cents"}]
    """
    __tablename__ = "product_costs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True, index=True)

    net_weight = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    raw_materials = db.Column(db.JSON, nullable=False, default=list)
    other_costs = db.Column(db.JSON, nullable=False, default=list)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("cost_sheet", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "net_weight": str(self.net_weight) if self.net_weight is not None else "0",
            "raw_materials": list(self.raw_materials or []),
            "other_costs": list(self.other_costs or []),
            "total_cost_cents": self.total_cost_cents,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
