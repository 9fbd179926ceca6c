from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_iso_date, to_utc_z, utcnow


class Sale(db.Model):
    """
    Sale record.

    subtotal_cents is the tax-exclusive sum of line totals. The grand total
    is never stored; it is always derived through pricing.sale_grand_total
    so every flow agrees on it.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_document_number", "document_number"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_created_by", "created_by_user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=False, default="Guest")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    sale_type = db.Column(db.String(8), nullable=False, default="SALE")  # SALE, GIFT
    shipping_payer = db.Column(db.String(16), nullable=True)  # CUSTOMER, COMPANY, NONE (gift only)

    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)  # PAID, PARTIAL, UNPAID
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, RETURNED, CANCELLED

    delivery_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, DELIVERED
    delivery_type = db.Column(db.String(64), nullable=True)
    shipping_company = db.Column(db.String(64), nullable=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    shipping_updated_by = db.Column(db.String(128), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    personnel_name = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        from ..services.pricing import sale_grand_total

        grand = sale_grand_total(self)
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "subtotal_cents": self.subtotal_cents,
            "shipping_cost_cents": self.shipping_cost_cents,
            "grand_total_cents": grand,
            "sale_type": self.sale_type,
            "shipping_payer": self.shipping_payer,
            "payment_status": self.payment_status,
            "paid_cents": self.paid_cents,
            "remaining_cents": max(0, grand - self.paid_cents),
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "delivery_status": self.delivery_status,
            "delivery_type": self.delivery_type,
            "shipping_company": self.shipping_company,
            "tracking_number": self.tracking_number,
            "shipping_updated_by": self.shipping_updated_by,
            "delivered_at": to_utc_z(self.delivered_at),
            "created_by_user_id": self.created_by_user_id,
            "personnel_name": self.personnel_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["return"] = self.return_record.to_dict() if self.return_record else None
        return data


class SaleLine(db.Model):
    """Individual line items on a sale."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Name snapshot so renamed/archived products still read correctly
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    original_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "original_price_cents": self.original_price_cents,
            "line_total_cents": self.line_total_cents,
        }
