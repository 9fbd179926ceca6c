from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


class SaleReturn(db.Model):
    """
    Return details attached to a sale (at most one per sale).

    wallet_credited_at is set the first time a WALLET refund is credited to
    the customer's balance and is never cleared, so toggling the refund
    status back and forth cannot credit twice.
    """
    __tablename__ = "sale_returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    document_number = db.Column(db.String(64), nullable=False, unique=True)

    reason = db.Column(db.String(255), nullable=True)
    refund_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, COMPLETED
    refund_method = db.Column(db.String(16), nullable=False, default="CASH")  # CASH, CARD, IBAN, WALLET
    refund_description = db.Column(db.String(255), nullable=True)
    refund_date = db.Column(db.DateTime(timezone=True), nullable=True)

    return_shipping_company = db.Column(db.String(64), nullable=True)
    return_tracking_number = db.Column(db.String(128), nullable=True)

    wallet_credited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    processed_by_name = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", backref=db.backref("return_record", uselist=False, lazy=True))
    lines = db.relationship("SaleReturnLine", backref="sale_return", lazy=True, cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "document_number": self.document_number,
            "reason": self.reason,
            "refund_amount_cents": self.refund_amount_cents,
            "refund_status": self.refund_status,
            "refund_method": self.refund_method,
            "refund_description": self.refund_description,
            "refund_date": to_utc_z(self.refund_date),
            "return_shipping_company": self.return_shipping_company,
            "return_tracking_number": self.return_tracking_number,
            "wallet_credited_at": to_utc_z(self.wallet_credited_at),
            "processed_by_user_id": self.processed_by_user_id,
            "processed_by_name": self.processed_by_name,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class SaleReturnLine(db.Model):
    """Returned quantity of one product in one condition."""
    __tablename__ = "sale_return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("sale_returns.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    condition = db.Column(db.String(16), nullable=False)  # RESELLABLE, DEFECTIVE
    unit_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "condition": self.condition,
            "unit_price_cents": self.unit_price_cents,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences.

    Prevents duplicate document numbers when two sales are saved at once.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
