from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer master data with a running receivable balance.

    current_balance_cents is signed: negative means the customer owes the
    store, positive means the store holds credit for the customer. It is a
    cache of the sum of the customer's balance events and must only change
    through customer_service.apply_balance_delta.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    customer_type = db.Column(db.String(64), nullable=True)
    sales_channel = db.Column(db.String(64), nullable=True)

    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    district = db.Column(db.String(128), nullable=True)
    address = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)

    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "customer_type": self.customer_type,
            "sales_channel": self.sales_channel,
            "email": self.email,
            "phone": self.phone,
            "city": self.city,
            "district": self.district,
            "address": self.address,
            "description": self.description,
            "current_balance_cents": self.current_balance_cents,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CustomerBalanceEvent(db.Model):
    """
    Append-only record of every change to a customer's balance.

    Invariant: customer.current_balance_cents == SUM(delta_cents) for that
    customer. Never update or delete rows.
    """
    __tablename__ = "customer_balance_events"
    __table_args__ = (
        db.Index("ix_balance_events_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)

    delta_cents = db.Column(db.Integer, nullable=False)
    # OPENING, SALE_DEBT, SALE_DEBT_REVERSAL, STATUS_CHANGE, COLLECTION, WALLET_REFUND, ADJUSTMENT
    reason = db.Column(db.String(32), nullable=False, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    customer = db.relationship(
        "Customer",
        backref=db.backref("balance_events", lazy=True, cascade="all, delete-orphan", passive_deletes=True),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "delta_cents": self.delta_cents,
            "reason": self.reason,
            "sale_id": self.sale_id,
            "transaction_id": self.transaction_id,
            "user_id": self.user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class Transaction(db.Model):
    """
    Money movement against a customer account.

    COLLECTION rows carry a positive amount (money in), PAYMENT rows a
    negative amount (debt written onto the account). sale_id is NULL for a
    general collection or a manual adjustment. Append-only.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_customer_occurred", "customer_id", "occurred_at"),
        db.Index("ix_transactions_created_by", "created_by_user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False)  # COLLECTION, PAYMENT
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=True)  # CASH, CARD, IBAN, WALLET
    description = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    personnel_name = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "description": self.description,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_by_user_id": self.created_by_user_id,
            "personnel_name": self.personnel_name,
        }
