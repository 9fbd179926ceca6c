# Overview: Collections (money received from customers) and the transaction log.

"""
Collection rules:

- A collection against a sale raises paid_cents, relabels the sale PAID
  (within one currency unit of the grand total) or PARTIAL, writes a
  COLLECTION transaction linked to the sale and credits the customer.
- A general collection is not tied to a sale: transaction + credit only.
- Guest sales cannot take collections; they are paid in full at the till.
- Amounts above the remaining balance are accepted and flagged.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Sale, Transaction, User
from ..validation import ValidationError, enforce_amount_range
from . import activity_service as activity
from .concurrency import run_with_retry
from .customer_service import (
    BALANCE_COLLECTION,
    TRANSACTION_COLLECTION,
    apply_balance_delta,
    lock_customer,
    record_transaction,
)
from .permission_service import is_admin
from .pricing import COLLECTION_TOLERANCE_CENTS, is_settled, sale_grand_total
from .sales_service import (
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    SALE_STATUS_ACTIVE,
    _lock_visible_sale,
)

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_IBAN = "IBAN"

COLLECTION_METHODS = {METHOD_CASH, METHOD_CARD, METHOD_IBAN}


class CollectionError(Exception):
    """Raised for collection errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class CollectionResult:
    transaction: Transaction
    sale: Sale | None = None
    exceeds_remaining: bool = False

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(),
            "sale": self.sale.to_dict() if self.sale is not None else None,
            "exceeds_remaining": self.exceeds_remaining,
        }


def _validate(amount_cents: int, method: str) -> None:
    enforce_amount_range("amount_cents", amount_cents, allow_zero=False)
    if method not in COLLECTION_METHODS:
        raise ValidationError(f"method must be one of {', '.join(sorted(COLLECTION_METHODS))}")


def collect_for_sale(
    actor: User,
    sale_id: int,
    amount_cents: int,
    *,
    method: str = METHOD_CASH,
    description: str | None = None,
) -> CollectionResult:
    _validate(amount_cents, method)

    def _op():
        sale = _lock_visible_sale(actor, sale_id)
        if sale.customer_id is None:
            raise CollectionError("Guest sales cannot take collections", details={"sale_id": sale.id})
        if sale.status != SALE_STATUS_ACTIVE:
            raise CollectionError(f"Only ACTIVE sales can take collections (status: {sale.status})")

        grand = sale_grand_total(sale)
        remaining = grand - sale.paid_cents
        exceeds = amount_cents > remaining + COLLECTION_TOLERANCE_CENTS

        sale.paid_cents = sale.paid_cents + amount_cents
        sale.payment_status = PAYMENT_PAID if is_settled(sale.paid_cents, grand) else PAYMENT_PARTIAL

        customer = lock_customer(sale.customer_id)
        text = f"Collection - {sale.document_number}"
        if description:
            text = f"{text} - {description}"
        tx = record_transaction(
            actor=actor,
            customer=customer,
            tx_type=TRANSACTION_COLLECTION,
            amount_cents=amount_cents,
            method=method,
            description=text,
            sale_id=sale.id,
        )
        apply_balance_delta(
            customer, amount_cents, BALANCE_COLLECTION,
            actor=actor, sale_id=sale.id, transaction_id=tx.id, note=text,
        )
        activity.log_activity(
            actor, activity.ACTION_CREATE, activity.ENTITY_COLLECTION,
            f"Collected {amount_cents / 100:.2f} from {customer.name} for {sale.document_number}",
            {
                "sale_id": sale.id,
                "transaction_id": tx.id,
                "amount_cents": amount_cents,
                "payment_status": sale.payment_status,
                "exceeds_remaining": exceeds,
            },
        )
        db.session.commit()
        return CollectionResult(transaction=tx, sale=sale, exceeds_remaining=exceeds)

    return run_with_retry(_op)


def collect_general(
    actor: User,
    customer_id: int,
    amount_cents: int,
    *,
    method: str = METHOD_CASH,
    description: str | None = None,
) -> CollectionResult:
    _validate(amount_cents, method)

    def _op():
        customer = lock_customer(customer_id)
        text = "General collection"
        if description:
            text = f"{text} - {description}"
        tx = record_transaction(
            actor=actor,
            customer=customer,
            tx_type=TRANSACTION_COLLECTION,
            amount_cents=amount_cents,
            method=method,
            description=text,
        )
        apply_balance_delta(
            customer, amount_cents, BALANCE_COLLECTION,
            actor=actor, transaction_id=tx.id, note=text,
        )
        activity.log_activity(
            actor, activity.ACTION_CREATE, activity.ENTITY_COLLECTION,
            f"Collected {amount_cents / 100:.2f} from {customer.name} (general)",
            {"customer_id": customer.id, "transaction_id": tx.id, "amount_cents": amount_cents},
        )
        db.session.commit()
        return CollectionResult(transaction=tx)

    return run_with_retry(_op)


def visible_transactions_query(actor: User):
    query = db.session.query(Transaction)
    if not is_admin(actor):
        query = query.filter(Transaction.created_by_user_id == actor.id)
    return query


def list_transactions(
    actor: User,
    *,
    customer_id: int | None = None,
    sale_id: int | None = None,
    tx_type: str | None = None,
) -> list[Transaction]:
    query = visible_transactions_query(actor)
    if customer_id is not None:
        query = query.filter(Transaction.customer_id == customer_id)
    if sale_id is not None:
        query = query.filter(Transaction.sale_id == sale_id)
    if tx_type:
        query = query.filter(Transaction.type == tx_type)
    return query.order_by(Transaction.occurred_at.desc(), Transaction.id.desc()).all()
