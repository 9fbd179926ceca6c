# Overview: Customer records and the customer balance ledger.

"""
Customer balance rules:

- current_balance_cents is signed (negative = customer owes the store).
- Every change goes through apply_balance_delta, which updates the cached
  balance and appends a CustomerBalanceEvent in the same transaction.
- reconcile_balances recomputes balances from the event table and reports
  (optionally repairs) any drift.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, CustomerBalanceEvent, Sale, Transaction, User
from ..validation import NotFoundError, ValidationError, enforce_amount_range
from . import activity_service as activity
from .concurrency import lock_for_update, run_with_retry
from .permission_service import require_action

logger = logging.getLogger(__name__)


# =============================================================================
# BALANCE EVENT REASONS
# =============================================================================

BALANCE_OPENING = "OPENING"
BALANCE_SALE_DEBT = "SALE_DEBT"
BALANCE_SALE_DEBT_REVERSAL = "SALE_DEBT_REVERSAL"
BALANCE_STATUS_CHANGE = "STATUS_CHANGE"
BALANCE_COLLECTION = "COLLECTION"
BALANCE_WALLET_REFUND = "WALLET_REFUND"
BALANCE_ADJUSTMENT = "ADJUSTMENT"

TRANSACTION_COLLECTION = "COLLECTION"
TRANSACTION_PAYMENT = "PAYMENT"

ADJUST_DEBT = "DEBT"
ADJUST_CREDIT = "CREDIT"

CUSTOMER_MUTABLE_FIELDS = {
    "name", "customer_type", "sales_channel", "email", "phone",
    "city", "district", "address", "description",
}


class CustomerError(Exception):
    """Raised for customer ledger errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def apply_balance_delta(
    customer: Customer,
    delta_cents: int,
    reason: str,
    *,
    actor: User | None = None,
    sale_id: int | None = None,
    transaction_id: int | None = None,
    note: str | None = None,
) -> CustomerBalanceEvent | None:
    """Move a customer's balance and record why. A zero delta writes nothing."""
    if delta_cents == 0:
        return None
    customer.current_balance_cents = (customer.current_balance_cents or 0) + delta_cents
    event = CustomerBalanceEvent(
        customer_id=customer.id,
        delta_cents=delta_cents,
        reason=reason,
        sale_id=sale_id,
        transaction_id=transaction_id,
        user_id=actor.id if actor else None,
        note=note[:255] if note else None,
    )
    db.session.add(event)
    db.session.flush()
    return event


def record_transaction(
    *,
    actor: User,
    customer: Customer,
    tx_type: str,
    amount_cents: int,
    method: str | None,
    description: str | None,
    sale_id: int | None = None,
) -> Transaction:
    """Append a Transaction row. Amount sign follows the type."""
    signed = abs(amount_cents) if tx_type == TRANSACTION_COLLECTION else -abs(amount_cents)
    tx = Transaction(
        customer_id=customer.id,
        sale_id=sale_id,
        type=tx_type,
        amount_cents=signed,
        method=method,
        description=description[:255] if description else None,
        created_by_user_id=actor.id,
        personnel_name=actor.display_name,
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


# =============================================================================
# CUSTOMER CRUD
# =============================================================================

def list_customers(search: str | None = None) -> list[Customer]:
    query = db.session.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(Customer.name.ilike(like), Customer.phone.ilike(like), Customer.email.ilike(like))
        )
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def create_customer(actor: User, patch: dict, opening_balance_cents: int = 0) -> Customer:
    """
    Create a customer. A non-zero opening balance is recorded as an OPENING
    balance event so the ledger invariant holds from the first row.
    """
    name = (patch.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")

    def _op():
        customer = Customer(created_by_user_id=actor.id)
        for k, v in patch.items():
            if k in CUSTOMER_MUTABLE_FIELDS:
                setattr(customer, k, v)
        customer.current_balance_cents = 0
        db.session.add(customer)
        db.session.flush()

        apply_balance_delta(customer, opening_balance_cents, BALANCE_OPENING, actor=actor, note="Opening balance")
        activity.log_activity(
            actor, activity.ACTION_CREATE, activity.ENTITY_CUSTOMER,
            f"Created customer: {customer.name}",
            {"customer_id": customer.id},
        )
        db.session.commit()
        return customer

    return run_with_retry(_op)


def update_customer(actor: User, customer_id: int, patch: dict) -> Customer:
    """Update contact fields. The balance is not writable here."""
    if "current_balance_cents" in patch:
        raise ValidationError("current_balance_cents cannot be set directly")

    def _op():
        customer = lock_customer(customer_id)
        changed = []
        for k, v in patch.items():
            if k not in CUSTOMER_MUTABLE_FIELDS:
                continue
            if getattr(customer, k) != v:
                setattr(customer, k, v)
                changed.append(k)
        if "name" in changed and not (customer.name or "").strip():
            raise ValidationError("name cannot be blank")
        if changed:
            activity.log_activity(
                actor, activity.ACTION_UPDATE, activity.ENTITY_CUSTOMER,
                f"Updated customer: {customer.name}",
                {"customer_id": customer.id, "fields": changed},
            )
        db.session.commit()
        return customer

    return run_with_retry(_op)


def delete_customer(actor: User, customer_id: int) -> None:
    """
    Delete a customer (admin only).

    Historical sales and transactions keep their customer name snapshot but
    lose the link.
    """
    require_action(actor, "DELETE_CUSTOMER", resource=f"customer:{customer_id}")

    def _op():
        customer = lock_customer(customer_id)
        name = customer.name
        db.session.query(Sale).filter(Sale.customer_id == customer.id).update(
            {Sale.customer_id: None}, synchronize_session="fetch"
        )
        db.session.query(Transaction).filter(Transaction.customer_id == customer.id).update(
            {Transaction.customer_id: None}, synchronize_session="fetch"
        )
        db.session.delete(customer)
        activity.log_activity(
            actor, activity.ACTION_DELETE, activity.ENTITY_CUSTOMER,
            f"Deleted customer: {name}",
            {"customer_id": customer_id},
        )
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# MANUAL BALANCE ADJUSTMENT
# =============================================================================

def adjust_balance(
    actor: User,
    customer_id: int,
    *,
    kind: str,
    amount_cents: int,
    description: str | None = None,
    method: str | None = None,
) -> Transaction:
    """
    Add manual debt or credit to a customer account (admin only).

    CREDIT writes a COLLECTION transaction and raises the balance; DEBT
    writes a PAYMENT transaction and lowers it.
    """
    require_action(actor, "ADJUST_BALANCE", resource=f"customer:{customer_id}")
    if kind not in (ADJUST_DEBT, ADJUST_CREDIT):
        raise ValidationError("kind must be DEBT or CREDIT")
    enforce_amount_range("amount_cents", amount_cents, allow_zero=False)

    def _op():
        customer = lock_customer(customer_id)
        tx_type = TRANSACTION_COLLECTION if kind == ADJUST_CREDIT else TRANSACTION_PAYMENT
        label = "Manual credit" if kind == ADJUST_CREDIT else "Manual debt"
        text = f"{label} - {description}" if description else label
        tx = record_transaction(
            actor=actor,
            customer=customer,
            tx_type=tx_type,
            amount_cents=amount_cents,
            method=method,
            description=text,
        )
        delta = amount_cents if kind == ADJUST_CREDIT else -amount_cents
        apply_balance_delta(
            customer, delta, BALANCE_ADJUSTMENT,
            actor=actor, transaction_id=tx.id, note=text,
        )
        activity.log_activity(
            actor, activity.ACTION_FINANCIAL, activity.ENTITY_CUSTOMER,
            f"{label} of {amount_cents / 100:.2f} for {customer.name}",
            {"customer_id": customer.id, "transaction_id": tx.id, "delta_cents": delta},
        )
        db.session.commit()
        return tx

    return run_with_retry(_op)


# =============================================================================
# RECONCILIATION
# =============================================================================

@dataclass
class BalanceDrift:
    customer_id: int
    customer_name: str
    cached_cents: int
    ledger_cents: int

    @property
    def drift_cents(self) -> int:
        return self.cached_cents - self.ledger_cents

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "cached_cents": self.cached_cents,
            "ledger_cents": self.ledger_cents,
            "drift_cents": self.drift_cents,
        }


def reconcile_balances(actor: User | None = None, *, fix: bool = False) -> list[BalanceDrift]:
    """
    Compare every cached balance with the sum of its balance events.

    With fix=True the ledger is treated as the source of truth and the
    cached balance is reset to it. actor=None is the CLI path.
    """
    if actor is not None:
        require_action(actor, "RECONCILE_LEDGER", resource="ledger:reconcile")

    sums = dict(
        db.session.query(CustomerBalanceEvent.customer_id, func.coalesce(func.sum(CustomerBalanceEvent.delta_cents), 0))
        .group_by(CustomerBalanceEvent.customer_id)
        .all()
    )

    drifts: list[BalanceDrift] = []
    for customer in db.session.query(Customer).order_by(Customer.id.asc()).all():
        ledger = int(sums.get(customer.id, 0))
        cached = customer.current_balance_cents or 0
        if ledger != cached:
            drift = BalanceDrift(customer.id, customer.name, cached, ledger)
            logger.warning(
                "Balance drift for customer %s (%s): cached=%s ledger=%s",
                customer.id, customer.name, cached, ledger,
            )
            drifts.append(drift)

    if fix and drifts:
        def _op():
            for drift in drifts:
                customer = lock_customer(drift.customer_id)
                customer.current_balance_cents = drift.ledger_cents
            db.session.commit()
        run_with_retry(_op)

    return drifts
