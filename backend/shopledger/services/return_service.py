"""
Return Processing Service

A return closes a sale: the sale becomes RETURNED, return details are
attached, RESELLABLE quantities go back into stock and DEFECTIVE ones are
written off. A WALLET refund credits the customer's balance once it is
COMPLETED, and never more than once per return.

LIFECYCLE:
1. process_return (refund PENDING or COMPLETED)
2. update_return_payment (PENDING <-> COMPLETED, method/description edits)
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Product, SaleReturn, SaleReturnLine, User
from ..validation import ValidationError, coerce_int, enforce_amount_range
from shopledger.time_utils import as_utc_naive, utcnow
from . import activity_service as activity
from .concurrency import lock_for_update, run_with_retry
from .customer_service import BALANCE_WALLET_REFUND, apply_balance_delta, lock_customer
from .document_service import next_document_number
from .pricing import refund_cents
from .products_service import change_stock
from .sales_service import PAYMENT_UNPAID, SALE_STATUS_ACTIVE, SALE_STATUS_RETURNED, _lock_visible_sale


class ReturnError(Exception):
    """Raised for return operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


# =============================================================================
# RETURN CONSTANTS
# =============================================================================

REFUND_PENDING = "PENDING"
REFUND_COMPLETED = "COMPLETED"
REFUND_STATUSES = {REFUND_PENDING, REFUND_COMPLETED}

REFUND_CASH = "CASH"
REFUND_CARD = "CARD"
REFUND_IBAN = "IBAN"
REFUND_WALLET = "WALLET"
REFUND_METHODS = {REFUND_CASH, REFUND_CARD, REFUND_IBAN, REFUND_WALLET}

CONDITION_RESELLABLE = "RESELLABLE"
CONDITION_DEFECTIVE = "DEFECTIVE"
CONDITIONS = {CONDITION_RESELLABLE, CONDITION_DEFECTIVE}


def _parse_return_items(raw_items) -> list[tuple[int, int, str]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ReturnError("At least one returned item is required")
    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ReturnError(f"items[{idx}] must be an object")
        try:
            product_id = coerce_int("product_id", raw.get("product_id"))
            quantity = coerce_int("quantity", raw.get("quantity"))
        except ValidationError as e:
            raise ReturnError(f"items[{idx}]: {e}")
        condition = raw.get("condition") or CONDITION_RESELLABLE
        if condition not in CONDITIONS:
            raise ReturnError(f"items[{idx}]: condition must be RESELLABLE or DEFECTIVE")
        if quantity <= 0:
            raise ReturnError(f"items[{idx}]: quantity must be > 0")
        items.append((product_id, quantity, condition))
    return items


def _credit_wallet(actor: User, sale, record: SaleReturn) -> None:
    customer = lock_customer(sale.customer_id)
    apply_balance_delta(
        customer, record.refund_amount_cents, BALANCE_WALLET_REFUND,
        actor=actor, sale_id=sale.id, note=f"Wallet refund {record.document_number}",
    )
    record.wallet_credited_at = utcnow()
    activity.log_activity(
        actor, activity.ACTION_FINANCIAL, activity.ENTITY_CUSTOMER,
        f"Wallet refund of {record.refund_amount_cents / 100:.2f} credited to {customer.name}",
        {"customer_id": customer.id, "sale_id": sale.id, "return_id": record.id},
    )


# =============================================================================
# RETURN PROCESSING
# =============================================================================

def process_return(
    actor: User,
    sale_id: int,
    *,
    items,
    reason: str | None = None,
    refund_amount_cents: int | None = None,
    refund_status: str | None = None,
    refund_method: str | None = None,
    refund_description: str | None = None,
    return_shipping_company: str | None = None,
    return_tracking_number: str | None = None,
) -> SaleReturn:
    """
    Return items from an ACTIVE sale inside the return window.

    Defaults for an UNPAID sale: refund COMPLETED via WALLET, which clears
    the debt the sale created. Otherwise the refund starts PENDING.
    The refund amount defaults to the tax-inclusive value of the returned
    items.
    """
    parsed = _parse_return_items(items)
    if refund_status is not None and refund_status not in REFUND_STATUSES:
        raise ReturnError("refund_status must be PENDING or COMPLETED")
    if refund_method is not None and refund_method not in REFUND_METHODS:
        raise ReturnError(f"refund_method must be one of {', '.join(sorted(REFUND_METHODS))}")
    if refund_amount_cents is not None:
        enforce_amount_range("refund_amount_cents", refund_amount_cents)

    def _op():
        sale = _lock_visible_sale(actor, sale_id)
        if sale.status != SALE_STATUS_ACTIVE:
            raise ReturnError(f"Only ACTIVE sales can be returned (status: {sale.status})")

        window_days = current_app.config.get("RETURN_WINDOW_DAYS", 17)
        if utcnow() - as_utc_naive(sale.created_at) > timedelta(days=window_days):
            raise ReturnError(
                f"Return window of {window_days} days has passed",
                details={"sale_id": sale.id, "sold_at": sale.created_at.isoformat()},
            )

        sold: dict[int, int] = {}
        unit_prices: dict[int, int] = {}
        names: dict[int, str] = {}
        for line in sale.lines:
            sold[line.product_id] = sold.get(line.product_id, 0) + line.quantity
            unit_prices.setdefault(line.product_id, line.unit_price_cents)
            names.setdefault(line.product_id, line.product_name)

        requested: dict[int, int] = {}
        for product_id, quantity, _ in parsed:
            requested[product_id] = requested.get(product_id, 0) + quantity
        too_many = [
            {"product_id": pid, "returned": qty, "sold": sold.get(pid, 0)}
            for pid, qty in requested.items()
            if qty > sold.get(pid, 0)
        ]
        if too_many:
            raise ReturnError("Returned quantity exceeds sold quantity", details={"items": too_many})

        was_unpaid = sale.payment_status == PAYMENT_UNPAID
        status = refund_status or (REFUND_COMPLETED if was_unpaid else REFUND_PENDING)
        method = refund_method or (REFUND_WALLET if was_unpaid else REFUND_CASH)
        description = refund_description
        if description is None and was_unpaid and method == REFUND_WALLET:
            description = "Credit sale return - debt cleared"

        if method == REFUND_WALLET and sale.customer_id is None:
            raise ReturnError("WALLET refunds require a registered customer")

        amount = refund_amount_cents
        if amount is None:
            amount = refund_cents((unit_prices[pid], qty) for pid, qty, _ in parsed)

        record = SaleReturn(
            sale_id=sale.id,
            document_number=next_document_number(document_type="RETURN", prefix="R"),
            reason=reason,
            refund_amount_cents=amount,
            refund_status=status,
            refund_method=method,
            refund_description=description,
            refund_date=utcnow() if status == REFUND_COMPLETED else None,
            return_shipping_company=return_shipping_company,
            return_tracking_number=return_tracking_number,
            processed_by_user_id=actor.id,
            processed_by_name=actor.display_name,
        )
        restocked = 0
        for product_id, quantity, condition in parsed:
            record.lines.append(SaleReturnLine(
                product_id=product_id,
                product_name=names[product_id],
                quantity=quantity,
                condition=condition,
                unit_price_cents=unit_prices[product_id],
            ))
            if condition == CONDITION_RESELLABLE:
                product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
                if product is not None:
                    change_stock(product, quantity)
                    restocked += quantity
        db.session.add(record)
        sale.status = SALE_STATUS_RETURNED
        db.session.flush()

        if status == REFUND_COMPLETED and method == REFUND_WALLET:
            _credit_wallet(actor, sale, record)

        activity.log_activity(
            actor, activity.ACTION_CREATE, activity.ENTITY_RETURN,
            f"Return {record.document_number} for sale {sale.document_number}: refund {amount / 100:.2f} ({status}, {method})",
            {
                "sale_id": sale.id,
                "return_id": record.id,
                "refund_amount_cents": amount,
                "refund_status": status,
                "refund_method": method,
                "restocked_quantity": restocked,
            },
        )
        db.session.commit()
        return record

    return run_with_retry(_op)


# =============================================================================
# REFUND PAYMENT UPDATE
# =============================================================================

def update_return_payment(
    actor: User,
    sale_id: int,
    *,
    refund_status: str,
    refund_method: str | None = None,
    refund_description: str | None = None,
) -> SaleReturn:
    """
    Update a return's refund fields.

    The wallet is credited only on a move into COMPLETED with method WALLET
    and only if this return has never credited it before.
    """
    if refund_status not in REFUND_STATUSES:
        raise ReturnError("refund_status must be PENDING or COMPLETED")
    if refund_method is not None and refund_method not in REFUND_METHODS:
        raise ReturnError(f"refund_method must be one of {', '.join(sorted(REFUND_METHODS))}")

    def _op():
        sale = _lock_visible_sale(actor, sale_id)
        record = sale.return_record
        if record is None:
            raise ReturnError("Sale has no return", details={"sale_id": sale.id})

        method = refund_method or record.refund_method
        if method == REFUND_WALLET and sale.customer_id is None:
            raise ReturnError("WALLET refunds require a registered customer")

        old_status = record.refund_status
        record.refund_status = refund_status
        record.refund_method = method
        if refund_description is not None:
            record.refund_description = refund_description
        if refund_status == REFUND_COMPLETED and old_status != REFUND_COMPLETED:
            record.refund_date = utcnow()

        credit = (
            old_status != REFUND_COMPLETED
            and refund_status == REFUND_COMPLETED
            and method == REFUND_WALLET
            and record.wallet_credited_at is None
        )
        if credit:
            _credit_wallet(actor, sale, record)

        activity.log_activity(
            actor, activity.ACTION_UPDATE, activity.ENTITY_RETURN,
            f"Return {record.document_number} refund {old_status} -> {refund_status} ({method})",
            {"sale_id": sale.id, "return_id": record.id, "wallet_credited": credit},
        )
        db.session.commit()
        return record

    return run_with_retry(_op)
