"""
Sales Service - sale creation, full edit, payment status and delivery.

Every public mutation runs as one atomic unit through run_with_retry:
inputs are validated before the first write, then sale rows, stock,
customer balance (with its balance events) and the activity row are
flushed in one session and committed once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Customer, Product, Sale, SaleLine, User
from ..validation import NotFoundError, ValidationError, coerce_date, coerce_int, enforce_amount_range
from shopledger.time_utils import utcnow
from . import activity_service as activity
from .concurrency import lock_for_update, run_with_retry
from .customer_service import (
    BALANCE_SALE_DEBT,
    BALANCE_SALE_DEBT_REVERSAL,
    BALANCE_STATUS_CHANGE,
    apply_balance_delta,
    lock_customer,
)
from .document_service import next_document_number
from .permission_service import is_admin, require_action
from .pricing import (
    SALE_TYPE_GIFT,
    SALE_TYPE_SALE,
    SHIPPING_PAYER_CUSTOMER,
    SHIPPING_PAYER_NONE,
    SHIPPING_PAYERS,
    grand_total_cents,
    sale_grand_total,
)
from .products_service import LIFECYCLE_ACTIVE, change_stock
from .settings_service import DELIVERY_COURIER

logger = logging.getLogger(__name__)


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


# =============================================================================
# STATUS CONSTANTS
# =============================================================================

SALE_STATUS_ACTIVE = "ACTIVE"
SALE_STATUS_RETURNED = "RETURNED"
SALE_STATUS_CANCELLED = "CANCELLED"

PAYMENT_PAID = "PAID"
PAYMENT_PARTIAL = "PARTIAL"
PAYMENT_UNPAID = "UNPAID"

PAYMENT_STATUSES = {PAYMENT_PAID, PAYMENT_PARTIAL, PAYMENT_UNPAID}
SALE_TYPES = {SALE_TYPE_SALE, SALE_TYPE_GIFT}

DELIVERY_PENDING = "PENDING"
DELIVERY_DELIVERED = "DELIVERED"

GUEST_NAME = "Guest"


# =============================================================================
# INPUT NORMALIZATION
# =============================================================================

@dataclass
class SaleItemInput:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None


@dataclass
class SaleDraft:
    """Validated, fully resolved sale content ready to be written."""
    customer: Customer | None
    products: dict[int, Product]
    items: list[SaleItemInput]
    shipping_cost_cents: int
    sale_type: str
    shipping_payer: str | None
    payment_status: str
    due_date: date | None
    subtotal_cents: int = 0
    grand_total_cents: int = 0
    stock_warnings: list[dict] = field(default_factory=list)


def parse_items(raw_items) -> list[SaleItemInput]:
    if not isinstance(raw_items, list) or not raw_items:
        raise SaleError("At least one item is required")
    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise SaleError(f"items[{idx}] must be an object")
        try:
            product_id = coerce_int("product_id", raw.get("product_id"))
            quantity = coerce_int("quantity", raw.get("quantity"))
            unit_price = raw.get("unit_price_cents")
            if unit_price is not None:
                unit_price = coerce_int("unit_price_cents", unit_price)
                enforce_amount_range("unit_price_cents", unit_price)
        except ValidationError as e:
            raise SaleError(f"items[{idx}]: {e}")
        if quantity <= 0:
            raise SaleError(f"items[{idx}]: quantity must be > 0")
        items.append(SaleItemInput(product_id, quantity, unit_price))
    return items


def _build_draft(
    *,
    items: list[SaleItemInput],
    customer_id: int | None,
    shipping_cost_cents: int,
    sale_type: str,
    shipping_payer: str | None,
    payment_status: str,
    due_date,
    allowed_inactive_ids: set[int] = frozenset(),
) -> SaleDraft:
    if sale_type not in SALE_TYPES:
        raise SaleError(f"sale_type must be one of {', '.join(sorted(SALE_TYPES))}")
    if payment_status not in PAYMENT_STATUSES:
        raise SaleError(f"payment_status must be one of {', '.join(sorted(PAYMENT_STATUSES))}")
    enforce_amount_range("shipping_cost_cents", shipping_cost_cents)

    if sale_type == SALE_TYPE_GIFT:
        shipping_payer = shipping_payer or SHIPPING_PAYER_NONE
        if shipping_payer not in SHIPPING_PAYERS:
            raise SaleError(f"shipping_payer must be one of {', '.join(sorted(SHIPPING_PAYERS))}")
        # Nothing to collect unless the customer pays for shipping.
        if not (shipping_payer == SHIPPING_PAYER_CUSTOMER and shipping_cost_cents > 0):
            payment_status = PAYMENT_PAID
    else:
        shipping_payer = None

    customer = lock_customer(customer_id) if customer_id is not None else None
    if customer is None and payment_status != PAYMENT_PAID:
        raise SaleError("Guest sales must be paid in full")

    if payment_status == PAYMENT_PAID:
        due_date = None
    else:
        if due_date in (None, ""):
            raise SaleError("due_date is required for unpaid or partially paid sales")
        try:
            due_date = coerce_date("due_date", due_date)
        except ValidationError as e:
            raise SaleError(str(e))

    products: dict[int, Product] = {}
    for item in items:
        if item.product_id in products:
            continue
        product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
        if not product:
            raise SaleError("Product not found", details={"product_id": item.product_id})
        if product.lifecycle_status != LIFECYCLE_ACTIVE and product.id not in allowed_inactive_ids:
            raise SaleError(
                f"Product '{product.display_name}' is not available for sale",
                details={"product_id": product.id, "lifecycle_status": product.lifecycle_status},
            )
        products[product.id] = product

    draft = SaleDraft(
        customer=customer,
        products=products,
        items=items,
        shipping_cost_cents=shipping_cost_cents,
        sale_type=sale_type,
        shipping_payer=shipping_payer,
        payment_status=payment_status,
        due_date=due_date,
    )
    subtotal = 0
    for item in items:
        if sale_type == SALE_TYPE_GIFT:
            item.unit_price_cents = 0
        elif item.unit_price_cents is None:
            item.unit_price_cents = products[item.product_id].price_cents
        subtotal += item.unit_price_cents * item.quantity
    draft.subtotal_cents = subtotal
    draft.grand_total_cents = grand_total_cents(subtotal, shipping_cost_cents, sale_type, shipping_payer)
    return draft


def _check_stock(draft: SaleDraft, credited: dict[int, int] | None = None) -> None:
    """
    Compare requested quantities with stock (plus anything the same flow
    just put back). Shortfalls become warnings, or a SaleError when negative
    stock is disabled.
    """
    credited = credited or {}
    requested: dict[int, int] = {}
    for item in draft.items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

    shortfalls = []
    for product_id, qty in requested.items():
        available = draft.products[product_id].stock_quantity + credited.get(product_id, 0)
        if available < qty:
            shortfalls.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "on_hand": available,
            })

    if not shortfalls:
        return
    if not current_app.config.get("ALLOW_NEGATIVE_STOCK", True):
        raise SaleError("Insufficient stock", details={"items": shortfalls})
    draft.stock_warnings = shortfalls


def _write_lines(sale: Sale, draft: SaleDraft) -> None:
    for item in draft.items:
        product = draft.products[item.product_id]
        sale.lines.append(SaleLine(
            product_id=product.id,
            product_name=product.display_name,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            original_price_cents=product.price_cents,
            line_total_cents=item.unit_price_cents * item.quantity,
        ))
        change_stock(product, -item.quantity)


def _owes(payment_status: str) -> bool:
    return payment_status in (PAYMENT_UNPAID, PAYMENT_PARTIAL)


# =============================================================================
# VISIBILITY
# =============================================================================

def visible_sales_query(actor: User):
    query = db.session.query(Sale)
    if not is_admin(actor):
        query = query.filter(Sale.created_by_user_id == actor.id)
    return query


def get_sale(actor: User, sale_id: int) -> Sale:
    """Fetch a sale the actor may see; other users' sales read as missing."""
    sale = visible_sales_query(actor).filter(Sale.id == sale_id).first()
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def _lock_visible_sale(actor: User, sale_id: int) -> Sale:
    sale = lock_for_update(visible_sales_query(actor).filter(Sale.id == sale_id)).first()
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def list_sales(
    actor: User,
    *,
    payment_status: str | None = None,
    status: str | None = None,
    delivery_status: str | None = None,
    customer_id: int | None = None,
    search: str | None = None,
) -> list[Sale]:
    query = visible_sales_query(actor)
    if payment_status:
        query = query.filter(Sale.payment_status == payment_status)
    if status:
        query = query.filter(Sale.status == status)
    if delivery_status:
        query = query.filter(Sale.delivery_status == delivery_status)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Sale.customer_name.ilike(like), Sale.document_number.ilike(like)))
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


# =============================================================================
# SALE CREATION
# =============================================================================

def create_sale(
    actor: User,
    *,
    items,
    customer_id: int | None = None,
    shipping_cost_cents: int = 0,
    sale_type: str = SALE_TYPE_SALE,
    shipping_payer: str | None = None,
    payment_status: str = PAYMENT_UNPAID,
    due_date=None,
) -> tuple[Sale, list[dict]]:
    """
    Record a sale.

    Stock drops by every line quantity. A registered customer buying on
    UNPAID/PARTIAL terms has the grand total added to their debt.
    Returns (sale, stock_warnings).
    """
    parsed = parse_items(items)

    def _op():
        draft = _build_draft(
            items=parsed,
            customer_id=customer_id,
            shipping_cost_cents=shipping_cost_cents,
            sale_type=sale_type,
            shipping_payer=shipping_payer,
            payment_status=payment_status,
            due_date=due_date,
        )
        _check_stock(draft)

        grand = draft.grand_total_cents
        sale = Sale(
            document_number=next_document_number(document_type="SALE", prefix="S"),
            customer_id=draft.customer.id if draft.customer else None,
            customer_name=draft.customer.name if draft.customer else GUEST_NAME,
            subtotal_cents=draft.subtotal_cents,
            shipping_cost_cents=draft.shipping_cost_cents,
            sale_type=draft.sale_type,
            shipping_payer=draft.shipping_payer,
            payment_status=draft.payment_status,
            paid_cents=grand if draft.payment_status == PAYMENT_PAID else 0,
            due_date=draft.due_date,
            status=SALE_STATUS_ACTIVE,
            delivery_status=DELIVERY_PENDING,
            created_by_user_id=actor.id,
            personnel_name=actor.display_name,
        )
        db.session.add(sale)
        _write_lines(sale, draft)
        db.session.flush()

        if draft.customer is not None and _owes(draft.payment_status):
            apply_balance_delta(
                draft.customer, -grand, BALANCE_SALE_DEBT,
                actor=actor, sale_id=sale.id, note=f"Sale {sale.document_number}",
            )

        activity.log_activity(
            actor, activity.ACTION_CREATE, activity.ENTITY_SALE,
            f"New sale {sale.document_number} for {sale.customer_name}: {grand / 100:.2f}",
            {"sale_id": sale.id, "grand_total_cents": grand, "payment_status": sale.payment_status},
        )
        db.session.commit()
        return sale, draft.stock_warnings

    sale, warnings = run_with_retry(_op)
    if warnings:
        logger.info("Sale %s saved with stock shortfalls: %s", sale.document_number, warnings)
    return sale, warnings


# =============================================================================
# SALE FULL EDIT
# =============================================================================

def edit_sale(
    actor: User,
    sale_id: int,
    *,
    items,
    customer_id: int | None = None,
    shipping_cost_cents: int = 0,
    sale_type: str = SALE_TYPE_SALE,
    shipping_payer: str | None = None,
    payment_status: str = PAYMENT_UNPAID,
    due_date=None,
) -> tuple[Sale, list[dict]]:
    """
    Replace a sale's content (admin only, ACTIVE sales only).

    The old effects are undone from a snapshot taken before anything is
    touched (stock back, old debt back), then the new content is applied.
    The customer may change. paid_cents carries over unless the new status
    is PAID.
    """
    require_action(actor, "EDIT_SALE", resource=f"sale:{sale_id}")
    parsed = parse_items(items)

    def _op():
        sale = _lock_visible_sale(actor, sale_id)
        if sale.status != SALE_STATUS_ACTIVE:
            raise SaleError(f"Only ACTIVE sales can be edited (status: {sale.status})")

        old_lines = [(line.product_id, line.quantity) for line in sale.lines]
        old_customer_id = sale.customer_id
        old_status = sale.payment_status
        old_grand = sale_grand_total(sale)
        old_paid = sale.paid_cents

        draft = _build_draft(
            items=parsed,
            customer_id=customer_id,
            shipping_cost_cents=shipping_cost_cents,
            sale_type=sale_type,
            shipping_payer=shipping_payer,
            payment_status=payment_status,
            due_date=due_date,
            allowed_inactive_ids={product_id for product_id, _ in old_lines},
        )
        credited: dict[int, int] = {}
        for product_id, qty in old_lines:
            credited[product_id] = credited.get(product_id, 0) + qty
        _check_stock(draft, credited)

        # 1. restore stock from the old lines
        for product_id, qty in old_lines:
            product = draft.products.get(product_id) or lock_for_update(
                db.session.query(Product).filter_by(id=product_id)
            ).first()
            if product is not None:
                change_stock(product, qty)

        # 2. reverse the old debt
        if old_customer_id is not None and old_status != PAYMENT_PAID:
            old_customer = lock_customer(old_customer_id)
            apply_balance_delta(
                old_customer, old_grand, BALANCE_SALE_DEBT_REVERSAL,
                actor=actor, sale_id=sale.id, note=f"Edit {sale.document_number}: reverse old total",
            )

        # 3. new lines and stock
        sale.lines.clear()
        db.session.flush()
        _write_lines(sale, draft)

        # 4. new debt
        new_grand = draft.grand_total_cents
        if draft.customer is not None and draft.payment_status != PAYMENT_PAID:
            apply_balance_delta(
                draft.customer, -new_grand, BALANCE_SALE_DEBT,
                actor=actor, sale_id=sale.id, note=f"Edit {sale.document_number}: new total",
            )

        sale.customer_id = draft.customer.id if draft.customer else None
        sale.customer_name = draft.customer.name if draft.customer else GUEST_NAME
        sale.subtotal_cents = draft.subtotal_cents
        sale.shipping_cost_cents = draft.shipping_cost_cents
        sale.sale_type = draft.sale_type
        sale.shipping_payer = draft.shipping_payer
        sale.payment_status = draft.payment_status
        sale.due_date = draft.due_date
        # 5. paid amount
        sale.paid_cents = new_grand if draft.payment_status == PAYMENT_PAID else old_paid

        activity.log_activity(
            actor, activity.ACTION_UPDATE, activity.ENTITY_SALE,
            f"Edited sale {sale.document_number}: {old_grand / 100:.2f} -> {new_grand / 100:.2f}",
            {
                "sale_id": sale.id,
                "old_grand_total_cents": old_grand,
                "new_grand_total_cents": new_grand,
                "old_payment_status": old_status,
                "new_payment_status": sale.payment_status,
            },
        )
        db.session.commit()
        return sale, draft.stock_warnings

    return run_with_retry(_op)


# =============================================================================
# PAYMENT STATUS TRANSITION
# =============================================================================

def change_payment_status(actor: User, sale_id: int, new_status: str) -> Sale:
    """
    Move a sale between PAID / PARTIAL / UNPAID.

    Only the UNPAID<->PAID edges touch money: UNPAID->PAID credits the
    customer the grand total and marks it paid; PAID->UNPAID debits it and
    zeroes paid_cents. Edges through PARTIAL only relabel the sale.
    """
    if new_status not in PAYMENT_STATUSES:
        raise SaleError(f"payment_status must be one of {', '.join(sorted(PAYMENT_STATUSES))}")

    def _op():
        sale = _lock_visible_sale(actor, sale_id)
        old_status = sale.payment_status
        if old_status == new_status:
            return sale
        if sale.status != SALE_STATUS_ACTIVE:
            raise SaleError(f"Only ACTIVE sales can change payment status (status: {sale.status})")
        if not sale.due_date and new_status != PAYMENT_PAID:
            sale.due_date = utcnow().date()

        grand = sale_grand_total(sale)
        delta = 0
        if old_status == PAYMENT_UNPAID and new_status == PAYMENT_PAID:
            delta = grand
            sale.paid_cents = grand
        elif old_status == PAYMENT_PAID and new_status == PAYMENT_UNPAID:
            delta = -grand
            sale.paid_cents = 0

        if delta and sale.customer_id is not None:
            customer = lock_customer(sale.customer_id)
            apply_balance_delta(
                customer, delta, BALANCE_STATUS_CHANGE,
                actor=actor, sale_id=sale.id,
                note=f"{sale.document_number}: {old_status} -> {new_status}",
            )

        sale.payment_status = new_status
        activity.log_activity(
            actor, activity.ACTION_STATUS_CHANGE, activity.ENTITY_SALE,
            f"Sale {sale.document_number} payment status {old_status} -> {new_status}",
            {"sale_id": sale.id, "old_status": old_status, "new_status": new_status, "balance_delta_cents": delta},
        )
        db.session.commit()
        return sale

    return run_with_retry(_op)


# =============================================================================
# DELIVERY
# =============================================================================

def update_delivery(
    actor: User,
    sale_id: int,
    *,
    delivered: bool = True,
    delivery_type: str | None = None,
    shipping_company: str | None = None,
    tracking_number: str | None = None,
) -> Sale:
    """
    Mark a sale delivered (or, admin only, back to pending).

    Carrier and tracking number are kept only for courier deliveries.
    """
    if not delivered:
        require_action(actor, "RESET_DELIVERY", resource=f"sale:{sale_id}")
    elif not delivery_type:
        raise SaleError("delivery_type is required")

    if delivered and delivery_type == DELIVERY_COURIER and not (shipping_company or "").strip():
        raise SaleError("shipping_company is required for courier deliveries")

    def _op():
        sale = _lock_visible_sale(actor, sale_id)
        if delivered:
            sale.delivery_status = DELIVERY_DELIVERED
            sale.delivery_type = delivery_type
            if delivery_type == DELIVERY_COURIER:
                sale.shipping_company = shipping_company.strip()
                sale.tracking_number = (tracking_number or "").strip() or None
            else:
                sale.shipping_company = None
                sale.tracking_number = None
            sale.delivered_at = utcnow()
        else:
            sale.delivery_status = DELIVERY_PENDING
            sale.delivered_at = None
        sale.shipping_updated_by = actor.display_name

        activity.log_activity(
            actor, activity.ACTION_UPDATE, activity.ENTITY_SALE,
            f"Sale {sale.document_number} delivery: {sale.delivery_status}"
            + (f" ({sale.delivery_type})" if delivered else ""),
            {
                "sale_id": sale.id,
                "delivery_status": sale.delivery_status,
                "delivery_type": sale.delivery_type,
                "shipping_company": sale.shipping_company,
                "tracking_number": sale.tracking_number,
            },
        )
        db.session.commit()
        return sale

    return run_with_retry(_op)
