# Overview: Read-only dashboard and sales report aggregates.

"""
Reporting Service

All figures respect the same visibility rule as the sales list: PERSONNEL
aggregate over their own sales only. Revenue figures exclude gifts and
sales that are no longer ACTIVE.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Sale, SaleLine, User
from .permission_service import is_admin
from .pricing import SALE_TYPE_GIFT, apply_tax, sale_grand_total
from .products_service import low_stock_products
from .sales_service import DELIVERY_PENDING, SALE_STATUS_ACTIVE, visible_sales_query


def _counts_as_revenue(sale: Sale) -> bool:
    return sale.status == SALE_STATUS_ACTIVE and sale.sale_type != SALE_TYPE_GIFT


def dashboard_summary(actor: User) -> dict:
    sales = visible_sales_query(actor).all()

    revenue = sum(s.subtotal_cents for s in sales if _counts_as_revenue(s))

    if is_admin(actor):
        receivables = (
            db.session.query(func.coalesce(func.sum(Customer.current_balance_cents), 0))
            .filter(Customer.current_balance_cents < 0)
            .scalar()
        )
        receivables = abs(int(receivables))
    else:
        receivables = sum(
            max(0, sale_grand_total(s) - s.paid_cents)
            for s in sales
            if s.status == SALE_STATUS_ACTIVE and s.customer_id is not None
        )

    pending_shipments = sum(
        1 for s in sales if s.status == SALE_STATUS_ACTIVE and s.delivery_status == DELIVERY_PENDING
    )
    low_stock = low_stock_products()

    return {
        "sale_count": len(sales),
        "revenue_cents": revenue,
        "receivables_cents": receivables,
        "pending_shipments": pending_shipments,
        "low_stock_count": len(low_stock),
        "low_stock_products": [p.to_dict() for p in low_stock],
        "customer_count": db.session.query(func.count(Customer.id)).scalar(),
    }


def sales_report(
    actor: User,
    *,
    payment_status: str | None = None,
    sales_channel: str | None = None,
    product_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str | None = None,
) -> dict:
    """
    Filtered sales with ex-tax and tax-inclusive totals.

    date_to is inclusive (the whole day).
    """
    query = visible_sales_query(actor)
    if payment_status:
        query = query.filter(Sale.payment_status == payment_status)
    if sales_channel:
        query = query.join(Customer, Sale.customer_id == Customer.id).filter(Customer.sales_channel == sales_channel)
    if product_id is not None:
        query = query.filter(Sale.lines.any(SaleLine.product_id == product_id))
    if date_from:
        query = query.filter(Sale.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(Sale.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Sale.customer_name.ilike(like), Sale.document_number.ilike(like)))

    sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()
    revenue_sales = [s for s in sales if _counts_as_revenue(s)]
    total_ex_tax = sum(s.subtotal_cents for s in revenue_sales)

    return {
        "items": [s.to_dict(include_lines=False) for s in sales],
        "count": len(sales),
        "totals": {
            "ex_tax_cents": total_ex_tax,
            "incl_tax_cents": sum(apply_tax(s.subtotal_cents) for s in revenue_sales),
            "paid_cents": sum(s.paid_cents for s in revenue_sales),
            "outstanding_cents": sum(max(0, sale_grand_total(s) - s.paid_cents) for s in revenue_sales),
        },
    }
