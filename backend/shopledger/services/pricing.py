"""
Sale pricing rules.

Every flow that needs a sale's grand total (creation, edit, payment status
change, collection, reporting) calls grand_total_cents / sale_grand_total.
No other module multiplies by the tax rate.

    non-gift:                    round(subtotal * 1.20) + shipping
    gift, payer COMPANY or NONE: 0
    gift, payer CUSTOMER:        shipping
"""

from __future__ import annotations

from typing import Iterable

TAX_RATE_BPS = 2000  # 20% VAT, basis points

# A sale counts as settled when at most one currency unit remains unpaid.
COLLECTION_TOLERANCE_CENTS = 100

SALE_TYPE_SALE = "SALE"
SALE_TYPE_GIFT = "GIFT"

SHIPPING_PAYER_CUSTOMER = "CUSTOMER"
SHIPPING_PAYER_COMPANY = "COMPANY"
SHIPPING_PAYER_NONE = "NONE"

SHIPPING_PAYERS = {SHIPPING_PAYER_CUSTOMER, SHIPPING_PAYER_COMPANY, SHIPPING_PAYER_NONE}


def _div_round_half_up(numerator: int, denominator: int) -> int:
    if numerator < 0:
        return -_div_round_half_up(-numerator, denominator)
    return (numerator * 2 + denominator) // (denominator * 2)


def apply_tax(amount_cents: int) -> int:
    """Tax-inclusive amount for a tax-exclusive amount, rounded half up."""
    return _div_round_half_up(amount_cents * (10_000 + TAX_RATE_BPS), 10_000)


def grand_total_cents(
    subtotal_cents: int,
    shipping_cost_cents: int,
    sale_type: str = SALE_TYPE_SALE,
    shipping_payer: str | None = None,
) -> int:
    if sale_type == SALE_TYPE_GIFT:
        if shipping_payer == SHIPPING_PAYER_CUSTOMER:
            return shipping_cost_cents
        return 0
    return apply_tax(subtotal_cents) + shipping_cost_cents


def sale_grand_total(sale) -> int:
    return grand_total_cents(
        sale.subtotal_cents or 0,
        sale.shipping_cost_cents or 0,
        sale.sale_type,
        sale.shipping_payer,
    )


def is_settled(paid_cents: int, grand_total: int) -> bool:
    return paid_cents >= grand_total - COLLECTION_TOLERANCE_CENTS


def refund_cents(items: Iterable[tuple[int, int]]) -> int:
    """
    Default refund for returned items given (unit_price_cents, quantity) pairs.

    Tax-inclusive item value only. Shipping and gift pricing of the original
    sale are not taken into account.
    """
    net = sum(unit_price * quantity for unit_price, quantity in items)
    return apply_tax(net)
