# Overview: Product cost sheets (raw materials + other costs) and margin figures.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..extensions import db
from ..models import ProductCost, User
from ..validation import NotFoundError, ValidationError, coerce_int, enforce_amount_range
from .concurrency import run_with_retry
from .permission_service import require_action
from .products_service import get_product


class CostError(Exception):
    """Raised for invalid cost sheets."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _decimal(key: str, value) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not result.is_finite() or result < 0:
        raise ValidationError(f"{key} must be a non-negative number")
    return result


def material_cost_cents(net_weight: Decimal, usage_percent: Decimal, unit_price_cents: int) -> int:
    """net_weight x (usage% / 100) x unit price, rounded half up to cents."""
    raw = net_weight * usage_percent / Decimal(100) * Decimal(unit_price_cents)
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _normalize(net_weight, raw_materials, other_costs) -> tuple[Decimal, list[dict], list[dict], int]:
    weight = _decimal("net_weight", net_weight or 0)
    if not isinstance(raw_materials or [], list) or not isinstance(other_costs or [], list):
        raise ValidationError("raw_materials and other_costs must be lists")
    if raw_materials and weight <= 0:
        raise CostError("net_weight must be > 0 when raw materials are listed")

    materials = []
    total = 0
    for idx, item in enumerate(raw_materials or []):
        name = str(item.get("name") or "").strip()
        if not name:
            raise ValidationError(f"raw_materials[{idx}].name is required")
        price = coerce_int("unit_price_cents", item.get("unit_price_cents"))
        enforce_amount_range("unit_price_cents", price)
        usage = _decimal("usage_percent", item.get("usage_percent", 0))
        cost = material_cost_cents(weight, usage, price)
        materials.append({
            "name": name,
            "unit_price_cents": price,
            "usage_percent": str(usage),
            "cost_cents": cost,
        })
        total += cost

    others = []
    for idx, item in enumerate(other_costs or []):
        name = str(item.get("name") or "").strip()
        if not name:
            raise ValidationError(f"other_costs[{idx}].name is required")
        cost = coerce_int("unit_cost_cents", item.get("unit_cost_cents"))
        enforce_amount_range("unit_cost_cents", cost)
        others.append({"name": name, "unit_cost_cents": cost})
        total += cost

    return weight, materials, others, total


def cost_summary(cost: ProductCost) -> dict:
    price = cost.product.price_cents
    profit = price - cost.total_cost_cents
    margin = round(profit / price * 100, 2) if price else 0.0
    data = cost.to_dict()
    data.update({
        "product_name": cost.product.display_name,
        "price_cents": price,
        "profit_cents": profit,
        "margin_percent": margin,
    })
    return data


def get_product_cost(actor: User, product_id: int) -> ProductCost:
    require_action(actor, "MANAGE_COSTS", resource=f"product:{product_id}")
    cost = db.session.query(ProductCost).filter_by(product_id=product_id).first()
    if not cost:
        raise NotFoundError(f"No cost sheet for product {product_id}")
    return cost


def list_product_costs(actor: User) -> list[ProductCost]:
    require_action(actor, "MANAGE_COSTS", resource="costs")
    return db.session.query(ProductCost).order_by(ProductCost.product_id.asc()).all()


def save_product_cost(
    actor: User,
    product_id: int,
    *,
    net_weight=0,
    raw_materials=None,
    other_costs=None,
) -> ProductCost:
    """Create or replace a product's cost sheet (admin only)."""
    require_action(actor, "MANAGE_COSTS", resource=f"product:{product_id}")
    weight, materials, others, total = _normalize(net_weight, raw_materials, other_costs)

    def _op():
        get_product(product_id)
        cost = db.session.query(ProductCost).filter_by(product_id=product_id).first()
        if cost is None:
            cost = ProductCost(product_id=product_id)
            db.session.add(cost)
        cost.net_weight = weight
        cost.raw_materials = materials
        cost.other_costs = others
        cost.total_cost_cents = total
        cost.updated_by_user_id = actor.id
        db.session.commit()
        return cost

    return run_with_retry(_op)
