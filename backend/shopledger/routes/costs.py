# Overview: Flask API routes for product cost sheets (admin only).

from flask import Blueprint, request, jsonify, g

from ..services import cost_service
from ..decorators import require_auth, require_action
from .errors import handle_route_error


costs_bp = Blueprint("costs", __name__, url_prefix="/api/costs")


@costs_bp.get("")
@require_auth
@require_action("MANAGE_COSTS")
def list_costs_route():
    costs = cost_service.list_product_costs(g.current_user)
    return jsonify({"items": [cost_service.cost_summary(c) for c in costs], "count": len(costs)}), 200


@costs_bp.get("/products/<int:product_id>")
@require_auth
@require_action("MANAGE_COSTS")
def get_cost_route(product_id: int):
    try:
        cost = cost_service.get_product_cost(g.current_user, product_id)
        return jsonify({"cost": cost_service.cost_summary(cost)}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to load product cost")


@costs_bp.put("/products/<int:product_id>")
@require_auth
@require_action("MANAGE_COSTS")
def save_cost_route(product_id: int):
    """
    Request body:
    {
        "net_weight": "0.5",
        "raw_materials": [{"name": "Flour", "unit_price_cents": 4000, "usage_percent": "60"}],
        "other_costs": [{"name": "Box", "unit_cost_cents": 250}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        cost = cost_service.save_product_cost(
            g.current_user,
            product_id,
            net_weight=data.get("net_weight", 0),
            raw_materials=data.get("raw_materials") or [],
            other_costs=data.get("other_costs") or [],
        )
        return jsonify({"cost": cost_service.cost_summary(cost)}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to save product cost")
