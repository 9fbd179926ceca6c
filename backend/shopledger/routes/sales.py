# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API routes.

Personnel only see (and act on) their own sales; other sales read as 404.
"""

from flask import Blueprint, request, jsonify, g

from ..services import sales_service
from ..validation import coerce_int
from ..decorators import require_auth, require_action
from .errors import handle_route_error


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_kwargs(data: dict) -> dict:
    customer_id = data.get("customer_id")
    return {
        "items": data.get("items"),
        "customer_id": coerce_int("customer_id", customer_id) if customer_id is not None else None,
        "shipping_cost_cents": coerce_int("shipping_cost_cents", data.get("shipping_cost_cents", 0) or 0),
        "sale_type": data.get("sale_type") or sales_service.SALE_TYPE_SALE,
        "shipping_payer": data.get("shipping_payer"),
        "payment_status": data.get("payment_status") or sales_service.PAYMENT_UNPAID,
        "due_date": data.get("due_date"),
    }


@sales_bp.get("")
@require_auth
def list_sales_route():
    customer_id = request.args.get("customer_id", type=int)
    sales = sales_service.list_sales(
        g.current_user,
        payment_status=request.args.get("payment_status"),
        status=request.args.get("status"),
        delivery_status=request.args.get("delivery_status"),
        customer_id=customer_id,
        search=request.args.get("search"),
    )
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a sale.

    Request body:
    {
        "customer_id": 3,              (optional, omit for a guest sale)
        "items": [{"product_id": 1, "quantity": 2, "unit_price_cents": 5000}],
        "shipping_cost_cents": 0,
        "sale_type": "SALE" | "GIFT",
        "shipping_payer": "CUSTOMER" | "COMPANY" | "NONE",   (gifts only)
        "payment_status": "PAID" | "PARTIAL" | "UNPAID",
        "due_date": "2026-11-01"       (required unless PAID)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        sale, warnings = sales_service.create_sale(g.current_user, **_sale_kwargs(data))
        return jsonify({"sale": sale.to_dict(), "stock_warnings": warnings}), 201
    except Exception as e:
        return handle_route_error(e, "Failed to create sale")


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(g.current_user, sale_id).to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to load sale")


@sales_bp.put("/<int:sale_id>")
@require_auth
@require_action("EDIT_SALE")
def edit_sale_route(sale_id: int):
    """Full edit (admin only). Same body as sale creation."""
    try:
        data = request.get_json(silent=True) or {}
        sale, warnings = sales_service.edit_sale(g.current_user, sale_id, **_sale_kwargs(data))
        return jsonify({"sale": sale.to_dict(), "stock_warnings": warnings}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to edit sale")


@sales_bp.post("/<int:sale_id>/payment-status")
@require_auth
def payment_status_route(sale_id: int):
    """Request body: {"payment_status": "PAID"}"""
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.change_payment_status(g.current_user, sale_id, data.get("payment_status"))
        return jsonify({"sale": sale.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to change payment status")


@sales_bp.post("/<int:sale_id>/delivery")
@require_auth
def delivery_route(sale_id: int):
    """
    Request body:
    {"delivered": true, "delivery_type": "Courier", "shipping_company": "Express Cargo", "tracking_number": "TR123"}
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.update_delivery(
            g.current_user,
            sale_id,
            delivered=bool(data.get("delivered", True)),
            delivery_type=data.get("delivery_type"),
            shipping_company=data.get("shipping_company"),
            tracking_number=data.get("tracking_number"),
        )
        return jsonify({"sale": sale.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to update delivery")
