# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..services import return_service
from ..validation import coerce_int
from ..decorators import require_auth
from .errors import handle_route_error


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("/sales/<int:sale_id>")
@require_auth
def process_return_route(sale_id: int):
    """
    Return items from a sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 3, "condition": "RESELLABLE"}],
        "reason": "Wrong size",
        "refund_amount_cents": 12000,   (optional, defaults to item value incl. tax)
        "refund_status": "PENDING" | "COMPLETED",   (optional)
        "refund_method": "CASH" | "CARD" | "IBAN" | "WALLET",   (optional)
        "refund_description": "...",
        "return_shipping_company": "...",
        "return_tracking_number": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        refund_amount = data.get("refund_amount_cents")
        record = return_service.process_return(
            g.current_user,
            sale_id,
            items=data.get("items"),
            reason=data.get("reason"),
            refund_amount_cents=coerce_int("refund_amount_cents", refund_amount) if refund_amount is not None else None,
            refund_status=data.get("refund_status"),
            refund_method=data.get("refund_method"),
            refund_description=data.get("refund_description"),
            return_shipping_company=data.get("return_shipping_company"),
            return_tracking_number=data.get("return_tracking_number"),
        )
        return jsonify({"return": record.to_dict(), "sale": record.sale.to_dict()}), 201
    except Exception as e:
        return handle_route_error(e, "Failed to process return")


@returns_bp.patch("/sales/<int:sale_id>/refund")
@require_auth
def update_refund_route(sale_id: int):
    """Request body: {"refund_status": "COMPLETED", "refund_method": "WALLET", "refund_description": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        record = return_service.update_return_payment(
            g.current_user,
            sale_id,
            refund_status=data.get("refund_status"),
            refund_method=data.get("refund_method"),
            refund_description=data.get("refund_description"),
        )
        return jsonify({"return": record.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to update refund")
