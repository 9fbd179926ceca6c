# Overview: Flask API routes for collections and the transaction log.

from flask import Blueprint, request, jsonify, g

from ..services import collection_service
from ..validation import coerce_int
from ..decorators import require_auth
from .errors import handle_route_error


collections_bp = Blueprint("collections", __name__, url_prefix="/api/collections")


@collections_bp.post("/sales/<int:sale_id>")
@require_auth
def collect_for_sale_route(sale_id: int):
    """
    Request body: {"amount_cents": 50000, "method": "CASH", "description": "..."}

    The response flags exceeds_remaining when more than the open amount
    was collected; the collection is still recorded.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = collection_service.collect_for_sale(
            g.current_user,
            sale_id,
            coerce_int("amount_cents", data.get("amount_cents")),
            method=data.get("method") or collection_service.METHOD_CASH,
            description=data.get("description"),
        )
        return jsonify(result.to_dict()), 201
    except Exception as e:
        return handle_route_error(e, "Failed to record collection")


@collections_bp.post("/customers/<int:customer_id>")
@require_auth
def collect_general_route(customer_id: int):
    """General collection not tied to a sale."""
    try:
        data = request.get_json(silent=True) or {}
        result = collection_service.collect_general(
            g.current_user,
            customer_id,
            coerce_int("amount_cents", data.get("amount_cents")),
            method=data.get("method") or collection_service.METHOD_CASH,
            description=data.get("description"),
        )
        return jsonify(result.to_dict()), 201
    except Exception as e:
        return handle_route_error(e, "Failed to record collection")


@collections_bp.get("/transactions")
@require_auth
def list_transactions_route():
    transactions = collection_service.list_transactions(
        g.current_user,
        customer_id=request.args.get("customer_id", type=int),
        sale_id=request.args.get("sale_id", type=int),
        tx_type=request.args.get("type"),
    )
    return jsonify({"items": [t.to_dict() for t in transactions], "count": len(transactions)}), 200
