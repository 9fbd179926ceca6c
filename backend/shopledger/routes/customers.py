# Overview: Flask API routes for customers and manual balance adjustments.

from flask import Blueprint, request, jsonify, g

from ..models import Customer, CustomerBalanceEvent
from ..extensions import db
from ..services import customer_service
from ..validation import ModelValidationPolicy, validate_payload, coerce_int
from ..decorators import require_auth, require_action
from .errors import handle_route_error

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=set(customer_service.CUSTOMER_MUTABLE_FIELDS),
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    customers = customer_service.list_customers(search=request.args.get("search"))
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": customer_service.get_customer(customer_id).to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to load customer")


@customers_bp.post("")
@require_auth
def create_customer_route():
    """
    Request body: customer fields plus optional "opening_balance_cents"
    (negative = existing debt).
    """
    try:
        data = dict(request.get_json(silent=True) or {})
        opening = data.pop("opening_balance_cents", 0) or 0
        opening = coerce_int("opening_balance_cents", opening)
        patch = validate_payload(model=Customer, payload=data, policy=CUSTOMER_POLICY, partial=False)
        customer = customer_service.create_customer(g.current_user, patch, opening_balance_cents=opening)
        return jsonify({"customer": customer.to_dict()}), 201
    except Exception as e:
        return handle_route_error(e, "Failed to create customer")


@customers_bp.patch("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    try:
        patch = validate_payload(model=Customer, payload=request.get_json(silent=True), policy=CUSTOMER_POLICY, partial=True)
        customer = customer_service.update_customer(g.current_user, customer_id, patch)
        return jsonify({"customer": customer.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to update customer")


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_action("DELETE_CUSTOMER")
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(g.current_user, customer_id)
        return jsonify({"message": "Customer deleted"}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to delete customer")


@customers_bp.post("/<int:customer_id>/balance-adjustments")
@require_auth
@require_action("ADJUST_BALANCE")
def adjust_balance_route(customer_id: int):
    """
    Request body:
    {"kind": "DEBT" | "CREDIT", "amount_cents": 5000, "description": "Opening debt"}
    """
    try:
        data = request.get_json(silent=True) or {}
        tx = customer_service.adjust_balance(
            g.current_user,
            customer_id,
            kind=data.get("kind"),
            amount_cents=coerce_int("amount_cents", data.get("amount_cents")),
            description=data.get("description"),
            method=data.get("method"),
        )
        customer = customer_service.get_customer(customer_id)
        return jsonify({"transaction": tx.to_dict(), "customer": customer.to_dict()}), 201
    except Exception as e:
        return handle_route_error(e, "Failed to adjust customer balance")


@customers_bp.get("/<int:customer_id>/balance-events")
@require_auth
@require_action("RECONCILE_LEDGER")
def balance_events_route(customer_id: int):
    events = (
        db.session.query(CustomerBalanceEvent)
        .filter_by(customer_id=customer_id)
        .order_by(CustomerBalanceEvent.id.asc())
        .all()
    )
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events)}), 200
