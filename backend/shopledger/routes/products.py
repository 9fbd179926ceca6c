# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

Products are global: every authenticated user can list them. Archiving
is admin only; personnel edits may not lower stock.
"""
from flask import Blueprint, request, jsonify, g

from ..models import Product
from ..services import products_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product
from ..decorators import require_auth, require_action
from .errors import handle_route_error

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "base_name", "variant_name", "category", "description",
        "price_cents", "stock_quantity", "low_stock_threshold", "lifecycle_status",
    },
    required_on_create={"base_name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - include_archived: 1 to include archived products
    - sellable: 1 to return ACTIVE products only (sale entry picker)
    - search: substring of base or variant name
    """
    products = products_service.list_products(
        include_archived=request.args.get("include_archived") == "1",
        sellable_only=request.args.get("sellable") == "1",
        search=request.args.get("search"),
    )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    products = products_service.low_stock_products()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify({"product": products_service.get_product(product_id).to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to load product")


@products_bp.post("")
@require_auth
def create_product_route():
    try:
        patch = validate_payload(model=Product, payload=request.get_json(silent=True), policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(g.current_user, patch)
        return jsonify({"product": product.to_dict()}), 201
    except Exception as e:
        return handle_route_error(e, "Failed to create product")


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    try:
        patch = validate_payload(model=Product, payload=request.get_json(silent=True), policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(g.current_user, product_id, patch)
        return jsonify({"product": product.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_action("ARCHIVE_PRODUCT")
def archive_product_route(product_id: int):
    """Soft delete: the product is archived, never removed."""
    try:
        product = products_service.archive_product(g.current_user, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except Exception as e:
        return handle_route_error(e, "Failed to archive product")
