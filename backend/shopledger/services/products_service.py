# backend/shopledger/services/products_service.py
"""
Products Service

Products are global (visible to every user). Lifecycle is a single enum:
ACTIVE products can be sold, INACTIVE products are hidden from new sales,
ARCHIVED products are soft-deleted and kept for sale history.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product, User
from ..validation import ConflictError, NotFoundError, ValidationError
from . import activity_service as activity
from .concurrency import lock_for_update, run_with_retry
from .permission_service import PermissionDeniedError, is_admin, require_action

LIFECYCLE_ACTIVE = "ACTIVE"
LIFECYCLE_INACTIVE = "INACTIVE"
LIFECYCLE_ARCHIVED = "ARCHIVED"

LIFECYCLE_STATUSES = {LIFECYCLE_ACTIVE, LIFECYCLE_INACTIVE, LIFECYCLE_ARCHIVED}

PRODUCT_MUTABLE_FIELDS = {
    "base_name", "variant_name", "category", "description",
    "price_cents", "stock_quantity", "low_stock_threshold", "lifecycle_status",
}


def apply_product_patch(p: Product, patch: dict) -> list[str]:
    changed = []
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        if getattr(p, k) != v:
            setattr(p, k, v)
            changed.append(k)
    return changed


def _find_duplicate(base_name: str, variant_name: str | None, exclude_id: int | None = None) -> Product | None:
    query = db.session.query(Product).filter(
        db.func.lower(Product.base_name) == base_name.strip().lower(),
        db.func.lower(db.func.coalesce(Product.variant_name, "")) == (variant_name or "").strip().lower(),
        Product.lifecycle_status != LIFECYCLE_ARCHIVED,
    )
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first()


def list_products(*, include_archived: bool = False, sellable_only: bool = False, search: str | None = None) -> list[Product]:
    """
    Product listing ordered by name.

    sellable_only narrows to ACTIVE products (the POS picker view).
    """
    query = db.session.query(Product)
    if sellable_only:
        query = query.filter(Product.lifecycle_status == LIFECYCLE_ACTIVE)
    elif not include_archived:
        query = query.filter(Product.lifecycle_status != LIFECYCLE_ARCHIVED)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.base_name.ilike(like), Product.variant_name.ilike(like)))
    return query.order_by(Product.base_name.asc(), Product.variant_name.asc(), Product.id.asc()).all()


def low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(
            Product.lifecycle_status != LIFECYCLE_ARCHIVED,
            Product.stock_quantity <= Product.low_stock_threshold,
        )
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def create_product(actor: User, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    Raises ConflictError when a non-archived product with the same base
    name and variant (case-insensitive) already exists.
    """
    base_name = (patch.get("base_name") or "").strip()
    if not base_name:
        raise ValidationError("base_name is required")
    status = patch.get("lifecycle_status", LIFECYCLE_ACTIVE)
    if status not in LIFECYCLE_STATUSES:
        raise ValidationError(f"lifecycle_status must be one of {', '.join(sorted(LIFECYCLE_STATUSES))}")
    if status == LIFECYCLE_ARCHIVED:
        raise ValidationError("Cannot create an archived product")

    def _op():
        if _find_duplicate(base_name, patch.get("variant_name")):
            raise ConflictError(f"Product '{base_name}' with this variant already exists")

        product = Product(created_by_user_id=actor.id, created_by_name=actor.display_name)
        apply_product_patch(product, patch)
        product.lifecycle_status = status
        db.session.add(product)
        db.session.flush()

        activity.log_activity(
            actor, activity.ACTION_CREATE, activity.ENTITY_PRODUCT,
            f"Created product: {product.display_name}",
            {"product_id": product.id},
        )
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(actor: User, product_id: int, patch: dict) -> Product:
    """
    Update a product.

    PERSONNEL may raise stock but never lower it, and may not archive.
    """
    status = patch.get("lifecycle_status")
    if status is not None and status not in LIFECYCLE_STATUSES:
        raise ValidationError(f"lifecycle_status must be one of {', '.join(sorted(LIFECYCLE_STATUSES))}")
    if status == LIFECYCLE_ARCHIVED:
        require_action(actor, "ARCHIVE_PRODUCT", resource=f"product:{product_id}")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")

        new_stock = patch.get("stock_quantity")
        if new_stock is not None and new_stock < product.stock_quantity and not is_admin(actor):
            raise PermissionDeniedError("Personnel cannot decrease stock")

        base_name = patch.get("base_name", product.base_name)
        variant_name = patch.get("variant_name", product.variant_name)
        if ("base_name" in patch or "variant_name" in patch) and _find_duplicate(base_name, variant_name, exclude_id=product.id):
            raise ConflictError(f"Product '{base_name}' with this variant already exists")

        changed = apply_product_patch(product, patch)
        if changed:
            activity.log_activity(
                actor, activity.ACTION_UPDATE, activity.ENTITY_PRODUCT,
                f"Updated product: {product.display_name}",
                {"product_id": product.id, "fields": changed},
            )
        db.session.commit()
        return product

    return run_with_retry(_op)


def archive_product(actor: User, product_id: int) -> Product:
    """Soft delete (admin only). The row stays for sale history."""
    require_action(actor, "ARCHIVE_PRODUCT", resource=f"product:{product_id}")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        if product.lifecycle_status != LIFECYCLE_ARCHIVED:
            product.lifecycle_status = LIFECYCLE_ARCHIVED
            activity.log_activity(
                actor, activity.ACTION_DELETE, activity.ENTITY_PRODUCT,
                f"Archived product: {product.display_name}",
                {"product_id": product.id},
            )
        db.session.commit()
        return product

    return run_with_retry(_op)


def change_stock(product: Product, delta: int) -> None:
    """Stock movement inside a sale/return transaction. No floor is applied."""
    product.stock_quantity = (product.stock_quantity or 0) + delta
