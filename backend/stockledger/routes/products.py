# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/stockledger/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Listing products needs no capability beyond being logged in
- Write operations require DEFINE_PRODUCTS (administrators hold it implicitly)
"""
from flask import Blueprint, request, current_app

from ..decorators import require_auth, require_permission
from ..errors import NotFoundError, PersistenceError
from ..models import Product
from ..services import products_service
from ..storage import get_store
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    ConflictError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List all products.

    Query params:
    - category: str (optional) - exact category filter
    """
    category = request.args.get("category") or None
    items = products_service.list_products(get_store(), category=category)
    return {"items": items, "count": len(items)}


@products_bp.post("")
@require_auth
@require_permission("CREATE_PRODUCT")
def create_product_route():
    """Create a new product. Body: {name, category?}"""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(get_store(), patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return created, 201


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("DELETE_PRODUCT")
def delete_product_route(product_id: int):
    """Delete a product together with its movements and balance."""
    try:
        deleted = products_service.delete_product(get_store(), product_id=product_id)
    except PersistenceError:
        current_app.logger.exception("Failed to delete product %s", product_id)
        return {"error": "Internal server error"}, 500

    if not deleted:
        return {"error": "Product not found"}, 404

    return {"ok": True}, 200


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("UPDATE_PRODUCT")
def update_product_route(product_id: int):
    """Rename or recategorize a product. Body: {name?, category?}"""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = products_service.update_product(get_store(), product_id=product_id, patch=patch)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        current_app.logger.exception("Failed to update product %s", product_id)
        return {"error": "Internal server error"}, 500

    return updated, 200
