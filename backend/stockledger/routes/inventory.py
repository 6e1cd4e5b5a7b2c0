# backend/stockledger/routes/inventory.py
"""
Inventory (stock) routes.

SECURITY: All routes require authentication.
- Reading balances and the latest movements needs no further capability
- Recording and deleting movements require MANAGE_INVENTORY

Time semantics:
- movement_date is assigned by the server; clients cannot supply it.
- startDate/endDate accept a bare date or an ISO-8601 timestamp (UTC).
"""
from flask import Blueprint, request, g, current_app

from ..models import InventoryMovement
from ..errors import NotFoundError, PersistenceError
from ..services.ledger_service import get_ledger
from ..time_utils import parse_window_bound
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_movement,
)
from ..decorators import require_auth, require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity_change", "unit", "total_price"},
    required_on_create={"product_id", "quantity_change", "unit", "total_price"},
)

DEFAULT_LATEST_LIMIT = 10
MAX_LATEST_LIMIT = 500


@inventory_bp.get("")
@require_auth
def list_inventory_route():
    """Every balance with its product's name and category."""
    items = get_ledger().list_inventory()
    return {"items": items, "count": len(items)}


@inventory_bp.post("/movements")
@require_auth
@require_permission("CREATE_MOVEMENT")
def create_movement_route():
    """
    Record a stock movement and apply it to the product's balance.

    Body: {product_id, quantity_change (> 0), unit, total_price (>= 0)}
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=InventoryMovement,
            payload=payload,
            policy=MOVEMENT_POLICY,
            partial=False,
        )
        enforce_rules_movement(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        movement = get_ledger().record_movement(
            product_id=patch["product_id"],
            quantity_change=patch["quantity_change"],
            unit=patch["unit"],
            total_price=patch["total_price"],
            user_id=g.current_user.id,
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except PersistenceError:
        current_app.logger.exception("Failed to record movement")
        return {"error": "Internal server error"}, 500

    return movement.to_dict(), 201


@inventory_bp.get("/movements/latest")
@require_auth
def latest_movements_route():
    """
    Newest movements first.

    Query params:
    - limit: int (optional, default 10)
    - startDate / endDate: optional window bounds
    """
    limit = request.args.get("limit", DEFAULT_LATEST_LIMIT, type=int)
    if limit is None or limit < 1 or limit > MAX_LATEST_LIMIT:
        return {"error": f"limit must be between 1 and {MAX_LATEST_LIMIT}"}, 400

    try:
        start = parse_window_bound(request.args.get("startDate"), end=False)
        end = parse_window_bound(request.args.get("endDate"), end=True)
    except ValueError:
        return {"error": "startDate/endDate must be a date or ISO-8601 datetime"}, 400

    items = get_ledger().latest_movements(limit, start=start, end=end)
    return {"items": items, "count": len(items)}


@inventory_bp.delete("/movements/<int:movement_id>")
@require_auth
@require_permission("DELETE_MOVEMENT")
def delete_movement_route(movement_id: int):
    """Delete a movement and reverse its effect on the balance."""
    try:
        deleted = get_ledger().delete_movement(movement_id)
    except PersistenceError:
        current_app.logger.exception("Failed to delete movement %s", movement_id)
        return {"error": "Internal server error"}, 500

    if not deleted:
        return {"error": "Movement not found"}, 404

    return {"ok": True}, 200
