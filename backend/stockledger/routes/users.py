# Overview: Flask API routes for account administration; parses input and returns JSON responses.

# backend/stockledger/routes/users.py
"""
Account administration routes.

SECURITY: Every route requires MANAGE_USERS, which only administrators
hold. Responses never include password hashes.
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from ..models import User
from ..services import auth_service
from ..storage import get_store
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_user

USER_FLAG_FIELDS = {"is_admin", "can_add_product", "can_view_reports", "can_manage_inventory"}

USER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"username"} | USER_FLAG_FIELDS,
    required_on_create={"username"},
    extra_fields={"password"},
)

# Usernames are immutable once created
USER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(USER_FLAG_FIELDS),
    extra_fields={"password"},
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def create_user_from_request():
    """Shared by POST /api/users and POST /api/register."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_CREATE_POLICY, partial=False)
        enforce_rules_user(patch, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        user = auth_service.create_user(get_store(), **patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        current_app.logger.exception("Failed to create user")
        return {"error": "Internal server error"}, 500

    return user.to_dict(), 201


@users_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    users = get_store().list_users()
    return {"items": [u.to_dict() for u in users], "count": len(users)}


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    """
    Create an account.

    Body: {username, password, is_admin?, can_add_product?,
    can_view_reports?, can_manage_inventory?}
    """
    return create_user_from_request()


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_route(user_id: int):
    """
    Change capability flags and/or password.

    Removing is_admin from the last administrator is refused with 409.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_UPDATE_POLICY, partial=True)
        enforce_rules_user(patch, partial=True)
        user = auth_service.update_user(get_store(), user_id=user_id, **patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        current_app.logger.exception("Failed to update user %s", user_id)
        return {"error": "Internal server error"}, 500

    return user.to_dict(), 200


@users_bp.delete("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def delete_user_route(user_id: int):
    """
    Delete an account.

    Refused with 409 for the caller's own account and for the last
    administrator.
    """
    try:
        auth_service.delete_user(get_store(), user_id=user_id, acting_user_id=g.current_user.id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        current_app.logger.exception("Failed to delete user %s", user_id)
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200
