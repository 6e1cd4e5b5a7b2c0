# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from . import permissions
from .errors import PermissionDeniedError
from .services import session_service
from .storage import get_store


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid session token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated account
    - g.session_token: The plaintext bearer token (for logout)
    - g.session_context: The full SessionContext object

    Returns 401 if there is no Authorization header or the token is
    invalid, expired, revoked, or belongs to a deleted account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        context = session_service.validate_session(get_store(), token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_token = token
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_permission(operation: str):
    """
    Require the capability that an operation needs (see permissions.py).

    Must be applied after @require_auth.
    """
    # Fail at import time on a typo rather than on the first request
    permissions.required_capability(operation)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                permissions.require_operation(g.current_user, operation)
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": operation,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
