# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/stockledger/routes/auth.py
"""
Authentication API routes

- Login by case-insensitive username and password; returns a bearer token
- Logout revokes the presented token
- Registration is an administrator action (same contract as POST /api/users)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import AuthenticationError, PersistenceError
from ..services import auth_service
from ..services import session_service
from ..storage import get_store
from ..time_utils import to_utc_z
from .users import create_user_from_request


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success.
    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        return jsonify({"error": "username and password required"}), 400

    store = get_store()
    try:
        user = auth_service.authenticate(store, username, password)
        session, token = session_service.create_session(
            store,
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except AuthenticationError:
        return jsonify({"error": "Invalid credentials"}), 401
    except PersistenceError:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
        "message": "Login successful"
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session token presented in the Authorization header."""
    try:
        session_service.revoke_session(get_store(), g.session_token, reason="User logout")
    except PersistenceError:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Logout successful"}), 200


@auth_bp.post("/register")
@require_auth
@require_permission("MANAGE_USERS")
def register_route():
    """Create an account (administrators only)."""
    return create_user_from_request()


@auth_bp.get("/user")
@require_auth
def current_user_route():
    """Current account with its effective capabilities."""
    return jsonify(g.current_user.to_dict()), 200
