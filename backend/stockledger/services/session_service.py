# Overview: Service-layer operations for session tokens; issue, validate and revoke.

"""
Session Token Management Service

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, 24 by default)
- Idle timeout (SESSION_IDLE_TIMEOUT_MINUTES, 120 by default)
- Revocable on logout, password change, or account deletion
- Tracks client IP and user agent for security monitoring
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from flask import current_app, has_app_context

from ..storage import InventoryStore
from ..time_utils import utcnow

# Defaults when no app config is available
SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    """Account and session record returned by validate_session."""
    user: Any
    session: Any


def _absolute_timeout() -> timedelta:
    if has_app_context():
        return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))
    return SESSION_ABSOLUTE_TIMEOUT


def _idle_timeout() -> timedelta:
    if has_app_context():
        return timedelta(minutes=current_app.config.get("SESSION_IDLE_TIMEOUT_MINUTES", 120))
    return SESSION_IDLE_TIMEOUT


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    """Hash token for storage using SHA-256. Returns hex-encoded hash string."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    store: InventoryStore,
    user_id: int,
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
):
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, the store keeps only the hash.

    Raises ValueError if the user does not exist.
    """
    plaintext_token = generate_token()
    token_hash = hash_token(plaintext_token)

    def _op():
        if store.get_user(user_id) is None:
            raise ValueError("User not found")

        now = utcnow()
        return store.insert_session(
            user_id=user_id,
            token_hash=token_hash,
            created_at=now,
            last_used_at=now,
            expires_at=now + _absolute_timeout(),
            user_agent=user_agent,
            ip_address=ip_address,
            is_revoked=False,
        )

    session = store.atomic(_op)
    return session, plaintext_token


def _revoke(session, reason: str, now=None) -> None:
    session.is_revoked = True
    session.revoked_at = now or utcnow()
    session.revoked_reason = reason


def validate_session(store: InventoryStore, token: str) -> Optional[SessionContext]:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, idle too long, revoked,
    or its account no longer exists. Idle sessions are revoked as a side
    effect. Updates last_used_at on successful validation.
    """
    if not token:
        return None

    token_hash = hash_token(token)

    def _op():
        session = store.find_session(token_hash)
        if session is None or session.is_revoked:
            return None

        now = utcnow()

        # Check absolute timeout
        if session.expires_at < now:
            return None

        # Check idle timeout
        if now - session.last_used_at > _idle_timeout():
            _revoke(session, "Idle timeout", now)
            return None

        user = store.get_user(session.user_id)
        if user is None:
            _revoke(session, "User account deleted", now)
            return None

        session.last_used_at = now
        return SessionContext(user=user, session=session)

    return store.atomic(_op)


def revoke_session(store: InventoryStore, token: str, reason: str = "User logout") -> bool:
    """Revoke one session by its plaintext token. Returns False if unknown or already revoked."""
    token_hash = hash_token(token)

    def _op():
        session = store.find_session(token_hash)
        if session is None or session.is_revoked:
            return False
        _revoke(session, reason)
        return True

    return store.atomic(_op)


def mark_user_sessions_revoked(store: InventoryStore, user_id: int, reason: str) -> int:
    """
    Revoke every active session of an account within the caller's unit of work.

    Returns the number of sessions revoked.
    """
    now = utcnow()
    count = 0
    for session in store.list_user_sessions(user_id):
        if not session.is_revoked:
            _revoke(session, reason, now)
            count += 1
    return count
