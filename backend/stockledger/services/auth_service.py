# Overview: Service-layer operations for accounts; password hashing and account rules.

"""
Account service.

SECURITY NOTES:
- Passwords hashed with bcrypt (BCRYPT_ROUNDS, 12 unless configured)
- Minimum 8 characters, with uppercase, lowercase, digit and special char
- Usernames are matched case-insensitively
- Session tokens managed separately (see session_service.py)

ACCOUNT RULES:
- At least one administrator exists at all times: the last one can be
  neither deleted nor demoted.
- An account cannot delete itself.
- Deleting an account keeps the ledger: movements and balances it touched
  lose the reference, its sessions are removed.
"""

from __future__ import annotations

import re
from typing import Optional

import bcrypt
from flask import current_app, has_app_context

from ..errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from ..permissions import CAPABILITY_FLAGS
from ..storage import InventoryStore
from ..time_utils import utcnow
from .session_service import mark_user_sessions_revoked

DEFAULT_BCRYPT_ROUNDS = 12

FLAG_FIELDS = tuple(CAPABILITY_FLAGS.values())


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password must be a string")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS))
    return DEFAULT_BCRYPT_ROUNDS


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise (including a
    malformed stored hash).
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # bcrypt raises ValueError for a hash it cannot parse ("Invalid salt")
        return False


def _normalize_username(username) -> str:
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required")
    username = username.strip()
    if len(username) > 64:
        raise ValidationError("username must be at most 64 characters")
    return username


def _flag_values(flags: dict) -> dict:
    values = {}
    for field in FLAG_FIELDS:
        if field in flags and flags[field] is not None:
            if not isinstance(flags[field], bool):
                raise ValidationError(f"{field} must be a boolean")
            values[field] = flags[field]
    return values


def create_user(
    store: InventoryStore,
    *,
    username: str,
    password: str,
    **flags,
):
    """
    Create a new account with bcrypt password hashing.

    Flags not given default to False. Raises ConflictError when the username
    is taken (case-insensitive) and PasswordValidationError for a weak
    password.
    """
    username = _normalize_username(username)
    password_hash = hash_password(password)
    flag_values = _flag_values(flags)

    def _op():
        if store.find_user_by_username(username) is not None:
            raise ConflictError("Username already exists")
        return store.insert_user(
            username=username,
            password_hash=password_hash,
            created_at=utcnow(),
            **flag_values,
        )

    user = store.atomic(_op)
    current_app.logger.info("Created account %s (%s)", user.id, user.username)
    return user


def authenticate(store: InventoryStore, username: str, password: str):
    """
    Return the account whose username (case-insensitive) and password match.

    Raises AuthenticationError otherwise; the message does not reveal
    which part was wrong.
    """
    if not username or not password:
        raise AuthenticationError("Invalid credentials")

    user = store.find_user_by_username(username)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    return user


def update_user(
    store: InventoryStore,
    *,
    user_id: int,
    password: Optional[str] = None,
    **flags,
):
    """
    Change an account's capability flags and/or password.

    Demoting the last administrator raises ConflictError. A password change
    revokes every session of the account.
    """
    flag_values = _flag_values(flags)
    password_hash = hash_password(password) if password is not None else None

    def _op():
        user = store.get_user(user_id, lock=True)
        if user is None:
            raise NotFoundError("User not found")

        if user.is_admin and flag_values.get("is_admin") is False:
            if store.count_admins(lock=True) <= 1:
                raise ConflictError("Cannot remove administrator rights from the last administrator")

        for field, value in flag_values.items():
            setattr(user, field, value)

        if password_hash is not None:
            user.password_hash = password_hash
            mark_user_sessions_revoked(store, user.id, reason="Password changed")
        return user

    user = store.atomic(_op)
    current_app.logger.info(
        "Updated account %s (flags=%s, password_changed=%s)",
        user.id, sorted(flag_values), password_hash is not None,
    )
    return user


def delete_user(store: InventoryStore, *, user_id: int, acting_user_id: Optional[int]) -> None:
    """
    Delete an account.

    Raises ConflictError for self-deletion or deleting the last
    administrator, NotFoundError when the account does not exist.
    """
    if acting_user_id is not None and user_id == acting_user_id:
        raise ConflictError("You cannot delete your own account")

    def _op():
        user = store.get_user(user_id, lock=True)
        if user is None:
            raise NotFoundError("User not found")
        if user.is_admin and store.count_admins(lock=True) <= 1:
            raise ConflictError("Cannot delete the last administrator")
        store.delete_user(user_id)

    store.atomic(_op)
    current_app.logger.info("Deleted account %s (by %s)", user_id, acting_user_id)


def ensure_bootstrap_admin(store: InventoryStore, username: str, password: str):
    """
    Create the bootstrap administrator when no administrator exists.

    Returns the created account, or None when one already exists.
    """
    if store.count_admins() > 0:
        return None

    existing = store.find_user_by_username(username)
    if existing is not None:
        # An account with the bootstrap name exists but lost its rights
        def _promote():
            user = store.get_user(existing.id, lock=True)
            user.is_admin = True
            return user

        user = store.atomic(_promote)
        current_app.logger.warning("Restored administrator rights to bootstrap account %s", user.username)
        return user

    user = create_user(
        store,
        username=username,
        password=password,
        **{field: True for field in FLAG_FIELDS},
    )
    current_app.logger.warning("Created bootstrap administrator %s; change its password", user.username)
    return user
