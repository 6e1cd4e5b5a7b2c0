from __future__ import annotations

from ..extensions import db
from .mixins import UserMixin


class User(UserMixin, db.Model):
    """
    Accounts for authentication and attribution.

    Four independent capability flags; is_admin implies the other three
    (see permissions.py). Usernames are stored as entered but are unique
    and looked up case-insensitively.
    """
    __tablename__ = "users"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    can_add_product = db.Column(db.Boolean, nullable=False, default=False)
    can_view_reports = db.Column(db.Boolean, nullable=False, default=False)
    can_manage_inventory = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} is_admin={self.is_admin}>"


db.Index("uq_users_username_ci", db.func.lower(User.__table__.c.username), unique=True)


class SessionToken(db.Model):
    """
    Session tokens for authenticated API access.

    Only the SHA-256 hash of the token is stored; the plaintext is handed
    to the client once at login.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False)
    last_used_at = db.Column(db.DateTime, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime, nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
