# Overview: Plain records used by the in-memory store.

"""
Attribute-compatible stand-ins for the ORM models, so services and the
ledger engine treat records from either store the same way.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..models.mixins import UserMixin, ProductMixin, BalanceMixin, MovementMixin


@dataclass
class UserRecord(UserMixin):
    id: int
    username: str
    password_hash: str
    created_at: datetime
    is_admin: bool = False
    can_add_product: bool = False
    can_view_reports: bool = False
    can_manage_inventory: bool = False


@dataclass
class ProductRecord(ProductMixin):
    id: int
    name: str
    category: str
    created_at: datetime


@dataclass
class BalanceRecord(BalanceMixin):
    id: int
    product_id: int
    unit: str
    last_updated: datetime
    quantity: float = 0.0
    total_value: float = 0.0
    updated_by: Optional[int] = None


@dataclass
class MovementRecord(MovementMixin):
    id: int
    product_id: int
    quantity_change: float
    unit: str
    total_price: float
    movement_date: datetime
    movement_type: str = "update"
    user_id: Optional[int] = None


@dataclass
class SessionRecord:
    id: int
    user_id: int
    token_hash: str
    created_at: datetime
    last_used_at: datetime
    expires_at: datetime
    is_revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
