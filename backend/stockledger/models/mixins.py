# Overview: Serialization shared by ORM models and in-memory store records.

"""
Both store variants return records with the same attribute names. The
to_dict() implementations live here so a record serializes identically no
matter which store produced it.
"""

from __future__ import annotations

from ..permissions import effective_capabilities
from ..time_utils import to_utc_z


class UserMixin:
    def capabilities(self) -> list[str]:
        return sorted(effective_capabilities(self))

    def to_dict(self) -> dict:
        # password_hash never leaves the service layer
        return {
            "id": self.id,
            "username": self.username,
            "is_admin": bool(self.is_admin),
            "can_add_product": bool(self.can_add_product),
            "can_view_reports": bool(self.can_view_reports),
            "can_manage_inventory": bool(self.can_manage_inventory),
            "capabilities": self.capabilities(),
            "created_at": to_utc_z(self.created_at),
        }


class ProductMixin:
    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "created_at": to_utc_z(self.created_at),
        }


class BalanceMixin:
    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit": self.unit,
            "total_value": self.total_value,
            "last_updated": to_utc_z(self.last_updated),
            "updated_by": self.updated_by,
        }


class MovementMixin:
    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_change": self.quantity_change,
            "unit": self.unit,
            "total_price": self.total_price,
            "movement_type": self.movement_type,
            "movement_date": to_utc_z(self.movement_date),
            "user_id": self.user_id,
        }
