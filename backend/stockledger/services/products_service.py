# backend/stockledger/services/products_service.py
"""
Products Service

- Product names are unique, compared case-insensitively
- category is free-form and defaults to DEFAULT_PRODUCT_CATEGORY
- delete_product removes the product's movements and balance with it
"""
from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, NotFoundError
from ..storage import InventoryStore
from ..time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {"name", "category"}

DEFAULT_CATEGORY = "GENERAL"


def _default_category() -> str:
    return current_app.config.get("DEFAULT_PRODUCT_CATEGORY", DEFAULT_CATEGORY)


def apply_product_patch(p, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(store: InventoryStore, category: str | None = None) -> list[dict]:
    return [p.to_dict() for p in store.list_products(category=category)]


def create_product(store: InventoryStore, *, patch: dict) -> dict:
    """
    Create a product from a validated patch ({name, category?}).

    Raises ConflictError when the name is already taken.
    """
    name = patch["name"]
    category = patch.get("category") or _default_category()

    def _op():
        if store.find_product_by_name(name) is not None:
            raise ConflictError("Product name already exists")
        return store.insert_product(name=name, category=category, created_at=utcnow())

    product = store.atomic(_op)
    current_app.logger.info("Created product %s (%s)", product.id, product.name)
    return product.to_dict()


def update_product(store: InventoryStore, *, product_id: int, patch: dict) -> dict:
    """
    Rename or recategorize a product.

    Reports label movements with the product's current name, so a rename
    relabels the product's whole history.
    """
    def _op():
        product = store.get_product(product_id, lock=True)
        if product is None:
            raise NotFoundError("Product not found")

        new_name = patch.get("name")
        if new_name is not None:
            existing = store.find_product_by_name(new_name)
            if existing is not None and existing.id != product.id:
                raise ConflictError("Product name already exists")

        apply_product_patch(product, patch)
        return product

    product = store.atomic(_op)
    current_app.logger.info("Updated product %s (%s)", product.id, sorted(patch))
    return product.to_dict()


def delete_product(store: InventoryStore, *, product_id: int) -> bool:
    """Delete a product with its movements and balance. Returns False if it does not exist."""
    deleted = store.atomic(lambda: store.delete_product(product_id))
    if deleted:
        current_app.logger.info("Deleted product %s with its stock history", product_id)
    return deleted
