# Overview: Entity store selection and access.

from flask import current_app

from .base import InventoryStore
from .memory import MemoryInventoryStore
from .sql import SqlInventoryStore

STORE_EXTENSION_KEY = "inventory_store"


def build_store(kind: str, *, attempts: int = 3, backoff_base: float = 0.1) -> InventoryStore:
    """Build the store named by the INVENTORY_STORE setting."""
    if kind == "sql":
        return SqlInventoryStore(attempts=attempts, backoff_base=backoff_base)
    if kind == "memory":
        return MemoryInventoryStore()
    raise ValueError(f"Unknown INVENTORY_STORE: {kind!r} (expected 'sql' or 'memory')")


def get_store() -> InventoryStore:
    """The store bound to the current Flask app."""
    return current_app.extensions[STORE_EXTENSION_KEY]


__all__ = [
    "InventoryStore",
    "MemoryInventoryStore",
    "SqlInventoryStore",
    "STORE_EXTENSION_KEY",
    "build_store",
    "get_store",
]
