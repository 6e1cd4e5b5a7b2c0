# Overview: Storage interface the services and ledger engine are written against.

"""
InventoryStore is the Entity Store seam. Services never open transactions or
query tables themselves; they call these methods, and wrap every mutation in
atomic() so it commits or rolls back as one unit.

Records returned by a store are live: attribute changes made inside atomic()
are persisted when the unit of work completes. Mutating a record outside
atomic() is undefined.

Business invariants (balance arithmetic, last-admin protection) are NOT the
store's job; it only enforces identity, case-insensitive uniqueness of
usernames and product names, and the product delete cascade.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


class InventoryStore(ABC):
    name = "abstract"

    # -- units of work --

    @abstractmethod
    def atomic(self, fn: Callable[[], T]) -> T:
        """
        Run fn as one unit of work and return its result.

        Either every change fn makes is kept or none is. Raises
        ConflictError on uniqueness violations and PersistenceError on other
        storage failures; exceptions raised by fn itself propagate unchanged
        after rollback.
        """

    def ping(self) -> dict:
        """Cheap connectivity check for the health endpoint."""
        return {"users": len(self.list_users())}

    # -- accounts --

    @abstractmethod
    def get_user(self, user_id: int, *, lock: bool = False): ...

    @abstractmethod
    def find_user_by_username(self, username: str): ...

    @abstractmethod
    def list_users(self) -> list: ...

    @abstractmethod
    def insert_user(self, **fields: Any): ...

    @abstractmethod
    def delete_user(self, user_id: int) -> bool:
        """Delete an account, its sessions, and null out ledger references to it."""

    @abstractmethod
    def count_admins(self, *, lock: bool = False) -> int:
        """Number of administrators; lock=True locks every administrator row until the unit of work ends."""

    # -- products --

    @abstractmethod
    def get_product(self, product_id: int, *, lock: bool = False): ...

    @abstractmethod
    def find_product_by_name(self, name: str): ...

    @abstractmethod
    def list_products(self, category: Optional[str] = None) -> list: ...

    @abstractmethod
    def insert_product(self, **fields: Any): ...

    @abstractmethod
    def delete_product(self, product_id: int) -> bool:
        """Remove the product's movements, then its balance, then the product."""

    # -- balances --

    @abstractmethod
    def get_balance(self, product_id: int, *, lock: bool = False): ...

    @abstractmethod
    def list_balances(self) -> list: ...

    @abstractmethod
    def insert_balance(self, **fields: Any): ...

    # -- movements --

    @abstractmethod
    def get_movement(self, movement_id: int, *, lock: bool = False): ...

    @abstractmethod
    def insert_movement(self, **fields: Any): ...

    @abstractmethod
    def delete_movement(self, movement) -> None: ...

    @abstractmethod
    def list_movements(
        self,
        *,
        product_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> list:
        """
        Movements filtered by product and inclusive [start, end] window.

        Oldest first in insertion order by default; newest_first orders by
        movement_date then id, both descending.
        """

    @abstractmethod
    def count_movements(
        self,
        product_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int: ...

    # -- sessions --

    @abstractmethod
    def insert_session(self, **fields: Any): ...

    @abstractmethod
    def find_session(self, token_hash: str): ...

    @abstractmethod
    def list_user_sessions(self, user_id: int) -> list: ...
