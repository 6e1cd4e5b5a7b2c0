# Overview: In-process implementation of the inventory store (tests, demos).

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Optional

from ..errors import ConflictError
from .base import InventoryStore
from .records import UserRecord, ProductRecord, BalanceRecord, MovementRecord, SessionRecord


class MemoryInventoryStore(InventoryStore):
    """
    Dict-backed store guarded by one mutex per table.

    atomic() takes every table mutex (always in _TABLES order, so two units
    of work cannot deadlock), snapshots the tables, and puts the snapshot
    back if fn raises. Readers take only the mutex of the table they scan,
    so they never observe a half-applied unit of work.

    State lives in this object only; it is not shared between processes.
    """
    name = "memory"

    _TABLES = ("users", "products", "balances", "movements", "sessions")

    _RECORD_TYPES = {
        "users": UserRecord,
        "products": ProductRecord,
        "balances": BalanceRecord,
        "movements": MovementRecord,
        "sessions": SessionRecord,
    }

    def __init__(self):
        self._tables: dict[str, dict[int, Any]] = {name: {} for name in self._TABLES}
        self._next_ids = {name: 1 for name in self._TABLES}
        self._locks = {name: threading.RLock() for name in self._TABLES}

    @contextmanager
    def _locked(self, *names: str):
        ordered = [name for name in self._TABLES if name in names]
        for name in ordered:
            self._locks[name].acquire()
        try:
            yield
        finally:
            for name in reversed(ordered):
                self._locks[name].release()

    def _snapshot(self):
        tables = {
            name: {record_id: copy.copy(record) for record_id, record in rows.items()}
            for name, rows in self._tables.items()
        }
        return tables, dict(self._next_ids)

    def atomic(self, fn):
        with self._locked(*self._TABLES):
            tables, next_ids = self._snapshot()
            try:
                return fn()
            except BaseException:
                self._tables = tables
                self._next_ids = next_ids
                raise

    def _insert(self, table: str, **fields: Any):
        with self._locked(table):
            record_id = self._next_ids[table]
            self._next_ids[table] = record_id + 1
            record = self._RECORD_TYPES[table](id=record_id, **fields)
            self._tables[table][record_id] = record
            return record

    def _rows(self, table: str) -> list:
        with self._locked(table):
            return list(self._tables[table].values())

    # -- accounts --

    def get_user(self, user_id: int, *, lock: bool = False):
        with self._locked("users"):
            return self._tables["users"].get(user_id)

    def find_user_by_username(self, username: str):
        wanted = username.strip().lower()
        for user in self._rows("users"):
            if user.username.lower() == wanted:
                return user
        return None

    def list_users(self) -> list:
        return self._rows("users")

    def insert_user(self, **fields: Any):
        with self._locked("users"):
            if self.find_user_by_username(fields["username"]) is not None:
                raise ConflictError("Username already exists")
            return self._insert("users", **fields)

    def delete_user(self, user_id: int) -> bool:
        with self._locked(*self._TABLES):
            if user_id not in self._tables["users"]:
                return False
            sessions = self._tables["sessions"]
            for session_id in [s.id for s in sessions.values() if s.user_id == user_id]:
                del sessions[session_id]
            for movement in self._tables["movements"].values():
                if movement.user_id == user_id:
                    movement.user_id = None
            for balance in self._tables["balances"].values():
                if balance.updated_by == user_id:
                    balance.updated_by = None
            del self._tables["users"][user_id]
            return True

    def count_admins(self, *, lock: bool = False) -> int:
        return sum(1 for user in self._rows("users") if user.is_admin)

    # -- products --

    def get_product(self, product_id: int, *, lock: bool = False):
        with self._locked("products"):
            return self._tables["products"].get(product_id)

    def find_product_by_name(self, name: str):
        wanted = name.strip().lower()
        for product in self._rows("products"):
            if product.name.lower() == wanted:
                return product
        return None

    def list_products(self, category: Optional[str] = None) -> list:
        products = self._rows("products")
        if category is not None:
            products = [p for p in products if p.category == category]
        return products

    def insert_product(self, **fields: Any):
        with self._locked("products"):
            if self.find_product_by_name(fields["name"]) is not None:
                raise ConflictError("Product name already exists")
            return self._insert("products", **fields)

    def delete_product(self, product_id: int) -> bool:
        with self._locked(*self._TABLES):
            if product_id not in self._tables["products"]:
                return False
            for table in ("movements", "balances"):
                rows = self._tables[table]
                for record_id in [r.id for r in rows.values() if r.product_id == product_id]:
                    del rows[record_id]
            del self._tables["products"][product_id]
            return True

    # -- balances --

    def get_balance(self, product_id: int, *, lock: bool = False):
        for balance in self._rows("balances"):
            if balance.product_id == product_id:
                return balance
        return None

    def list_balances(self) -> list:
        return self._rows("balances")

    def insert_balance(self, **fields: Any):
        with self._locked("balances"):
            if self.get_balance(fields["product_id"]) is not None:
                raise ConflictError("Product already has a balance")
            return self._insert("balances", **fields)

    # -- movements --

    def get_movement(self, movement_id: int, *, lock: bool = False):
        with self._locked("movements"):
            return self._tables["movements"].get(movement_id)

    def insert_movement(self, **fields: Any):
        return self._insert("movements", **fields)

    def delete_movement(self, movement) -> None:
        with self._locked("movements"):
            self._tables["movements"].pop(movement.id, None)

    def _filter_movements(
        self,
        product_id: Optional[int],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> list:
        return [
            m for m in self._rows("movements")
            if (product_id is None or m.product_id == product_id)
            and (start is None or m.movement_date >= start)
            and (end is None or m.movement_date <= end)
        ]

    def list_movements(
        self,
        *,
        product_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> list:
        movements = self._filter_movements(product_id, start, end)
        if newest_first:
            movements.sort(key=lambda m: (m.movement_date, m.id), reverse=True)
        if limit is not None:
            movements = movements[:limit]
        return movements

    def count_movements(
        self,
        product_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        return len(self._filter_movements(product_id, start, end))

    # -- sessions --

    def insert_session(self, **fields: Any):
        return self._insert("sessions", **fields)

    def find_session(self, token_hash: str):
        for session in self._rows("sessions"):
            if session.token_hash == token_hash:
                return session
        return None

    def list_user_sessions(self, user_id: int) -> list:
        return [s for s in self._rows("sessions") if s.user_id == user_id]
