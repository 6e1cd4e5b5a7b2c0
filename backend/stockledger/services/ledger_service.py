# Overview: Ledger engine; applies and reverses stock movements and answers stock reports.

"""
Inventory Ledger Invariants (authoritative)

Model:
- InventoryMovement rows are the append-only ledger. A movement is never
  edited; it is only ever deleted.
- Balance is a cached fold over the ledger, one row per product, created
  lazily by the product's first movement.

Invariant (must hold after every unit of work, deletions included):
- Balance.quantity    == SUM(quantity_change) of the product's movements
- Balance.total_value == SUM(total_price)     of the product's movements

Write path:
- record_movement inserts the movement and applies it to the balance in one
  store.atomic() unit; both are visible together or not at all.
- delete_movement reverses the movement on the balance and removes it in
  one unit. With the "recompute" strategy the balance is refolded from the
  remaining movements instead; both satisfy the invariant.
- Balance.unit is last-writer-wins and is NOT restored when a movement is
  deleted (observed behavior, kept on purpose).

Time:
- movement_date is stamped by the server (UTC-naive) when the movement is
  recorded. Report windows are inclusive on both ends.

The engine checks referential integrity only (the product must exist, the
numbers must be finite). Business rules on positive quantities and prices
are enforced by the HTTP layer before the engine is called.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from flask import current_app

from ..errors import NotFoundError, PersistenceError, ValidationError
from ..storage import InventoryStore, get_store
from ..time_utils import utcnow

MOVEMENT_TYPE_UPDATE = "update"

DELETE_STRATEGIES = ("reverse", "recompute")

# Drift below this is float noise, not a reconciliation problem
BALANCE_TOLERANCE = 1e-6


def _require_finite(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a finite number")
    return number


def _movement_row(movement, product) -> dict:
    row = movement.to_dict()
    row["product_name"] = product.name if product else None
    row["product_category"] = product.category if product else None
    return row


class LedgerEngine:
    """
    Storage-agnostic ledger operations.

    Every mutation runs inside store.atomic(); the engine keeps no state of
    its own between calls, so any number of engines may share one store.
    """

    def __init__(self, store: InventoryStore, *, delete_strategy: str = "reverse"):
        if delete_strategy not in DELETE_STRATEGIES:
            raise ValueError(
                f"delete_strategy must be one of {', '.join(DELETE_STRATEGIES)}"
            )
        self.store = store
        self.delete_strategy = delete_strategy

    # -- writes --

    def record_movement(
        self,
        *,
        product_id: int,
        quantity_change: float,
        unit: str,
        total_price: float,
        user_id: Optional[int] = None,
    ):
        """
        Append a movement and apply it to the product's balance.

        Raises NotFoundError if the product does not exist and
        PersistenceError if the store fails (nothing is kept in that case).
        """
        quantity_change = _require_finite("quantity_change", quantity_change)
        total_price = _require_finite("total_price", total_price)

        def _op():
            # Locking the product serializes writers for this product and
            # keeps a concurrent delete_product from slipping in between.
            product = self.store.get_product(product_id, lock=True)
            if product is None:
                raise NotFoundError("Product not found")

            now = utcnow()
            movement = self.store.insert_movement(
                product_id=product_id,
                quantity_change=quantity_change,
                unit=unit,
                total_price=total_price,
                movement_type=MOVEMENT_TYPE_UPDATE,
                movement_date=now,
                user_id=user_id,
            )

            balance = self.store.get_balance(product_id, lock=True)
            if balance is None:
                balance = self.store.insert_balance(
                    product_id=product_id,
                    quantity=0.0,
                    unit=unit,
                    total_value=0.0,
                    last_updated=now,
                    updated_by=user_id,
                )

            balance.quantity += quantity_change
            balance.total_value += total_price
            balance.unit = unit
            balance.last_updated = now
            balance.updated_by = user_id
            return movement

        try:
            movement = self.store.atomic(_op)
        except PersistenceError:
            current_app.logger.exception(
                "Failed to record movement for product %s; nothing was applied", product_id
            )
            raise

        current_app.logger.info(
            "Recorded movement %s: product=%s quantity_change=%s total_price=%s user=%s",
            movement.id, product_id, quantity_change, total_price, user_id,
        )
        return movement

    def delete_movement(self, movement_id: int) -> bool:
        """
        Reverse a movement on its balance and remove it.

        Returns False when the movement does not exist; deleting the same id
        twice leaves the balance untouched the second time.
        """
        def _op():
            movement = self.store.get_movement(movement_id, lock=True)
            if movement is None:
                return None

            product_id = movement.product_id
            snapshot = (product_id, movement.quantity_change, movement.total_price)

            if self.delete_strategy == "recompute":
                self.store.delete_movement(movement)
                self._refold_balance(product_id)
                return snapshot

            balance = self.store.get_balance(product_id, lock=True)
            if balance is None:
                current_app.logger.warning(
                    "Movement %s has no balance row for product %s; deleting without reversal",
                    movement_id, product_id,
                )
            else:
                balance.quantity -= movement.quantity_change
                balance.total_value -= movement.total_price
                balance.last_updated = utcnow()

            self.store.delete_movement(movement)
            return snapshot

        try:
            deleted = self.store.atomic(_op)
        except PersistenceError:
            current_app.logger.exception(
                "Failed to delete movement %s; balance left as of the last committed state",
                movement_id,
            )
            raise

        if deleted is None:
            return False

        product_id, quantity_change, total_price = deleted
        current_app.logger.info(
            "Deleted movement %s (%s): product=%s reversed quantity_change=%s total_price=%s",
            movement_id, self.delete_strategy, product_id, quantity_change, total_price,
        )
        return True

    def _refold_balance(self, product_id: int):
        """Rebuild quantity/total_value from the ledger. Call inside atomic()."""
        movements = self.store.list_movements(product_id=product_id)
        balance = self.store.get_balance(product_id, lock=True)
        if balance is None:
            if not movements:
                return None
            last = movements[-1]
            balance = self.store.insert_balance(
                product_id=product_id,
                quantity=0.0,
                unit=last.unit,
                total_value=0.0,
                last_updated=last.movement_date,
                updated_by=last.user_id,
            )

        balance.quantity = math.fsum(m.quantity_change for m in movements)
        balance.total_value = math.fsum(m.total_price for m in movements)
        balance.last_updated = utcnow()
        return balance

    def rebuild_balance(self, product_id: int):
        """Recompute one product's balance from its movements."""
        if self.store.get_product(product_id) is None:
            raise NotFoundError("Product not found")
        balance = self.store.atomic(lambda: self._refold_balance(product_id))
        current_app.logger.warning("Rebuilt balance for product %s from its movement log", product_id)
        return balance

    # -- reads --

    def list_inventory(self) -> list[dict]:
        """Every balance row joined with its product's name and category."""
        rows = []
        for balance in self.store.list_balances():
            product = self.store.get_product(balance.product_id)
            row = balance.to_dict()
            row["product_name"] = product.name if product else None
            row["product_category"] = product.category if product else None
            rows.append(row)
        return rows

    def latest_movements(
        self,
        limit: int = 10,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[dict]:
        movements = self.store.list_movements(
            start=start, end=end, newest_first=True, limit=limit
        )
        return self._join_products(movements)

    def get_inventory_report(self, start: datetime, end: datetime) -> list[dict]:
        """
        One row per product with its current balance and the number of
        movements inside [start, end].

        Balance figures are current, not windowed. Products without a
        balance report zero quantity, an empty unit and zero value.
        """
        rows = []
        for product in self.store.list_products():
            balance = self.store.get_balance(product.id)
            rows.append({
                "id": product.id,
                "name": product.name,
                "category": product.category,
                "current_quantity": balance.quantity if balance else 0.0,
                "unit": balance.unit if balance else "",
                "total_value": balance.total_value if balance else 0.0,
                "movement_count": self.store.count_movements(product.id, start, end),
            })
        return rows

    def get_detailed_movements_report(self, start: datetime, end: datetime) -> list[dict]:
        """
        Movements inside [start, end], newest first, labelled with the
        product's current name and category.
        """
        movements = self.store.list_movements(start=start, end=end, newest_first=True)
        return self._join_products(movements)

    def _join_products(self, movements) -> list[dict]:
        products = {}
        rows = []
        for movement in movements:
            if movement.product_id not in products:
                products[movement.product_id] = self.store.get_product(movement.product_id)
            product = products[movement.product_id]
            if product is None:
                continue
            rows.append(_movement_row(movement, product))
        return rows

    def check_balances(self) -> list[dict]:
        """
        Compare every product's balance with the fold of its movements.

        Returns one entry per product whose cached figures drifted.
        """
        drift = []
        for product in self.store.list_products():
            movements = self.store.list_movements(product_id=product.id)
            expected_quantity = math.fsum(m.quantity_change for m in movements)
            expected_value = math.fsum(m.total_price for m in movements)

            balance = self.store.get_balance(product.id)
            actual_quantity = balance.quantity if balance else 0.0
            actual_value = balance.total_value if balance else 0.0

            if (
                abs(actual_quantity - expected_quantity) > BALANCE_TOLERANCE
                or abs(actual_value - expected_value) > BALANCE_TOLERANCE
                or (balance is None and movements)
            ):
                entry = {
                    "product_id": product.id,
                    "product_name": product.name,
                    "expected_quantity": expected_quantity,
                    "actual_quantity": actual_quantity,
                    "expected_total_value": expected_value,
                    "actual_total_value": actual_value,
                    "has_balance": balance is not None,
                }
                current_app.logger.warning("Balance drift detected: %s", entry)
                drift.append(entry)
        return drift


def get_ledger() -> LedgerEngine:
    """Ledger engine bound to the current app's store and settings."""
    return LedgerEngine(
        get_store(),
        delete_strategy=current_app.config.get("LEDGER_DELETE_STRATEGY", "reverse"),
    )
