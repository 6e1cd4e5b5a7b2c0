# Overview: Relational (Flask-SQLAlchemy) implementation of the inventory store.

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import ConflictError, PersistenceError
from ..extensions import db
from ..models import User, SessionToken, Product, Balance, InventoryMovement
from ..services.concurrency import lock_for_update, run_with_retry
from .base import InventoryStore


class SqlInventoryStore(InventoryStore):
    """
    Store backed by the application's SQLAlchemy session.

    Each atomic() call is one database transaction: committed when fn
    returns, rolled back when it raises. Lock and optimistic-version
    conflicts are retried (see services/concurrency.py) by re-running fn
    from the start, so fn must re-read everything it touches.
    """
    name = "sql"

    def __init__(self, *, attempts: int = 3, backoff_base: float = 0.1):
        self.attempts = attempts
        self.backoff_base = backoff_base

    def atomic(self, fn):
        def _op():
            try:
                result = fn()
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            return result

        try:
            return run_with_retry(_op, attempts=self.attempts, backoff_base=self.backoff_base)
        except IntegrityError as exc:
            raise ConflictError("Record conflicts with an existing record") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("Storage failure; the operation was rolled back") from exc

    def ping(self) -> dict:
        db.session.execute(text("SELECT 1"))
        return {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "movements": db.session.query(InventoryMovement).count(),
        }

    def _add(self, record):
        db.session.add(record)
        db.session.flush()
        return record

    # -- accounts --

    def get_user(self, user_id: int, *, lock: bool = False):
        query = db.session.query(User).filter_by(id=user_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def find_user_by_username(self, username: str):
        return db.session.query(User).filter(
            func.lower(User.username) == username.strip().lower()
        ).first()

    def list_users(self) -> list:
        return db.session.query(User).order_by(User.id.asc()).all()

    def insert_user(self, **fields: Any):
        return self._add(User(**fields))

    def delete_user(self, user_id: int) -> bool:
        user = self.get_user(user_id)
        if user is None:
            return False

        db.session.query(SessionToken).filter_by(user_id=user_id).delete()
        db.session.query(InventoryMovement).filter_by(user_id=user_id).update({"user_id": None})
        db.session.query(Balance).filter_by(updated_by=user_id).update({"updated_by": None})

        db.session.delete(user)
        db.session.flush()
        return True

    def count_admins(self, *, lock: bool = False) -> int:
        query = db.session.query(User.id).filter(User.is_admin.is_(True))
        if lock:
            # FOR UPDATE cannot wrap an aggregate, so lock the rows and count them here
            return len(lock_for_update(query).all())
        return query.count()

    # -- products --

    def get_product(self, product_id: int, *, lock: bool = False):
        query = db.session.query(Product).filter_by(id=product_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def find_product_by_name(self, name: str):
        return db.session.query(Product).filter(
            func.lower(Product.name) == name.strip().lower()
        ).first()

    def list_products(self, category: Optional[str] = None) -> list:
        query = db.session.query(Product)
        if category is not None:
            query = query.filter(Product.category == category)
        return query.order_by(Product.id.asc()).all()

    def insert_product(self, **fields: Any):
        return self._add(Product(**fields))

    def delete_product(self, product_id: int) -> bool:
        product = self.get_product(product_id, lock=True)
        if product is None:
            return False

        db.session.query(InventoryMovement).filter_by(product_id=product_id).delete()
        db.session.query(Balance).filter_by(product_id=product_id).delete()

        db.session.delete(product)
        db.session.flush()
        return True

    # -- balances --

    def get_balance(self, product_id: int, *, lock: bool = False):
        query = db.session.query(Balance).filter_by(product_id=product_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def list_balances(self) -> list:
        return db.session.query(Balance).order_by(Balance.id.asc()).all()

    def insert_balance(self, **fields: Any):
        return self._add(Balance(**fields))

    # -- movements --

    def get_movement(self, movement_id: int, *, lock: bool = False):
        query = db.session.query(InventoryMovement).filter_by(id=movement_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def insert_movement(self, **fields: Any):
        return self._add(InventoryMovement(**fields))

    def delete_movement(self, movement) -> None:
        db.session.delete(movement)
        db.session.flush()

    def _movement_query(
        self,
        product_id: Optional[int],
        start: Optional[datetime],
        end: Optional[datetime],
    ):
        query = db.session.query(InventoryMovement)
        if product_id is not None:
            query = query.filter(InventoryMovement.product_id == product_id)
        if start is not None:
            query = query.filter(InventoryMovement.movement_date >= start)
        if end is not None:
            query = query.filter(InventoryMovement.movement_date <= end)
        return query

    def list_movements(
        self,
        *,
        product_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> list:
        query = self._movement_query(product_id, start, end)
        if newest_first:
            query = query.order_by(
                InventoryMovement.movement_date.desc(),
                InventoryMovement.id.desc(),
            )
        else:
            query = query.order_by(InventoryMovement.id.asc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count_movements(
        self,
        product_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        return self._movement_query(product_id, start, end).count()

    # -- sessions --

    def insert_session(self, **fields: Any):
        return self._add(SessionToken(**fields))

    def find_session(self, token_hash: str):
        return db.session.query(SessionToken).filter_by(token_hash=token_hash).first()

    def list_user_sessions(self, user_id: int) -> list:
        return db.session.query(SessionToken).filter_by(user_id=user_id).all()
