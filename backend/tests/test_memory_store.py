"""
In-process store tests.

Verifies:
- Concurrent movements on one product serialize without lost updates
- atomic() puts every table back when the unit of work raises
- Case-insensitive uniqueness of usernames and product names
"""

import threading
from datetime import datetime

import pytest

from stockledger.errors import ConflictError
from stockledger.services.ledger_service import LedgerEngine
from stockledger.storage import MemoryInventoryStore, build_store

from conftest import make_app


NOW = datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture
def store():
    return MemoryInventoryStore()


@pytest.fixture
def app():
    """Ledger logging goes through the app logger, so engine calls need an app context."""
    app = make_app("memory")
    with app.app_context():
        yield app


def _product(store, name="Flour"):
    return store.atomic(lambda: store.insert_product(name=name, category="GENERAL", created_at=NOW))


class TestConcurrency:

    def test_parallel_movements_do_not_lose_updates(self, app, store):
        ledger = LedgerEngine(store)
        product = _product(store)
        errors = []

        def worker():
            try:
                with app.app_context():
                    for _ in range(50):
                        ledger.record_movement(product_id=product.id, quantity_change=1, unit="kg", total_price=2)
            except Exception as exc:  # surfaced through the errors list
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        balance = store.get_balance(product.id)
        assert balance.quantity == 400
        assert balance.total_value == 800
        assert len(store.list_movements(product_id=product.id)) == 400

    def test_parallel_record_and_delete_keep_invariant(self, app, store):
        ledger = LedgerEngine(store)
        product = _product(store)
        seeded = [
            ledger.record_movement(product_id=product.id, quantity_change=3, unit="kg", total_price=6).id
            for _ in range(40)
        ]

        def deleter():
            with app.app_context():
                for movement_id in seeded:
                    ledger.delete_movement(movement_id)

        def recorder():
            with app.app_context():
                for _ in range(40):
                    ledger.record_movement(product_id=product.id, quantity_change=1, unit="kg", total_price=1)

        threads = [threading.Thread(target=deleter), threading.Thread(target=deleter),
                   threading.Thread(target=recorder)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        balance = store.get_balance(product.id)
        assert balance.quantity == 40
        assert balance.total_value == 40
        assert ledger.check_balances() == []


class TestAtomic:

    def test_rollback_restores_all_tables(self, store):
        product = _product(store)

        def failing_unit():
            store.insert_movement(
                product_id=product.id, quantity_change=1, unit="kg", total_price=1, movement_date=NOW,
            )
            store.insert_balance(product_id=product.id, quantity=1, unit="kg", total_value=1, last_updated=NOW)
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            store.atomic(failing_unit)

        assert store.list_movements() == []
        assert store.get_balance(product.id) is None

    def test_rollback_restores_mutated_records(self, store):
        product = _product(store)

        def rename_then_fail():
            store.get_product(product.id, lock=True).name = "Changed"
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            store.atomic(rename_then_fail)

        assert store.get_product(product.id).name == "Flour"

    def test_ids_are_not_reused_after_commit(self, store):
        first = _product(store, "A")
        second = _product(store, "B")
        assert second.id == first.id + 1


class TestUniqueness:

    def test_product_names_are_case_insensitive(self, store):
        _product(store, "Flour")
        with pytest.raises(ConflictError):
            _product(store, "  fLOUR ")

    def test_usernames_are_case_insensitive(self, store):
        store.atomic(lambda: store.insert_user(username="Clerk", password_hash="x", created_at=NOW))
        with pytest.raises(ConflictError):
            store.atomic(lambda: store.insert_user(username="clerk", password_hash="y", created_at=NOW))
        assert store.find_user_by_username("CLERK").username == "Clerk"

    def test_single_balance_per_product(self, store):
        product = _product(store)
        store.atomic(lambda: store.insert_balance(product_id=product.id, unit="kg", last_updated=NOW))
        with pytest.raises(ConflictError):
            store.atomic(lambda: store.insert_balance(product_id=product.id, unit="kg", last_updated=NOW))


def test_build_store_rejects_unknown_kind():
    with pytest.raises(ValueError):
        build_store("redis")
