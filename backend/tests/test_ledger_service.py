"""
Ledger engine tests.

Verifies:
- Balances always equal the fold of their product's movements
- Deleting a movement reverses it (or recomputes) and is idempotent
- A failed unit of work leaves no partial state
- Report reads are windowed, ordered and side-effect free
"""

import math
import random
from datetime import datetime, timezone

import pytest

from stockledger import time_utils
from stockledger.errors import NotFoundError, PersistenceError, ValidationError
from stockledger.services import auth_service, products_service
from stockledger.services.ledger_service import LedgerEngine
from stockledger.time_utils import parse_report_window

from conftest import USER_PASSWORD


PAST_START = datetime(2000, 1, 1)
PAST_END = datetime(2000, 1, 2, 23, 59, 59, 999000)
ALL_TIME = (datetime(1970, 1, 1), datetime(2100, 1, 1))


def _product(store, name="Flour", category="BAKERY"):
    return products_service.create_product(store, patch={"name": name, "category": category})


def _assert_invariant(store, product_id):
    movements = store.list_movements(product_id=product_id)
    balance = store.get_balance(product_id)
    expected_quantity = math.fsum(m.quantity_change for m in movements)
    expected_value = math.fsum(m.total_price for m in movements)
    if balance is None:
        assert not movements
        return
    assert math.isclose(balance.quantity, expected_quantity, abs_tol=1e-9)
    assert math.isclose(balance.total_value, expected_value, abs_tol=1e-9)


# =============================================================================
# RECORD / DELETE
# =============================================================================


class TestRecordAndDelete:

    def test_first_movement_creates_balance(self, store, ledger):
        product = _product(store)
        assert store.get_balance(product["id"]) is None

        movement = ledger.record_movement(
            product_id=product["id"], quantity_change=10, unit="kg", total_price=100,
        )

        balance = store.get_balance(product["id"])
        assert balance.quantity == 10
        assert balance.total_value == 100
        assert balance.unit == "kg"
        assert movement.movement_type == "update"
        assert movement.movement_date is not None

    def test_add_then_delete_restores_previous_balance(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=10, unit="kg", total_price=100)
        second = ledger.record_movement(product_id=product["id"], quantity_change=5, unit="kg", total_price=40)

        balance = store.get_balance(product["id"])
        assert (balance.quantity, balance.total_value) == (15, 140)

        assert ledger.delete_movement(second.id) is True

        balance = store.get_balance(product["id"])
        assert (balance.quantity, balance.total_value) == (10, 100)
        assert len(store.list_movements(product_id=product["id"])) == 1

    def test_unit_is_last_writer_wins_and_not_restored(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=10, unit="kg", total_price=100)
        second = ledger.record_movement(product_id=product["id"], quantity_change=500, unit="g", total_price=5)
        assert store.get_balance(product["id"]).unit == "g"

        ledger.delete_movement(second.id)
        assert store.get_balance(product["id"]).unit == "g"

    def test_double_delete_is_noop(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=3, unit="pcs", total_price=9)
        movement = ledger.record_movement(product_id=product["id"], quantity_change=2, unit="pcs", total_price=6)

        assert ledger.delete_movement(movement.id) is True
        assert ledger.delete_movement(movement.id) is False

        balance = store.get_balance(product["id"])
        assert (balance.quantity, balance.total_value) == (3, 9)

    def test_delete_unknown_movement_returns_false(self, ledger):
        assert ledger.delete_movement(424242) is False

    def test_unknown_product_is_rejected(self, store, ledger):
        with pytest.raises(NotFoundError):
            ledger.record_movement(product_id=9999, quantity_change=1, unit="kg", total_price=1)
        assert store.list_movements() == []

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), "12", True])
    def test_non_finite_numbers_are_rejected(self, store, ledger, bad):
        product = _product(store)
        with pytest.raises(ValidationError):
            ledger.record_movement(product_id=product["id"], quantity_change=bad, unit="kg", total_price=1)
        assert store.get_balance(product["id"]) is None

    def test_engine_accepts_negative_deltas(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=10, unit="kg", total_price=100)
        ledger.record_movement(product_id=product["id"], quantity_change=-4, unit="kg", total_price=-40)

        balance = store.get_balance(product["id"])
        assert (balance.quantity, balance.total_value) == (6, 60)

    def test_records_acting_account(self, store, ledger):
        product = _product(store)
        admin = store.find_user_by_username("admin")
        movement = ledger.record_movement(
            product_id=product["id"], quantity_change=1, unit="kg", total_price=1, user_id=admin.id,
        )
        assert movement.user_id == admin.id
        assert store.get_balance(product["id"]).updated_by == admin.id


# =============================================================================
# INVARIANT
# =============================================================================


class TestBalanceInvariant:

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_random_sequences_keep_balance_equal_to_movement_sum(self, store, ledger, seed):
        rng = random.Random(seed)
        products = [_product(store, name=f"Item {i}")["id"] for i in range(3)]
        live = []

        for _ in range(60):
            if live and rng.random() < 0.3:
                movement_id = live.pop(rng.randrange(len(live)))
                assert ledger.delete_movement(movement_id) is True
            else:
                movement = ledger.record_movement(
                    product_id=rng.choice(products),
                    quantity_change=round(rng.uniform(-20, 50), 2),
                    unit=rng.choice(["kg", "g", "pcs"]),
                    total_price=round(rng.uniform(-100, 500), 2),
                )
                live.append(movement.id)

            for product_id in products:
                _assert_invariant(store, product_id)

        assert ledger.check_balances() == []

    def test_reverse_and_recompute_strategies_agree(self, store):
        reverse = LedgerEngine(store, delete_strategy="reverse")
        recompute = LedgerEngine(store, delete_strategy="recompute")
        a = _product(store, name="A")["id"]
        b = _product(store, name="B")["id"]

        ids_a = [reverse.record_movement(product_id=a, quantity_change=q, unit="kg", total_price=q * 3)
                 for q in (1.5, 2.25, 4.0)]
        ids_b = [reverse.record_movement(product_id=b, quantity_change=q, unit="kg", total_price=q * 3)
                 for q in (1.5, 2.25, 4.0)]

        reverse.delete_movement(ids_a[1].id)
        recompute.delete_movement(ids_b[1].id)

        balance_a = store.get_balance(a)
        balance_b = store.get_balance(b)
        assert math.isclose(balance_a.quantity, balance_b.quantity)
        assert math.isclose(balance_a.total_value, balance_b.total_value)

    def test_unknown_delete_strategy_is_rejected(self, store):
        with pytest.raises(ValueError):
            LedgerEngine(store, delete_strategy="ignore")


# =============================================================================
# ATOMICITY
# =============================================================================


class TestAtomicity:

    def test_failed_balance_write_discards_movement(self, store, ledger, monkeypatch):
        product = _product(store)

        def boom(**fields):
            raise PersistenceError("disk full")

        monkeypatch.setattr(store, "insert_balance", boom)

        with pytest.raises(PersistenceError):
            ledger.record_movement(product_id=product["id"], quantity_change=5, unit="kg", total_price=50)

        monkeypatch.undo()
        assert store.list_movements(product_id=product["id"]) == []
        assert store.get_balance(product["id"]) is None

    def test_failed_delete_keeps_movement_and_balance(self, store, ledger, monkeypatch):
        product = _product(store)
        movement = ledger.record_movement(product_id=product["id"], quantity_change=5, unit="kg", total_price=50)

        def boom(record):
            raise PersistenceError("disk full")

        monkeypatch.setattr(store, "delete_movement", boom)

        with pytest.raises(PersistenceError):
            ledger.delete_movement(movement.id)

        monkeypatch.undo()
        balance = store.get_balance(product["id"])
        assert (balance.quantity, balance.total_value) == (5, 50)
        assert store.get_movement(movement.id) is not None


# =============================================================================
# REPORTS
# =============================================================================


class TestReports:

    def test_inventory_report_counts_movements_in_window_only(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=10, unit="kg", total_price=100)

        rows = ledger.get_inventory_report(PAST_START, PAST_END)
        assert len(rows) == 1
        assert rows[0]["movement_count"] == 0
        # balance figures are current, not windowed
        assert rows[0]["current_quantity"] == 10
        assert rows[0]["total_value"] == 100

        rows = ledger.get_inventory_report(*ALL_TIME)
        assert rows[0]["movement_count"] == 1

    def test_movement_in_last_millisecond_belongs_to_its_day(self, store, ledger, monkeypatch):
        class LateClock(datetime):
            @classmethod
            def now(cls, tz=None):
                return datetime(2024, 3, 1, 23, 59, 59, 999500, tzinfo=timezone.utc)

        product = _product(store)
        monkeypatch.setattr(time_utils, "datetime", LateClock)
        movement = ledger.record_movement(product_id=product["id"], quantity_change=1, unit="kg", total_price=1)
        monkeypatch.undo()

        assert movement.movement_date == datetime(2024, 3, 1, 23, 59, 59, 999000)
        first_day = ledger.get_inventory_report(*parse_report_window("2024-03-01", "2024-03-01"))
        next_day = ledger.get_inventory_report(*parse_report_window("2024-03-02", "2024-03-02"))
        assert first_day[0]["movement_count"] == 1
        assert next_day[0]["movement_count"] == 0

    def test_inventory_report_includes_products_without_balance(self, store, ledger):
        _product(store, name="Salt")
        rows = ledger.get_inventory_report(*ALL_TIME)
        assert rows == [{
            "id": rows[0]["id"],
            "name": "Salt",
            "category": "BAKERY",
            "current_quantity": 0.0,
            "unit": "",
            "total_value": 0.0,
            "movement_count": 0,
        }]

    def test_detailed_report_is_newest_first(self, store, ledger):
        product = _product(store)
        ids = [
            ledger.record_movement(product_id=product["id"], quantity_change=q, unit="kg", total_price=q).id
            for q in (1, 2, 3)
        ]

        rows = ledger.get_detailed_movements_report(*ALL_TIME)
        assert [r["id"] for r in rows] == list(reversed(ids))
        assert all(r["product_name"] == "Flour" for r in rows)
        assert all(r["product_category"] == "BAKERY" for r in rows)

    def test_detailed_report_outside_window_is_empty(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=1, unit="kg", total_price=1)
        assert ledger.get_detailed_movements_report(PAST_START, PAST_END) == []

    def test_rename_relabels_history(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=1, unit="kg", total_price=1)

        products_service.update_product(store, product_id=product["id"], patch={"name": "Rye Flour"})

        rows = ledger.get_detailed_movements_report(*ALL_TIME)
        assert rows[0]["product_name"] == "Rye Flour"

    def test_reads_are_idempotent(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=2, unit="kg", total_price=8)

        first = ledger.get_inventory_report(*ALL_TIME)
        assert ledger.get_inventory_report(*ALL_TIME) == first

        detailed = ledger.get_detailed_movements_report(*ALL_TIME)
        assert ledger.get_detailed_movements_report(*ALL_TIME) == detailed

    def test_latest_movements_limit(self, store, ledger):
        product = _product(store)
        ids = [
            ledger.record_movement(product_id=product["id"], quantity_change=q, unit="kg", total_price=q).id
            for q in range(1, 6)
        ]
        rows = ledger.latest_movements(2)
        assert [r["id"] for r in rows] == [ids[-1], ids[-2]]

    def test_list_inventory_joins_product(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=2, unit="kg", total_price=8)
        rows = ledger.list_inventory()
        assert rows[0]["product_name"] == "Flour"
        assert rows[0]["quantity"] == 2


# =============================================================================
# RECONCILIATION & CASCADES
# =============================================================================


class TestReconciliationAndCascades:

    def test_check_and_rebuild_drifted_balance(self, store, ledger):
        product = _product(store)
        ledger.record_movement(product_id=product["id"], quantity_change=4, unit="kg", total_price=20)

        def corrupt():
            store.get_balance(product["id"], lock=True).quantity = 999.0

        store.atomic(corrupt)

        drift = ledger.check_balances()
        assert len(drift) == 1
        assert drift[0]["product_id"] == product["id"]
        assert drift[0]["expected_quantity"] == 4

        ledger.rebuild_balance(product["id"])
        assert ledger.check_balances() == []
        assert store.get_balance(product["id"]).quantity == 4

    def test_rebuild_unknown_product(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.rebuild_balance(31337)

    def test_product_delete_cascades(self, store, ledger):
        product = _product(store)
        other = _product(store, name="Sugar")
        ledger.record_movement(product_id=product["id"], quantity_change=4, unit="kg", total_price=20)
        ledger.record_movement(product_id=other["id"], quantity_change=1, unit="kg", total_price=2)

        assert products_service.delete_product(store, product_id=product["id"]) is True

        assert store.get_product(product["id"]) is None
        assert store.get_balance(product["id"]) is None
        assert store.list_movements(product_id=product["id"]) == []
        assert store.get_balance(other["id"]).quantity == 1

    def test_account_delete_keeps_ledger(self, store, ledger):
        product = _product(store)
        admin = store.find_user_by_username("admin")
        clerk = auth_service.create_user(
            store, username="clerk", password=USER_PASSWORD, can_manage_inventory=True,
        )
        clerk_id = clerk.id
        movement = ledger.record_movement(
            product_id=product["id"], quantity_change=1, unit="kg", total_price=1, user_id=clerk_id,
        )

        auth_service.delete_user(store, user_id=clerk_id, acting_user_id=admin.id)

        assert store.get_user(clerk_id) is None
        assert store.get_movement(movement.id).user_id is None
        assert store.get_balance(product["id"]).updated_by is None
        _assert_invariant(store, product["id"])
