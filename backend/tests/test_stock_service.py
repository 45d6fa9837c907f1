# Overview: Pytest coverage for the stock ledger.

from datetime import datetime

import pytest

from restaurant_ledger.models import ImmutableRecordError, JournalEntry, StockLedgerEntry
from restaurant_ledger.models.accounting import SIDE_CREDIT, SIDE_DEBIT
from restaurant_ledger.services import ledger_service, stock_service
from restaurant_ledger.services.ledger_service import ROLE_CASH, ROLE_INVENTORY
from restaurant_ledger.services.stock_service import StockError


class TestReceiveStock:

    def test_receive_posts_entry_and_movement(self, db_session, restaurant_a, accounts_a, product_a):
        movement = stock_service.receive_stock(restaurant_a.id, product_a.id, 8)

        assert movement.quantity_delta == 8
        assert stock_service.current_quantity(restaurant_a.id, product_a.id) == 8

        entry = db_session.get(JournalEntry, movement.journal_entry_id)
        assert entry.affects_inventory is True
        by_account = {(line.account_id, line.side): line.amount_cents for line in entry.lines}
        assert by_account == {
            (accounts_a[ROLE_INVENTORY].id, SIDE_DEBIT): 2000,
            (accounts_a[ROLE_CASH].id, SIDE_CREDIT): 2000,
        }

    def test_receive_with_explicit_unit_cost(self, db_session, restaurant_a, accounts_a, product_a):
        movement = stock_service.receive_stock(restaurant_a.id, product_a.id, 2, unit_cost_cents=300)

        entry = db_session.get(JournalEntry, movement.journal_entry_id)
        assert entry.total_debits_cents() == 600

    @pytest.mark.parametrize("quantity", [0, -3, 2.5])
    def test_receive_rejects_non_positive_quantity(self, restaurant_a, accounts_a, product_a, quantity):
        with pytest.raises(StockError):
            stock_service.receive_stock(restaurant_a.id, product_a.id, quantity)

    def test_receive_other_restaurant_product_rejected(self, restaurant_a, accounts_a, product_b):
        with pytest.raises(StockError):
            stock_service.receive_stock(restaurant_a.id, product_b.id, 1)


class TestRecordMovement:

    def _non_inventory_entry(self, restaurant_id):
        return ledger_service.post_manual_entry(
            restaurant_id,
            [
                {"role": ROLE_INVENTORY, "side": SIDE_DEBIT, "amount_cents": 100},
                {"role": ROLE_CASH, "side": SIDE_CREDIT, "amount_cents": 100},
            ],
        )

    def test_movement_requires_inventory_entry(self, restaurant_a, accounts_a, product_a):
        entry = self._non_inventory_entry(restaurant_a.id)

        with pytest.raises(StockError):
            stock_service.record_movement(restaurant_a.id, product_a.id, 1, entry.id)

    def test_movement_requires_existing_entry(self, restaurant_a, accounts_a, product_a):
        with pytest.raises(StockError):
            stock_service.record_movement(restaurant_a.id, product_a.id, 1, 999999)

    def test_zero_delta_rejected(self, restaurant_a, accounts_a, product_a):
        movement = stock_service.receive_stock(restaurant_a.id, product_a.id, 1)

        with pytest.raises(StockError):
            stock_service.record_movement(restaurant_a.id, product_a.id, 0, movement.journal_entry_id)


class TestQuantity:

    def test_quantity_is_sum_of_movements(self, restaurant_a, accounts_a, product_a):
        stock_service.receive_stock(restaurant_a.id, product_a.id, 5, occurred_at=datetime(2026, 4, 1, 8, 0))
        stock_service.receive_stock(restaurant_a.id, product_a.id, 7, occurred_at=datetime(2026, 4, 3, 8, 0))

        movements = stock_service.list_movements(restaurant_a.id, product_a.id)
        assert stock_service.current_quantity(restaurant_a.id, product_a.id) == sum(
            m.quantity_delta for m in movements
        ) == 12
        assert stock_service.current_quantity(
            restaurant_a.id, product_a.id, as_of=datetime(2026, 4, 2)
        ) == 5

    def test_unknown_product_has_zero_quantity(self, restaurant_a):
        assert stock_service.current_quantity(restaurant_a.id, 424242) == 0

    def test_quantity_scoped_to_restaurant(self, restaurant_a, restaurant_b, accounts_a, accounts_b, product_b):
        stock_service.receive_stock(restaurant_b.id, product_b.id, 3)

        assert stock_service.current_quantity(restaurant_a.id, product_b.id) == 0
        assert stock_service.current_quantity(restaurant_b.id, product_b.id) == 3

    def test_movements_are_immutable(self, db_session, restaurant_a, accounts_a, product_a):
        movement = stock_service.receive_stock(restaurant_a.id, product_a.id, 2)

        row = db_session.get(StockLedgerEntry, movement.id)
        row.quantity_delta = 50
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

        db_session.delete(db_session.get(StockLedgerEntry, movement.id))
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()
