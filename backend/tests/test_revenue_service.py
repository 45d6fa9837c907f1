# Overview: Pytest coverage for POS revenue recognition and idempotent ingestion.

import logging
from datetime import datetime

import pytest

from restaurant_ledger.models import JournalEntry, PosTransaction
from restaurant_ledger.models.accounting import SIDE_CREDIT, SIDE_DEBIT, SOURCE_POS_SALE
from restaurant_ledger.services import revenue_service
from restaurant_ledger.services.ledger_service import (
    ROLE_CASH,
    ROLE_GROSS_REVENUE,
    ROLE_SALES_TAX_PAYABLE,
    ROLE_TIPS_PAYABLE,
)
from restaurant_ledger.services.revenue_service import INGEST_DUPLICATE, INGEST_POSTED, RevenueError
from restaurant_ledger.services.stock_service import current_quantity, receive_stock


SALE_TIME = datetime(2026, 5, 4, 19, 30)


def _ingest(restaurant_id, external_id="POS-1001", **kwargs):
    params = {"gross_cents": 150000, "tax_cents": 6000, "tip_cents": 4000, "occurred_at": SALE_TIME}
    params.update(kwargs)
    return revenue_service.ingest_pos_transaction(restaurant_id, external_id=external_id, **params)


class TestRevenueRecognition:

    def test_sale_posts_one_balanced_entry(self, db_session, restaurant_a, accounts_a):
        result = _ingest(restaurant_a.id)

        assert result.outcome == INGEST_POSTED
        assert not result.duplicate

        entry = db_session.get(JournalEntry, result.transaction.journal_entry_id)
        assert entry.source == SOURCE_POS_SALE
        assert entry.affects_inventory is False
        assert entry.occurred_at == SALE_TIME

        by_account = {(line.account_id, line.side): line.amount_cents for line in entry.lines}
        assert by_account == {
            (accounts_a[ROLE_CASH].id, SIDE_DEBIT): 160000,
            (accounts_a[ROLE_GROSS_REVENUE].id, SIDE_CREDIT): 150000,
            (accounts_a[ROLE_SALES_TAX_PAYABLE].id, SIDE_CREDIT): 6000,
            (accounts_a[ROLE_TIPS_PAYABLE].id, SIDE_CREDIT): 4000,
        }
        assert entry.total_debits_cents() == entry.total_credits_cents()

    def test_zero_tax_and_tip_lines_omitted(self, db_session, restaurant_a, accounts_a):
        result = _ingest(restaurant_a.id, tax_cents=0, tip_cents=0)

        entry = db_session.get(JournalEntry, result.transaction.journal_entry_id)
        assert len(entry.lines) == 2

    @pytest.mark.parametrize("field,value", [
        ("gross_cents", -1),
        ("tax_cents", 1.25),
        ("tip_cents", "100"),
        ("gross_cents", None),
    ])
    def test_invalid_amounts_rejected(self, db_session, restaurant_a, accounts_a, field, value):
        with pytest.raises(RevenueError):
            _ingest(restaurant_a.id, **{field: value})
        assert db_session.query(JournalEntry).count() == 0

    def test_zero_total_rejected(self, restaurant_a, accounts_a):
        with pytest.raises(RevenueError):
            _ingest(restaurant_a.id, gross_cents=0, tax_cents=0, tip_cents=0)

    def test_external_id_required(self, restaurant_a, accounts_a):
        with pytest.raises(RevenueError):
            _ingest(restaurant_a.id, external_id="  ")


class TestIdempotentIngestion:

    def test_duplicate_delivery_posts_nothing(self, db_session, app, restaurant_a, accounts_a, caplog):
        first = _ingest(restaurant_a.id)

        with caplog.at_level(logging.INFO, logger=app.logger.name):
            second = _ingest(restaurant_a.id, gross_cents=999)

        assert second.outcome == INGEST_DUPLICATE
        assert second.duplicate
        assert second.transaction.id == first.transaction.id
        assert second.transaction.gross_cents == 150000
        assert db_session.query(JournalEntry).count() == 1
        assert db_session.query(PosTransaction).count() == 1
        assert "Duplicate POS ingestion" in caplog.text

    def test_same_external_id_in_other_restaurant_is_new(self, restaurant_a, restaurant_b, accounts_a, accounts_b):
        a = _ingest(restaurant_a.id)
        b = _ingest(restaurant_b.id)

        assert a.outcome == INGEST_POSTED
        assert b.outcome == INGEST_POSTED
        assert a.transaction.journal_entry_id != b.transaction.journal_entry_id


class TestSaleItems:

    def test_items_move_stock_against_sale_entry(self, db_session, restaurant_a, accounts_a, product_a):
        receive_stock(restaurant_a.id, product_a.id, 10)

        result = _ingest(restaurant_a.id, items=[{"product_id": product_a.id, "quantity": 3}])

        entry = db_session.get(JournalEntry, result.transaction.journal_entry_id)
        assert entry.affects_inventory is True
        assert current_quantity(restaurant_a.id, product_a.id) == 7
        assert [(i.product_id, i.quantity) for i in result.transaction.items] == [(product_a.id, 3)]

    def test_stock_may_go_negative(self, restaurant_a, accounts_a, product_a):
        _ingest(restaurant_a.id, items=[{"product_id": product_a.id, "quantity": 2}])

        assert current_quantity(restaurant_a.id, product_a.id) == -2

    def test_unknown_item_product_rejects_whole_sale(self, db_session, restaurant_a, accounts_a, product_b):
        with pytest.raises(RevenueError):
            _ingest(restaurant_a.id, items=[{"product_id": product_b.id, "quantity": 1}])

        db_session.rollback()
        assert db_session.query(JournalEntry).count() == 0

    def test_list_transactions_by_period(self, restaurant_a, accounts_a):
        _ingest(restaurant_a.id, external_id="POS-1", occurred_at=datetime(2026, 5, 1, 12, 0))
        _ingest(restaurant_a.id, external_id="POS-2", occurred_at=datetime(2026, 5, 3, 12, 0))

        txns = revenue_service.list_transactions(
            restaurant_a.id, start=datetime(2026, 5, 2), end=datetime(2026, 5, 31)
        )
        assert [t.external_id for t in txns] == ["POS-2"]
