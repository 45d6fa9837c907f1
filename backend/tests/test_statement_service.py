# Overview: Pytest coverage for the income statement compiler.

from datetime import datetime

import pytest

from restaurant_ledger.models.accounting import SIDE_CREDIT, SIDE_DEBIT
from restaurant_ledger.services import ledger_service, revenue_service, statement_service
from restaurant_ledger.services.ledger_service import (
    ROLE_CASH,
    ROLE_COGS,
    ROLE_DISCOUNTS,
    ROLE_GROSS_REVENUE,
    ROLE_OPERATING_EXPENSES,
)
from restaurant_ledger.services.statement_service import StatementCancelled, StatementError
from restaurant_ledger.services.tenant_service import TenantAccessError


def _sale(restaurant_id, external_id, gross, tax, tip, occurred_at=None):
    return revenue_service.ingest_pos_transaction(
        restaurant_id,
        external_id=external_id,
        gross_cents=gross,
        tax_cents=tax,
        tip_cents=tip,
        occurred_at=occurred_at or datetime(2026, 6, 10, 20, 0),
    )


def _manual(restaurant_id, debit_role, credit_role, amount, occurred_at=None):
    return ledger_service.post_manual_entry(
        restaurant_id,
        [
            {"role": debit_role, "side": SIDE_DEBIT, "amount_cents": amount},
            {"role": credit_role, "side": SIDE_CREDIT, "amount_cents": amount},
        ],
        occurred_at=occurred_at or datetime(2026, 6, 11, 9, 0),
    )


class TestRevenueSection:

    def test_net_sales_excludes_tax_and_tips(self, restaurant_a, accounts_a):
        """$1,500.00 gross with $100.00 tax+tips nets to $1,400.00."""
        _sale(restaurant_a.id, "POS-A1", gross=150000, tax=6000, tip=4000)

        statement = statement_service.compile_income_statement(restaurant_a.id)
        revenue = statement["revenue"]

        assert revenue["gross_revenue_cents"] == 150000
        assert revenue["sales_tax_payable_cents"] == 6000
        assert revenue["tips_payable_cents"] == 4000
        assert revenue["net_sales_revenue_cents"] == 140000

    def test_net_sales_formula_over_many_sales(self, restaurant_a, accounts_a):
        sales = [(12000, 960, 1500), (8550, 684, 0), (43000, 3440, 6000)]
        for idx, (gross, tax, tip) in enumerate(sales):
            _sale(restaurant_a.id, f"POS-{idx}", gross, tax, tip)

        revenue = statement_service.compile_income_statement(restaurant_a.id)["revenue"]

        assert revenue["gross_revenue_cents"] == sum(s[0] for s in sales)
        assert revenue["net_sales_revenue_cents"] == (
            revenue["gross_revenue_cents"] - revenue["sales_tax_payable_cents"] - revenue["tips_payable_cents"]
        )

    def test_discounts_reduce_net_sales(self, restaurant_a, accounts_a):
        _sale(restaurant_a.id, "POS-D1", gross=10000, tax=0, tip=0)
        _manual(restaurant_a.id, ROLE_DISCOUNTS, ROLE_CASH, 1000)

        revenue = statement_service.compile_income_statement(restaurant_a.id)["revenue"]

        assert revenue["other_deductions_cents"] == 1000
        assert revenue["net_sales_revenue_cents"] == 9000

    def test_revenue_debit_lowers_revenue(self, restaurant_a, accounts_a):
        _sale(restaurant_a.id, "POS-R1", gross=5000, tax=0, tip=0)
        _manual(restaurant_a.id, ROLE_GROSS_REVENUE, ROLE_CASH, 500)

        revenue = statement_service.compile_income_statement(restaurant_a.id)["revenue"]
        assert revenue["gross_revenue_cents"] == 4500


class TestNetIncome:

    def test_net_income_after_cogs_and_expenses(self, restaurant_a, accounts_a):
        """Net sales $1,400.00 - COGS $500.00 - expenses $400.00 = $500.00."""
        _sale(restaurant_a.id, "POS-B1", gross=150000, tax=6000, tip=4000)
        _manual(restaurant_a.id, ROLE_COGS, ROLE_CASH, 30000)
        _manual(restaurant_a.id, ROLE_COGS, ROLE_CASH, 20000)
        _manual(restaurant_a.id, ROLE_OPERATING_EXPENSES, ROLE_CASH, 40000)

        statement = statement_service.compile_income_statement(restaurant_a.id)

        assert statement["revenue"]["net_sales_revenue_cents"] == 140000
        assert statement["cogs"]["total_cents"] == 50000
        assert statement["expenses"]["total_cents"] == 40000
        assert statement["gross_profit_cents"] == 90000
        assert statement["net_income_cents"] == 50000

    def test_cogs_credit_lowers_cogs(self, restaurant_a, accounts_a):
        _manual(restaurant_a.id, ROLE_COGS, ROLE_CASH, 800)
        _manual(restaurant_a.id, ROLE_CASH, ROLE_COGS, 300)

        statement = statement_service.compile_income_statement(restaurant_a.id)
        assert statement["cogs"]["total_cents"] == 500

    def test_user_defined_expense_account_included(self, restaurant_a, accounts_a):
        rent = ledger_service.create_account(restaurant_a.id, code="6100", name="Rent", account_type="EXPENSE")
        ledger_service.post_manual_entry(
            restaurant_a.id,
            [
                {"account_id": rent.id, "side": SIDE_DEBIT, "amount_cents": 250000},
                {"role": ROLE_CASH, "side": SIDE_CREDIT, "amount_cents": 250000},
            ],
        )

        statement = statement_service.compile_income_statement(restaurant_a.id)

        assert statement["expenses"]["total_cents"] == 250000
        assert "6100" in [line["account_code"] for line in statement["expenses"]["lines"]]
        assert statement["net_income_cents"] == -250000

    def test_empty_ledger_is_all_zero(self, restaurant_a, accounts_a):
        statement = statement_service.compile_income_statement(restaurant_a.id)

        assert statement["revenue"]["net_sales_revenue_cents"] == 0
        assert statement["net_income_cents"] == 0
        assert all(line["amount_cents"] == 0 for line in statement["revenue"]["lines"])


class TestPeriodAndScope:

    def test_period_bounds_are_inclusive(self, restaurant_a, accounts_a):
        _sale(restaurant_a.id, "POS-MAY", 1000, 0, 0, occurred_at=datetime(2026, 5, 31, 23, 0))
        _sale(restaurant_a.id, "POS-JUN", 2000, 0, 0, occurred_at=datetime(2026, 6, 1, 0, 0))
        _sale(restaurant_a.id, "POS-JUL", 4000, 0, 0, occurred_at=datetime(2026, 7, 1, 0, 0))

        june = statement_service.compile_income_statement(
            restaurant_a.id, "2026-06-01T00:00:00Z", "2026-06-30T23:59:59Z"
        )

        assert june["revenue"]["gross_revenue_cents"] == 2000
        assert june["period"] == {"start": "2026-06-01T00:00:00Z", "end": "2026-06-30T23:59:59Z"}

    def test_date_only_end_includes_whole_last_day(self, restaurant_a, accounts_a):
        _sale(restaurant_a.id, "POS-LAST-DAY", 150000, 0, 0, occurred_at=datetime(2026, 3, 31, 12, 0))
        _sale(restaurant_a.id, "POS-APRIL", 9000, 0, 0, occurred_at=datetime(2026, 4, 1, 0, 0))

        march = statement_service.compile_income_statement(restaurant_a.id, "2026-03-01", "2026-03-31")

        assert march["revenue"]["gross_revenue_cents"] == 150000
        assert march["period"] == {"start": "2026-03-01T00:00:00Z", "end": "2026-03-31T23:59:59Z"}

    def test_same_day_period(self, restaurant_a, accounts_a):
        _sale(restaurant_a.id, "POS-EVENING", 4200, 0, 0, occurred_at=datetime(2026, 3, 31, 22, 45))

        day = statement_service.compile_income_statement(restaurant_a.id, "2026-03-31", "2026-03-31")

        assert day["revenue"]["gross_revenue_cents"] == 4200

    def test_start_after_end_rejected(self, restaurant_a, accounts_a):
        with pytest.raises(StatementError):
            statement_service.compile_income_statement(restaurant_a.id, "2026-07-01", "2026-06-01")

    def test_malformed_period_rejected(self, restaurant_a, accounts_a):
        with pytest.raises(StatementError):
            statement_service.compile_income_statement(restaurant_a.id, "last tuesday", None)

    def test_other_restaurant_excluded(self, restaurant_a, restaurant_b, accounts_a, accounts_b):
        _sale(restaurant_b.id, "POS-B", 9900, 0, 0)

        statement = statement_service.compile_income_statement(restaurant_a.id)
        assert statement["revenue"]["gross_revenue_cents"] == 0

    def test_unknown_restaurant_rejected(self, db_session):
        with pytest.raises(TenantAccessError):
            statement_service.compile_income_statement(987654)

    def test_statement_is_recomputed_on_every_call(self, restaurant_a, accounts_a):
        _sale(restaurant_a.id, "POS-1", 1000, 0, 0)
        first = statement_service.compile_income_statement(restaurant_a.id)
        _sale(restaurant_a.id, "POS-2", 500, 0, 0)
        second = statement_service.compile_income_statement(restaurant_a.id)

        assert first["revenue"]["gross_revenue_cents"] == 1000
        assert second["revenue"]["gross_revenue_cents"] == 1500


class TestCancellation:

    def test_cancelled_compile_raises(self, restaurant_a, accounts_a):
        with pytest.raises(StatementCancelled):
            statement_service.compile_income_statement(restaurant_a.id, should_cancel=lambda: True)

    def test_cancel_after_first_stage(self, restaurant_a, accounts_a):
        calls = []

        def should_cancel():
            calls.append(1)
            return len(calls) > 1

        with pytest.raises(StatementCancelled):
            statement_service.compile_income_statement(restaurant_a.id, should_cancel=should_cancel)
        assert len(calls) == 2

    def test_not_cancelled_completes(self, restaurant_a, accounts_a):
        statement = statement_service.compile_income_statement(restaurant_a.id, should_cancel=lambda: False)
        assert statement["net_income_cents"] == 0
