# Overview: Income statement compiler; read-only aggregation over the ledger store.

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from ..models.accounting import (
    ACCOUNT_TYPE_COGS,
    ACCOUNT_TYPE_CONTRA_REVENUE,
    ACCOUNT_TYPE_EXPENSE,
    ACCOUNT_TYPE_REVENUE,
)
from ..time_utils import normalize_datetime, normalize_period_end, to_utc_z, utcnow
from .ledger_service import (
    ROLE_SALES_TAX_PAYABLE,
    ROLE_TIPS_PAYABLE,
    account_balances,
)
from .tenant_service import require_restaurant
"""
Income statement semantics (authoritative)

- Never stored, never cached: every call re-reads the ledger.
- All balances come from ONE aggregation query, so the statement reflects the
  ledger at a single instant; entries post atomically, so no partial write is
  ever visible.
- Each account's amount is its balance on its own normal side. Signs are never
  special-cased per account: a credit to a debit-normal COGS account lowers
  COGS, a debit to a revenue account lowers revenue.

    Gross Revenue       = sum(REVENUE balances)
    Net Sales Revenue   = Gross Revenue - Sales Tax Payable - Tips Payable
                          - other CONTRA_REVENUE balances
    Gross Profit        = Net Sales Revenue - Total COGS
    Net Income          = Net Sales Revenue - Total COGS - Total Expenses

- Period bounds are inclusive; either may be open. A date-only end covers
  that whole day.
"""


STATEMENT_ACCOUNT_TYPES = (
    ACCOUNT_TYPE_REVENUE,
    ACCOUNT_TYPE_CONTRA_REVENUE,
    ACCOUNT_TYPE_COGS,
    ACCOUNT_TYPE_EXPENSE,
)


class StatementError(Exception):
    """Raised when a statement cannot be compiled (bad period)."""
    pass


class StatementCancelled(StatementError):
    """Raised when the caller abandoned the compile."""
    pass


def _parse_period(start, end) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = normalize_datetime(start)
        end_dt = normalize_period_end(end)
    except ValueError as exc:
        raise StatementError("start and end must be ISO-8601 datetimes") from exc
    if start_dt is not None and end_dt is not None and start_dt > end_dt:
        raise StatementError("start must not be after end")
    return start_dt, end_dt


def _line(row: dict) -> dict:
    account = row["account"]
    return {
        "account_id": account.id,
        "account_code": account.code,
        "account_name": account.name,
        "account_type": account.account_type,
        "normal_balance": account.normal_balance,
        "role": account.role,
        "debits_cents": row["debits_cents"],
        "credits_cents": row["credits_cents"],
        "amount_cents": row["balance_cents"],
    }


def compile_income_statement(
    restaurant_id: int,
    start=None,
    end=None,
    *,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> dict:
    """
    Compile the income statement for a restaurant and period.

    should_cancel: optional callable polled between stages; when it returns
    True the compile stops with StatementCancelled. Nothing is mutated, so an
    abandoned compile leaves no state behind.
    """
    def _checkpoint():
        if should_cancel is not None and should_cancel():
            raise StatementCancelled("Statement compilation cancelled")

    start_dt, end_dt = _parse_period(start, end)
    require_restaurant(restaurant_id)

    _checkpoint()
    rows = account_balances(
        restaurant_id,
        account_types=STATEMENT_ACCOUNT_TYPES,
        start=start_dt,
        end=end_dt,
    )
    _checkpoint()

    by_type: dict[str, list[dict]] = {t: [] for t in STATEMENT_ACCOUNT_TYPES}
    for row in rows:
        by_type[row["account"].account_type].append(row)

    revenue_rows = by_type[ACCOUNT_TYPE_REVENUE]
    gross_revenue = sum(r["balance_cents"] for r in revenue_rows)

    sales_tax = 0
    tips = 0
    other_deductions = 0
    for row in by_type[ACCOUNT_TYPE_CONTRA_REVENUE]:
        role = row["account"].role
        if role == ROLE_SALES_TAX_PAYABLE:
            sales_tax += row["balance_cents"]
        elif role == ROLE_TIPS_PAYABLE:
            tips += row["balance_cents"]
        else:
            other_deductions += row["balance_cents"]

    net_sales = gross_revenue - sales_tax - tips - other_deductions
    _checkpoint()

    cogs_rows = by_type[ACCOUNT_TYPE_COGS]
    total_cogs = sum(r["balance_cents"] for r in cogs_rows)

    expense_rows = by_type[ACCOUNT_TYPE_EXPENSE]
    total_expenses = sum(r["balance_cents"] for r in expense_rows)

    gross_profit = net_sales - total_cogs
    net_income = net_sales - total_cogs - total_expenses

    return {
        "restaurant_id": restaurant_id,
        "period": {
            "start": to_utc_z(start_dt) if start_dt else None,
            "end": to_utc_z(end_dt) if end_dt else None,
        },
        "revenue": {
            "lines": [_line(r) for r in revenue_rows],
            "deductions": [_line(r) for r in by_type[ACCOUNT_TYPE_CONTRA_REVENUE]],
            "gross_revenue_cents": gross_revenue,
            "sales_tax_payable_cents": sales_tax,
            "tips_payable_cents": tips,
            "other_deductions_cents": other_deductions,
            "net_sales_revenue_cents": net_sales,
        },
        "cogs": {
            "lines": [_line(r) for r in cogs_rows],
            "total_cents": total_cogs,
        },
        "gross_profit_cents": gross_profit,
        "expenses": {
            "lines": [_line(r) for r in expense_rows],
            "total_cents": total_expenses,
        },
        "net_income_cents": net_income,
        "generated_at": to_utc_z(utcnow()),
    }
