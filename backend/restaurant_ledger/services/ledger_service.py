# Overview: Ledger store; append-only accounts and balanced journal entries.

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import case, func

from ..extensions import db
from ..models import Account, JournalEntry, JournalLine
from ..models.accounting import (
    ACCOUNT_TYPES,
    ACCOUNT_TYPE_ASSET,
    ACCOUNT_TYPE_COGS,
    ACCOUNT_TYPE_CONTRA_REVENUE,
    ACCOUNT_TYPE_EXPENSE,
    ACCOUNT_TYPE_REVENUE,
    DEFAULT_NORMAL_BALANCE,
    ENTRY_SOURCES,
    SIDES,
    SIDE_CREDIT,
    SIDE_DEBIT,
    SOURCE_MANUAL,
)
from ..time_utils import normalize_datetime, utcnow
from .concurrency import run_with_retry, tenant_write_lock
from .tenant_service import TenantAccessError, require_owned, require_restaurant
"""
Ledger Store Invariants (authoritative)

- Every journal entry is balanced: sum(DEBIT amounts) == sum(CREDIT amounts).
  Unbalanced entries raise BalanceError and are never persisted.
- Append-only: no update or delete path exists for accounts, entries or lines.
  Corrections are reversing entries.
- Posts for one restaurant are serialized (tenant_write_lock); validation,
  insert and commit happen inside the lock.
- Reads reflect every committed post. Ordering within an account is by entry
  occurred_at, ties broken by insertion sequence (entry id), then line position.
- Period filters are inclusive on both ends: start <= occurred_at <= end.
"""


# System account roles
ROLE_CASH = "CASH"
ROLE_INVENTORY = "INVENTORY"
ROLE_SALES_TAX_PAYABLE = "SALES_TAX_PAYABLE"
ROLE_TIPS_PAYABLE = "TIPS_PAYABLE"
ROLE_GROSS_REVENUE = "GROSS_REVENUE"
ROLE_DISCOUNTS = "DISCOUNTS"
ROLE_COGS = "COGS"
ROLE_INVENTORY_ADJUSTMENT = "INVENTORY_ADJUSTMENT"
ROLE_OPERATING_EXPENSES = "OPERATING_EXPENSES"

# (code, name, account_type, normal_balance, role)
DEFAULT_CHART = (
    ("1000", "Cash", ACCOUNT_TYPE_ASSET, SIDE_DEBIT, ROLE_CASH),
    ("1200", "Inventory Asset", ACCOUNT_TYPE_ASSET, SIDE_DEBIT, ROLE_INVENTORY),
    # Pass-through collections are presented as deductions from gross revenue
    ("2100", "Sales Tax Payable", ACCOUNT_TYPE_CONTRA_REVENUE, SIDE_CREDIT, ROLE_SALES_TAX_PAYABLE),
    ("2150", "Tips Payable", ACCOUNT_TYPE_CONTRA_REVENUE, SIDE_CREDIT, ROLE_TIPS_PAYABLE),
    ("4000", "Gross Revenue", ACCOUNT_TYPE_REVENUE, SIDE_CREDIT, ROLE_GROSS_REVENUE),
    ("4090", "Discounts", ACCOUNT_TYPE_CONTRA_REVENUE, SIDE_DEBIT, ROLE_DISCOUNTS),
    ("5000", "Cost of Goods Sold", ACCOUNT_TYPE_COGS, SIDE_DEBIT, ROLE_COGS),
    ("5100", "Inventory Adjustment Gain/Loss", ACCOUNT_TYPE_COGS, SIDE_DEBIT, ROLE_INVENTORY_ADJUSTMENT),
    ("6000", "Operating Expenses", ACCOUNT_TYPE_EXPENSE, SIDE_DEBIT, ROLE_OPERATING_EXPENSES),
)


class LedgerError(Exception):
    """Raised when a ledger operation is malformed (unknown account, bad line)."""
    pass


class BalanceError(LedgerError):
    """Raised when an entry's debits and credits differ. Nothing is persisted."""

    def __init__(self, debits_cents: int, credits_cents: int):
        super().__init__(
            f"Journal entry is unbalanced: debits {debits_cents} != credits {credits_cents}"
        )
        self.debits_cents = debits_cents
        self.credits_cents = credits_cents


def normal_side_balance(normal_balance: str, debits_cents: int, credits_cents: int) -> int:
    """Balance measured on the account's normal side (positive when normal)."""
    if normal_balance == SIDE_DEBIT:
        return debits_cents - credits_cents
    return credits_cents - debits_cents


def ensure_default_accounts(restaurant_id: int) -> dict[str, Account]:
    """
    Ensure a restaurant has the system chart of accounts.

    Safe to call repeatedly (idempotent). Returns {role: Account}.
    """
    def _op():
        with tenant_write_lock(restaurant_id):
            existing = {
                a.role: a
                for a in db.session.query(Account).filter(
                    Account.restaurant_id == restaurant_id,
                    Account.role.isnot(None),
                )
            }
            for code, name, account_type, normal_balance, role in DEFAULT_CHART:
                if role in existing:
                    continue
                account = Account(
                    restaurant_id=restaurant_id,
                    code=code,
                    name=name,
                    account_type=account_type,
                    normal_balance=normal_balance,
                    role=role,
                )
                db.session.add(account)
                existing[role] = account
            db.session.commit()
            return existing

    return run_with_retry(_op)


def create_account(
    restaurant_id: int,
    *,
    code: str,
    name: str,
    account_type: str,
    normal_balance: str | None = None,
) -> Account:
    """Create a user-defined account. Normal balance defaults from the type."""
    code = (code or "").strip()
    name = (name or "").strip()
    if not code:
        raise LedgerError("Account code is required")
    if not name:
        raise LedgerError("Account name is required")
    if account_type not in ACCOUNT_TYPES:
        raise LedgerError(f"Invalid account type: {account_type}")
    normal_balance = normal_balance or DEFAULT_NORMAL_BALANCE[account_type]
    if normal_balance not in SIDES:
        raise LedgerError(f"Invalid normal balance: {normal_balance}")

    with tenant_write_lock(restaurant_id):
        duplicate = db.session.query(Account).filter_by(restaurant_id=restaurant_id, code=code).first()
        if duplicate:
            raise LedgerError(f"Account code {code} already exists")

        account = Account(
            restaurant_id=restaurant_id,
            code=code,
            name=name,
            account_type=account_type,
            normal_balance=normal_balance,
        )
        db.session.add(account)
        db.session.commit()
        return account


def list_accounts(restaurant_id: int, account_types: Iterable[str] | None = None) -> list[Account]:
    q = db.session.query(Account).filter(Account.restaurant_id == restaurant_id)
    if account_types is not None:
        q = q.filter(Account.account_type.in_(list(account_types)))
    return q.order_by(Account.code.asc()).all()


def get_account_by_role(restaurant_id: int, role: str) -> Account:
    account = db.session.query(Account).filter_by(restaurant_id=restaurant_id, role=role).first()
    if account is None:
        raise LedgerError(f"System account {role} is not configured")
    return account


def _resolve_account(restaurant_id: int, line: dict) -> Account:
    if line.get("account_id") is not None:
        try:
            return require_owned(
                db.session.get(Account, line["account_id"]), restaurant_id, f"Account {line['account_id']}"
            )
        except TenantAccessError as exc:
            raise LedgerError(str(exc)) from exc

    if line.get("account_code"):
        account = db.session.query(Account).filter_by(
            restaurant_id=restaurant_id, code=line["account_code"]
        ).first()
        if account is None:
            raise LedgerError(f"Account {line['account_code']} not found")
        return account

    if line.get("role"):
        return get_account_by_role(restaurant_id, line["role"])

    raise LedgerError("Journal line requires account_id, account_code or role")


def _resolve_lines(restaurant_id: int, lines: Iterable[dict]) -> list[tuple[Account, str, int]]:
    resolved = []
    for line in lines:
        side = line.get("side")
        if side not in SIDES:
            raise LedgerError(f"Invalid line side: {side!r}")

        amount = line.get("amount_cents")
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise LedgerError("amount_cents must be an integer")
        if amount < 0:
            raise LedgerError("amount_cents cannot be negative")

        resolved.append((_resolve_account(restaurant_id, line), side, amount))

    if len(resolved) < 2:
        raise LedgerError("Journal entry requires at least two lines")
    sides = {side for _, side, _ in resolved}
    if sides != set(SIDES):
        raise LedgerError("Journal entry requires at least one debit and one credit line")
    return resolved


def _assert_balanced(resolved: list[tuple[Account, str, int]]) -> None:
    debits = sum(amount for _, side, amount in resolved if side == SIDE_DEBIT)
    credits = sum(amount for _, side, amount in resolved if side == SIDE_CREDIT)
    if debits != credits:
        raise BalanceError(debits, credits)


def post_entry(
    restaurant_id: int,
    lines: Iterable[dict],
    *,
    source: str,
    occurred_at: Optional[datetime] = None,
    reference: str | None = None,
    memo: str | None = None,
    affects_inventory: bool = False,
    reverses_entry_id: int | None = None,
    commit: bool = True,
) -> JournalEntry:
    """
    Post a balanced journal entry.

    lines: iterable of {"account_id" | "account_code" | "role", "side", "amount_cents"}.

    Raises BalanceError if debits != credits (nothing persisted) and
    LedgerError for malformed lines. commit=False leaves the entry flushed
    inside the caller's unit of work; the caller must hold tenant_write_lock
    until it commits.
    """
    if source not in ENTRY_SOURCES:
        raise LedgerError(f"Invalid entry source: {source}")

    occurred_dt = normalize_datetime(occurred_at) or utcnow()
    lines = list(lines)

    with tenant_write_lock(restaurant_id):
        resolved = _resolve_lines(restaurant_id, lines)
        _assert_balanced(resolved)

        entry = JournalEntry(
            restaurant_id=restaurant_id,
            source=source,
            affects_inventory=affects_inventory,
            reference=reference,
            memo=memo,
            reverses_entry_id=reverses_entry_id,
            occurred_at=occurred_dt,
        )
        for position, (account, side, amount) in enumerate(resolved):
            entry.lines.append(
                JournalLine(account_id=account.id, side=side, amount_cents=amount, position=position)
            )

        db.session.add(entry)
        db.session.flush()  # ensures entry.id is assigned without committing

        if commit:
            db.session.commit()

    return entry


def post_manual_entry(
    restaurant_id: int,
    lines: Iterable[dict],
    *,
    occurred_at: Optional[datetime] = None,
    reference: str | None = None,
    memo: str | None = None,
) -> JournalEntry:
    """Manually posted entry (COGS, expenses, corrections)."""
    return post_entry(
        restaurant_id,
        lines,
        source=SOURCE_MANUAL,
        occurred_at=occurred_at,
        reference=reference,
        memo=memo,
    )


def get_entry(restaurant_id: int, entry_id: int) -> JournalEntry:
    try:
        return require_owned(db.session.get(JournalEntry, entry_id), restaurant_id, f"Journal entry {entry_id}")
    except TenantAccessError as exc:
        raise LedgerError(str(exc)) from exc


def reverse_entry(
    restaurant_id: int,
    entry_id: int,
    *,
    occurred_at: Optional[datetime] = None,
    memo: str | None = None,
) -> JournalEntry:
    """
    Post a new entry that mirrors entry_id with every side swapped.

    Entries that back stock movements cannot be reversed here; the stock
    projection would drift from the ledger.
    """
    with tenant_write_lock(restaurant_id):
        original = get_entry(restaurant_id, entry_id)
        if original.affects_inventory:
            raise LedgerError("Inventory movement entries cannot be reversed directly")

        already = db.session.query(JournalEntry.id).filter_by(reverses_entry_id=original.id).first()
        if already:
            raise LedgerError(f"Journal entry {entry_id} has already been reversed")

        lines = [
            {
                "account_id": line.account_id,
                "side": SIDE_CREDIT if line.side == SIDE_DEBIT else SIDE_DEBIT,
                "amount_cents": line.amount_cents,
            }
            for line in original.lines
        ]
        return post_entry(
            restaurant_id,
            lines,
            source=original.source,
            occurred_at=occurred_at,
            reference=f"REVERSAL-{original.id}",
            memo=memo or f"Reversal of journal entry {original.id}",
            reverses_entry_id=original.id,
        )


def query_lines(
    restaurant_id: int,
    *,
    account_ids: Iterable[int] | None = None,
    account_types: Iterable[str] | None = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[JournalLine]:
    """
    Read-only line query.

    Ordered by entry occurred_at, then entry id (insertion sequence), then
    line position.
    """
    q = (
        db.session.query(JournalLine)
        .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
        .filter(JournalEntry.restaurant_id == restaurant_id)
    )
    if account_ids is not None:
        q = q.filter(JournalLine.account_id.in_(list(account_ids)))
    if account_types is not None:
        type_ids = db.session.query(Account.id).filter(
            Account.restaurant_id == restaurant_id,
            Account.account_type.in_(list(account_types)),
        )
        q = q.filter(JournalLine.account_id.in_(type_ids))
    if start is not None:
        q = q.filter(JournalEntry.occurred_at >= start)
    if end is not None:
        q = q.filter(JournalEntry.occurred_at <= end)

    return q.order_by(
        JournalEntry.occurred_at.asc(),
        JournalEntry.id.asc(),
        JournalLine.position.asc(),
    ).all()


def account_balances(
    restaurant_id: int,
    *,
    account_types: Iterable[str],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[dict]:
    """
    Per-account debit/credit totals for the period, from one aggregation query.

    Returns one dict per account of the requested types (accounts without
    activity report zeros), ordered by account code.
    """
    account_types = list(account_types)

    debit_sum = func.coalesce(
        func.sum(case((JournalLine.side == SIDE_DEBIT, JournalLine.amount_cents), else_=0)), 0
    )
    credit_sum = func.coalesce(
        func.sum(case((JournalLine.side == SIDE_CREDIT, JournalLine.amount_cents), else_=0)), 0
    )

    q = (
        db.session.query(
            JournalLine.account_id.label("account_id"),
            debit_sum.label("debits"),
            credit_sum.label("credits"),
        )
        .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
        .join(Account, JournalLine.account_id == Account.id)
        .filter(
            JournalEntry.restaurant_id == restaurant_id,
            Account.account_type.in_(account_types),
        )
    )
    if start is not None:
        q = q.filter(JournalEntry.occurred_at >= start)
    if end is not None:
        q = q.filter(JournalEntry.occurred_at <= end)

    totals = {row.account_id: (int(row.debits or 0), int(row.credits or 0)) for row in q.group_by(JournalLine.account_id)}

    result = []
    for account in list_accounts(restaurant_id, account_types):
        debits, credits = totals.get(account.id, (0, 0))
        result.append({
            "account": account,
            "debits_cents": debits,
            "credits_cents": credits,
            "balance_cents": normal_side_balance(account.normal_balance, debits, credits),
        })
    return result


def trial_balance_totals(restaurant_id: int) -> dict:
    """Total debits and credits across every posted line of a restaurant."""
    require_restaurant(restaurant_id)
    rows = account_balances(restaurant_id, account_types=ACCOUNT_TYPES)
    debits = sum(r["debits_cents"] for r in rows)
    credits = sum(r["credits_cents"] for r in rows)
    return {
        "restaurant_id": restaurant_id,
        "total_debits_cents": debits,
        "total_credits_cents": credits,
        "is_balanced": debits == credits,
    }
