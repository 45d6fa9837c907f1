from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..extensions import db
from ..time_utils import to_utc_z


# Account types
ACCOUNT_TYPE_ASSET = "ASSET"
ACCOUNT_TYPE_LIABILITY = "LIABILITY"
ACCOUNT_TYPE_REVENUE = "REVENUE"
ACCOUNT_TYPE_CONTRA_REVENUE = "CONTRA_REVENUE"
ACCOUNT_TYPE_EXPENSE = "EXPENSE"
ACCOUNT_TYPE_COGS = "COGS"

ACCOUNT_TYPES = (
    ACCOUNT_TYPE_ASSET,
    ACCOUNT_TYPE_LIABILITY,
    ACCOUNT_TYPE_REVENUE,
    ACCOUNT_TYPE_CONTRA_REVENUE,
    ACCOUNT_TYPE_EXPENSE,
    ACCOUNT_TYPE_COGS,
)

# Sides (used both for normal balance and for journal lines)
SIDE_DEBIT = "DEBIT"
SIDE_CREDIT = "CREDIT"
SIDES = (SIDE_DEBIT, SIDE_CREDIT)

DEFAULT_NORMAL_BALANCE = {
    ACCOUNT_TYPE_ASSET: SIDE_DEBIT,
    ACCOUNT_TYPE_LIABILITY: SIDE_CREDIT,
    ACCOUNT_TYPE_REVENUE: SIDE_CREDIT,
    ACCOUNT_TYPE_CONTRA_REVENUE: SIDE_DEBIT,
    ACCOUNT_TYPE_EXPENSE: SIDE_DEBIT,
    ACCOUNT_TYPE_COGS: SIDE_DEBIT,
}

# Journal entry sources
SOURCE_POS_SALE = "POS_SALE"
SOURCE_MANUAL = "MANUAL"
SOURCE_RECONCILIATION_ADJUSTMENT = "RECONCILIATION_ADJUSTMENT"
ENTRY_SOURCES = (SOURCE_POS_SALE, SOURCE_MANUAL, SOURCE_RECONCILIATION_ADJUSTMENT)


class ImmutableRecordError(Exception):
    """Raised when code attempts to modify or delete a posted ledger row."""
    pass


class Account(db.Model):
    """
    Ledger account (chart of accounts row).

    MULTI-TENANT: Accounts are scoped to restaurants via restaurant_id.
    Codes are unique within a restaurant, as are system roles.

    ROLES:
    System accounts carry a role (CASH, INVENTORY, GROSS_REVENUE,
    SALES_TAX_PAYABLE, TIPS_PAYABLE, ...) so services resolve them without
    relying on codes or names. User-created accounts have role=None.

    IMMUTABLE: An account is never edited or deleted once created; posted
    lines reference it forever.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "code", name="uq_accounts_restaurant_code"),
        db.UniqueConstraint("restaurant_id", "role", name="uq_accounts_restaurant_role"),
        db.Index("ix_accounts_restaurant_type", "restaurant_id", "account_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(150), nullable=False)

    # ASSET, LIABILITY, REVENUE, CONTRA_REVENUE, EXPENSE, COGS
    account_type = db.Column(db.String(20), nullable=False)
    # DEBIT or CREDIT
    normal_balance = db.Column(db.String(6), nullable=False)

    role = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    restaurant = db.relationship("Restaurant")

    def __repr__(self) -> str:
        return f"<Account id={self.id} code={self.code!r} type={self.account_type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "code": self.code,
            "name": self.name,
            "account_type": self.account_type,
            "normal_balance": self.normal_balance,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
        }


class JournalEntry(db.Model):
    """
    Balanced double-entry posting (journal header).

    Guarantees:
    - sum(debit lines) == sum(credit lines), validated before insert
    - Immutable once posted; corrections are new reversing entries
    - occurred_at is business time; created_at is system time (DB default)
    - affects_inventory marks entries that may back stock movements
    """
    __tablename__ = "journal_entries"
    __table_args__ = (
        db.Index("ix_journal_entries_restaurant_occurred", "restaurant_id", "occurred_at"),
        db.Index("ix_journal_entries_restaurant_source", "restaurant_id", "source"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    # POS_SALE, MANUAL, RECONCILIATION_ADJUSTMENT
    source = db.Column(db.String(32), nullable=False)
    affects_inventory = db.Column(db.Boolean, nullable=False, default=False)

    reference = db.Column(db.String(100), nullable=True, index=True)
    memo = db.Column(db.String(255), nullable=True)

    # Entry this one reverses, if any
    reverses_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "JournalLine",
        back_populates="entry",
        order_by="JournalLine.position",
        lazy="selectin",
    )

    def total_debits_cents(self) -> int:
        return sum(line.amount_cents for line in self.lines if line.side == SIDE_DEBIT)

    def total_credits_cents(self) -> int:
        return sum(line.amount_cents for line in self.lines if line.side == SIDE_CREDIT)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "source": self.source,
            "affects_inventory": self.affects_inventory,
            "reference": self.reference,
            "memo": self.memo,
            "reverses_entry_id": self.reverses_entry_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
            "total_debits_cents": self.total_debits_cents(),
            "total_credits_cents": self.total_credits_cents(),
        }


class JournalLine(db.Model):
    __tablename__ = "journal_lines"
    __table_args__ = (
        db.UniqueConstraint("journal_entry_id", "position", name="uq_journal_lines_entry_position"),
        db.Index("ix_journal_lines_account_entry", "account_id", "journal_entry_id"),
        db.CheckConstraint("amount_cents >= 0", name="ck_journal_lines_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    # DEBIT or CREDIT
    side = db.Column(db.String(6), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    # Order within the entry (0-based)
    position = db.Column(db.Integer, nullable=False)

    entry = db.relationship("JournalEntry", back_populates="lines")
    account = db.relationship("Account", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "journal_entry_id": self.journal_entry_id,
            "account_id": self.account_id,
            "account_code": self.account.code if self.account else None,
            "side": self.side,
            "amount_cents": self.amount_cents,
            "position": self.position,
        }


def _reject_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise ImmutableRecordError(f"{type(target).__name__} records are immutable once created")


def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} records are immutable and cannot be deleted")


for _model in (Account, JournalEntry, JournalLine):
    event.listen(_model, "before_update", _reject_update)
    event.listen(_model, "before_delete", _reject_delete)
