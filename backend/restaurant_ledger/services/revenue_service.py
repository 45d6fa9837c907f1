"""
Revenue recognition: POS transactions -> balanced journal entries.

WHY: Every POS sale lands in the ledger exactly once, as one balanced entry:

    DEBIT  Cash                 gross + tax + tip
    CREDIT Gross Revenue        gross
    CREDIT Sales Tax Payable    tax
    CREDIT Tips Payable         tip

Net Sales Revenue is never stored; the statement compiler derives it.

IDEMPOTENCY: The POS feed is at-least-once. Ingestion is keyed by
(restaurant_id, external_id); a repeat delivery posts nothing and returns
the original transaction with outcome DUPLICATE (logged, not an error).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import PosTransaction, PosTransactionItem
from ..models.accounting import SIDE_CREDIT, SIDE_DEBIT, SOURCE_POS_SALE
from ..time_utils import normalize_datetime, utcnow
from .catalog_service import CatalogError, get_product_by_id
from .concurrency import tenant_write_lock
from .ledger_service import (
    ROLE_CASH,
    ROLE_GROSS_REVENUE,
    ROLE_SALES_TAX_PAYABLE,
    ROLE_TIPS_PAYABLE,
    post_entry,
)
from .stock_service import record_movement


INGEST_POSTED = "POSTED"
INGEST_DUPLICATE = "DUPLICATE"


class RevenueError(Exception):
    """Raised when a POS transaction cannot be recognized."""
    pass


@dataclass(frozen=True)
class IngestResult:
    transaction: PosTransaction
    outcome: str

    @property
    def duplicate(self) -> bool:
        return self.outcome == INGEST_DUPLICATE


def _require_amount(value, label: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise RevenueError(f"{label} must be an integer (cents)")
    if value < 0:
        raise RevenueError(f"{label} cannot be negative")
    return value


def _normalize_items(restaurant_id: int, items: Iterable[dict] | None) -> list[tuple[int, int]]:
    normalized = []
    for item in items or []:
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise RevenueError("Item quantity must be a positive integer")
        try:
            product = get_product_by_id(restaurant_id, product_id)
        except CatalogError as exc:
            raise RevenueError(str(exc)) from exc
        normalized.append((product.id, quantity))
    return normalized


def find_transaction(restaurant_id: int, external_id: str) -> PosTransaction | None:
    return db.session.query(PosTransaction).filter_by(
        restaurant_id=restaurant_id,
        external_id=external_id,
    ).first()


def _log_duplicate(restaurant_id: int, existing: PosTransaction) -> None:
    current_app.logger.info(
        "Duplicate POS ingestion ignored: restaurant=%s external_id=%s journal_entry=%s",
        restaurant_id,
        existing.external_id,
        existing.journal_entry_id,
    )


def ingest_pos_transaction(
    restaurant_id: int,
    *,
    external_id: str,
    gross_cents: int,
    tax_cents: int = 0,
    tip_cents: int = 0,
    occurred_at: Optional[datetime] = None,
    items: Iterable[dict] | None = None,
) -> IngestResult:
    """
    Recognize one POS transaction.

    items: optional [{"product_id", "quantity"}]; each one records a negative
    stock movement against the sale entry.

    Returns IngestResult(outcome=POSTED) for a new transaction and
    IngestResult(outcome=DUPLICATE) for a repeat delivery.
    """
    external_id = (str(external_id).strip() if external_id is not None else "")
    if not external_id:
        raise RevenueError("external_id is required")

    gross_cents = _require_amount(gross_cents, "gross_cents")
    tax_cents = _require_amount(tax_cents, "tax_cents")
    tip_cents = _require_amount(tip_cents, "tip_cents")
    total_cents = gross_cents + tax_cents + tip_cents
    if total_cents <= 0:
        raise RevenueError("POS transaction total must be positive")

    occurred_dt = normalize_datetime(occurred_at) or utcnow()

    with tenant_write_lock(restaurant_id):
        existing = find_transaction(restaurant_id, external_id)
        if existing is not None:
            _log_duplicate(restaurant_id, existing)
            return IngestResult(transaction=existing, outcome=INGEST_DUPLICATE)

        normalized_items = _normalize_items(restaurant_id, items)

        lines = [{"role": ROLE_CASH, "side": SIDE_DEBIT, "amount_cents": total_cents}]
        for role, amount in (
            (ROLE_GROSS_REVENUE, gross_cents),
            (ROLE_SALES_TAX_PAYABLE, tax_cents),
            (ROLE_TIPS_PAYABLE, tip_cents),
        ):
            if amount:
                lines.append({"role": role, "side": SIDE_CREDIT, "amount_cents": amount})

        try:
            entry = post_entry(
                restaurant_id,
                lines,
                source=SOURCE_POS_SALE,
                occurred_at=occurred_dt,
                reference=f"POS-{external_id}",
                memo=f"POS sale {external_id}",
                affects_inventory=bool(normalized_items),
                commit=False,
            )

            txn = PosTransaction(
                restaurant_id=restaurant_id,
                external_id=external_id,
                gross_cents=gross_cents,
                tax_cents=tax_cents,
                tip_cents=tip_cents,
                journal_entry_id=entry.id,
                occurred_at=occurred_dt,
            )
            db.session.add(txn)
            db.session.flush()

            for product_id, quantity in normalized_items:
                db.session.add(PosTransactionItem(
                    pos_transaction_id=txn.id,
                    product_id=product_id,
                    quantity=quantity,
                ))
                record_movement(restaurant_id, product_id, -quantity, entry.id)

            db.session.commit()
        except IntegrityError:
            # Lost the unique-key race to another process delivering the same id
            db.session.rollback()
            existing = find_transaction(restaurant_id, external_id)
            if existing is None:
                raise
            _log_duplicate(restaurant_id, existing)
            return IngestResult(transaction=existing, outcome=INGEST_DUPLICATE)

    return IngestResult(transaction=txn, outcome=INGEST_POSTED)


def list_transactions(
    restaurant_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[PosTransaction]:
    q = db.session.query(PosTransaction).filter(PosTransaction.restaurant_id == restaurant_id)
    if start is not None:
        q = q.filter(PosTransaction.occurred_at >= start)
    if end is not None:
        q = q.filter(PosTransaction.occurred_at <= end)
    return q.order_by(PosTransaction.occurred_at.asc(), PosTransaction.id.asc()).all()
