# Overview: Stock ledger; ledger-derived quantity on hand per product.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..models import JournalEntry, StockLedgerEntry
from ..models.accounting import SIDE_CREDIT, SIDE_DEBIT, SOURCE_MANUAL
from ..time_utils import normalize_datetime
from .catalog_service import CatalogError, get_product_by_id
from .concurrency import tenant_write_lock
from .ledger_service import ROLE_CASH, ROLE_INVENTORY, post_entry
from .tenant_service import TenantAccessError, require_owned
"""
Stock Ledger Invariants (authoritative)

- Quantity on hand is SUM(quantity_delta) over StockLedgerEntry rows
  (optionally as-of, inclusive). It is never stored as a mutable field.
- Every movement references an existing journal entry of the same restaurant
  tagged affects_inventory=True. The journal entry exists first.
- Movements are appended only by components that post inventory-affecting
  entries (POS sales with items, receipts, reconciliation adjustments).
  Catalog edits never call record_movement.
- On hand may go negative (a sale is recorded even if the count was off);
  reconciliation brings it back to the physical count.
"""


class StockError(Exception):
    """Raised when a stock movement is invalid."""
    pass


def current_quantity(restaurant_id: int, product_id: int, as_of: datetime | None = None) -> int:
    """Quantity on hand = sum of all recorded deltas for the product."""
    q = db.session.query(
        func.coalesce(func.sum(StockLedgerEntry.quantity_delta), 0)
    ).filter(
        StockLedgerEntry.restaurant_id == restaurant_id,
        StockLedgerEntry.product_id == product_id,
    )
    if as_of is not None:
        q = q.filter(StockLedgerEntry.occurred_at <= as_of)

    return int(q.scalar() or 0)


def record_movement(
    restaurant_id: int,
    product_id: int,
    delta: int,
    journal_entry_id: int,
    *,
    occurred_at: Optional[datetime] = None,
) -> StockLedgerEntry:
    """
    Append a stock movement backed by an inventory journal entry.

    Flushes but does not commit; the caller owns the unit of work that posted
    the journal entry.
    """
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise StockError("Quantity delta must be an integer")
    if delta == 0:
        raise StockError("Quantity delta cannot be zero")

    try:
        get_product_by_id(restaurant_id, product_id)
    except CatalogError as exc:
        raise StockError(str(exc)) from exc

    try:
        entry = require_owned(
            db.session.get(JournalEntry, journal_entry_id), restaurant_id, f"Journal entry {journal_entry_id}"
        )
    except TenantAccessError as exc:
        raise StockError(str(exc)) from exc
    if not entry.affects_inventory:
        raise StockError(f"Journal entry {journal_entry_id} is not an inventory movement")

    movement = StockLedgerEntry(
        restaurant_id=restaurant_id,
        product_id=product_id,
        quantity_delta=delta,
        journal_entry_id=journal_entry_id,
        occurred_at=normalize_datetime(occurred_at) or entry.occurred_at,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def receive_stock(
    restaurant_id: int,
    product_id: int,
    quantity: int,
    *,
    unit_cost_cents: int | None = None,
    occurred_at: Optional[datetime] = None,
    reference: str | None = None,
) -> StockLedgerEntry:
    """
    Receive inventory: debit Inventory Asset / credit Cash, then +quantity.

    unit_cost_cents defaults to the product's catalog unit cost.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise StockError("Quantity must be a positive integer")

    with tenant_write_lock(restaurant_id):
        try:
            product = get_product_by_id(restaurant_id, product_id, require_active=True)
        except CatalogError as exc:
            raise StockError(str(exc)) from exc

        if unit_cost_cents is None:
            unit_cost_cents = product.unit_cost_cents
        if not isinstance(unit_cost_cents, int) or isinstance(unit_cost_cents, bool) or unit_cost_cents < 0:
            raise StockError("Unit cost must be a non-negative integer (cents)")

        value_cents = quantity * unit_cost_cents
        entry = post_entry(
            restaurant_id,
            [
                {"role": ROLE_INVENTORY, "side": SIDE_DEBIT, "amount_cents": value_cents},
                {"role": ROLE_CASH, "side": SIDE_CREDIT, "amount_cents": value_cents},
            ],
            source=SOURCE_MANUAL,
            occurred_at=occurred_at,
            reference=reference,
            memo=f"Receive {quantity} x {product.sku}",
            affects_inventory=True,
            commit=False,
        )
        movement = record_movement(restaurant_id, product.id, quantity, entry.id)
        db.session.commit()
        return movement


def list_movements(restaurant_id: int, product_id: int, limit: int | None = None) -> list[StockLedgerEntry]:
    q = db.session.query(StockLedgerEntry).filter_by(
        restaurant_id=restaurant_id,
        product_id=product_id,
    ).order_by(StockLedgerEntry.occurred_at.asc(), StockLedgerEntry.id.asc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()
