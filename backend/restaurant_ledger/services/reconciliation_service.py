# backend/restaurant_ledger/services/reconciliation_service.py
"""
Inventory reconciliation (physical count) sessions.

WHY: Physical counts keep the stock ledger honest. A session freezes the
system quantity when counting starts, compares it with the counted quantity,
and on confirmation posts the variance as an adjusting journal entry plus a
matching stock movement.

LIFECYCLE:
    NOT_STARTED (no open session for the product)
      -> COUNTING_IN_PROGRESS   start_count: snapshot frozen, product lock taken
      -> REVIEW_PENDING         submit_count: variance = counted - snapshot
      -> COUNTING_IN_PROGRESS   recount (snapshot stays frozen)
      -> CONFIRMED              confirm_reconciliation: entry posted, lock released
      -> CANCELLED              cancel_count: no ledger effect, lock released

ADJUSTMENT ENTRY (adjustment = counted - on hand at confirm,
value = |adjustment| x unit cost snapshot):
    adjustment > 0: DEBIT Inventory Asset / CREDIT Inventory Adjustment Gain/Loss
    adjustment < 0: DEBIT Inventory Adjustment Gain/Loss / CREDIT Inventory Asset
    adjustment = 0: nothing posted, no stock movement

The reported variance stays counted - snapshot. The two differ only when
stock moved while the count was open.

CONCURRENCY:
- At most one open session per product: ReconciliationLock row, unique per
  (restaurant, product). A second start fails fast with SessionConflict.
- Session mutations lock the session row and ride the SQLAlchemy version
  column. Callers may pass expected_version; a mismatch or a stale flush
  raises SessionConflict instead of overwriting.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import ReconciliationLock, ReconciliationSession
from ..models.accounting import SIDE_CREDIT, SIDE_DEBIT, SOURCE_RECONCILIATION_ADJUSTMENT
from ..time_utils import normalize_datetime, normalize_period_end, to_utc_z, utcnow
from .catalog_service import CatalogError, get_product_by_id
from .concurrency import lock_for_update, tenant_write_lock
from .ledger_service import BalanceError, ROLE_INVENTORY, ROLE_INVENTORY_ADJUSTMENT, post_entry
from .stock_service import current_quantity, record_movement


# Session status constants
STATUS_NOT_STARTED = "NOT_STARTED"
STATUS_COUNTING_IN_PROGRESS = "COUNTING_IN_PROGRESS"
STATUS_REVIEW_PENDING = "REVIEW_PENDING"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_CANCELLED = "CANCELLED"

OPEN_STATUSES = (STATUS_COUNTING_IN_PROGRESS, STATUS_REVIEW_PENDING)
TERMINAL_STATUSES = (STATUS_CONFIRMED, STATUS_CANCELLED)

ALLOWED_TRANSITIONS = {
    STATUS_NOT_STARTED: {STATUS_COUNTING_IN_PROGRESS},
    STATUS_COUNTING_IN_PROGRESS: {STATUS_REVIEW_PENDING, STATUS_CANCELLED},
    STATUS_REVIEW_PENDING: {STATUS_CONFIRMED, STATUS_COUNTING_IN_PROGRESS, STATUS_CANCELLED},
    STATUS_CONFIRMED: set(),
    STATUS_CANCELLED: set(),
}


class ReconciliationError(Exception):
    """Raised when reconciliation operations fail."""
    pass


class SessionNotFound(ReconciliationError):
    pass


class SessionConflict(ReconciliationError):
    """Another writer holds or changed the session. Retryable."""
    pass


class InvalidState(ReconciliationError):
    """Operation not allowed from the session's current state. Not retryable."""
    pass


def _require_transition(session: ReconciliationSession, target: str) -> None:
    if target not in ALLOWED_TRANSITIONS.get(session.status, set()):
        raise InvalidState(
            f"Cannot move reconciliation session {session.id} from {session.status} to {target}"
        )


def _load_session(
    session_id: int,
    *,
    restaurant_id: int | None = None,
    expected_version: int | None = None,
    lock: bool = True,
) -> ReconciliationSession:
    query = db.session.query(ReconciliationSession).filter_by(id=session_id)
    if lock:
        query = lock_for_update(query)
    try:
        session = query.first()
    except StaleDataError as exc:
        # Locked reload saw a newer version than the one held in this session
        db.session.rollback()
        raise SessionConflict(f"Reconciliation session {session_id} was modified by another request") from exc
    if session is None or (restaurant_id is not None and session.restaurant_id != restaurant_id):
        raise SessionNotFound(f"Reconciliation session {session_id} not found")

    if expected_version is not None and session.version_id != expected_version:
        raise SessionConflict(
            f"Reconciliation session {session_id} changed (version {session.version_id}, "
            f"expected {expected_version})"
        )
    return session


def _commit_session() -> None:
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise SessionConflict("Reconciliation session was modified by another request") from exc


def _release_lock(session: ReconciliationSession) -> None:
    db.session.query(ReconciliationLock).filter_by(session_id=session.id).delete(
        synchronize_session=False
    )


def start_count(
    restaurant_id: int,
    product_id: int,
    *,
    performed_by: str | None = None,
    notes: str | None = None,
) -> ReconciliationSession:
    """
    Start a new count for a product (NOT_STARTED -> COUNTING_IN_PROGRESS).

    Freezes the current system quantity and unit cost. Raises
    SessionConflict immediately if the product already has an open session.
    """
    try:
        product = get_product_by_id(restaurant_id, product_id, require_active=True)
    except CatalogError as exc:
        raise ReconciliationError(str(exc)) from exc

    held = db.session.query(ReconciliationLock).filter_by(
        restaurant_id=restaurant_id,
        product_id=product.id,
    ).first()
    if held is not None:
        current_app.logger.warning(
            "Count already in progress: restaurant=%s product=%s session=%s",
            restaurant_id, product.id, held.session_id,
        )
        raise SessionConflict(f"Count already in progress for product {product.id}")

    session = ReconciliationSession(
        restaurant_id=restaurant_id,
        product_id=product.id,
        status=STATUS_COUNTING_IN_PROGRESS,
        system_quantity_snapshot=current_quantity(restaurant_id, product.id),
        unit_cost_cents_snapshot=product.unit_cost_cents or 0,
        performed_by=performed_by,
        notes=notes,
        started_at=utcnow(),
    )

    try:
        db.session.add(session)
        db.session.flush()  # Get ID

        db.session.add(ReconciliationLock(
            restaurant_id=restaurant_id,
            product_id=product.id,
            session_id=session.id,
        ))
        db.session.flush()
        db.session.commit()
    except IntegrityError as exc:
        # Another request took the product lock between our check and insert
        db.session.rollback()
        raise SessionConflict(f"Count already in progress for product {product_id}") from exc

    current_app.logger.info(
        "Reconciliation session %s started: restaurant=%s product=%s snapshot=%s",
        session.id, restaurant_id, product.id, session.system_quantity_snapshot,
    )
    return session


def submit_count(
    session_id: int,
    quantity: int,
    *,
    restaurant_id: int | None = None,
    expected_version: int | None = None,
    notes: str | None = None,
) -> ReconciliationSession:
    """
    Record the physical count (COUNTING_IN_PROGRESS -> REVIEW_PENDING).

    Raises InvalidState from any other state.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ReconciliationError("Counted quantity must be an integer")
    if quantity < 0:
        raise ReconciliationError("Counted quantity cannot be negative")

    session = _load_session(session_id, restaurant_id=restaurant_id, expected_version=expected_version)
    _require_transition(session, STATUS_REVIEW_PENDING)

    session.status = STATUS_REVIEW_PENDING
    session.counted_quantity = quantity
    session.counted_at = utcnow()
    if notes is not None:
        session.notes = notes

    _commit_session()
    return session


def recount(
    session_id: int,
    *,
    restaurant_id: int | None = None,
    expected_version: int | None = None,
) -> ReconciliationSession:
    """Send a reviewed session back to counting (REVIEW_PENDING -> COUNTING_IN_PROGRESS)."""
    session = _load_session(session_id, restaurant_id=restaurant_id, expected_version=expected_version)
    _require_transition(session, STATUS_COUNTING_IN_PROGRESS)

    session.status = STATUS_COUNTING_IN_PROGRESS
    session.counted_quantity = None
    session.counted_at = None

    _commit_session()
    return session


def _adjustment_lines(variance: int, unit_cost_cents: int) -> list[dict]:
    value_cents = abs(variance) * unit_cost_cents
    if variance > 0:
        debit_role, credit_role = ROLE_INVENTORY, ROLE_INVENTORY_ADJUSTMENT
    else:
        debit_role, credit_role = ROLE_INVENTORY_ADJUSTMENT, ROLE_INVENTORY
    return [
        {"role": debit_role, "side": SIDE_DEBIT, "amount_cents": value_cents},
        {"role": credit_role, "side": SIDE_CREDIT, "amount_cents": value_cents},
    ]


def confirm_reconciliation(
    session_id: int,
    *,
    restaurant_id: int | None = None,
    expected_version: int | None = None,
) -> int | None:
    """
    Confirm a reviewed count (REVIEW_PENDING -> CONFIRMED).

    Posts the adjustment entry, records the stock movement, releases the
    product lock and archives the session, all in one commit. The movement is
    counted - on hand at confirmation, so stock equals the physical count even
    when sales landed while the count was open. Returns the journal entry id,
    or None when no adjustment was needed.

    Raises InvalidState from any other state (stock ledger untouched).
    A BalanceError here is an invariant violation and is fatal.
    """
    owner = _load_session(session_id, restaurant_id=restaurant_id, lock=False)

    with tenant_write_lock(owner.restaurant_id):
        session = _load_session(
            session_id,
            restaurant_id=owner.restaurant_id,
            expected_version=expected_version,
        )
        _require_transition(session, STATUS_CONFIRMED)

        variance = session.variance
        # Sales and receipts may have moved stock since the snapshot; on hand
        # must end at the counted quantity either way.
        on_hand = current_quantity(session.restaurant_id, session.product_id)
        adjustment = session.counted_quantity - on_hand
        entry_id = None
        try:
            if adjustment:
                entry = post_entry(
                    session.restaurant_id,
                    _adjustment_lines(adjustment, session.unit_cost_cents_snapshot),
                    source=SOURCE_RECONCILIATION_ADJUSTMENT,
                    reference=f"RECON-{session.id}",
                    memo=f"Reconciliation {session.id}: counted {session.counted_quantity}, "
                         f"on hand {on_hand}",
                    affects_inventory=True,
                    commit=False,
                )
                record_movement(session.restaurant_id, session.product_id, adjustment, entry.id)
                entry_id = entry.id

            session.adjustment_quantity = adjustment
            session.status = STATUS_CONFIRMED
            session.journal_entry_id = entry_id
            session.confirmed_at = utcnow()
            _release_lock(session)
            db.session.flush()
        except BalanceError:
            db.session.rollback()
            current_app.logger.critical(
                "Reconciliation session %s produced an unbalanced adjustment", session_id
            )
            raise
        except StaleDataError as exc:
            db.session.rollback()
            raise SessionConflict(
                f"Reconciliation session {session_id} was modified by another request"
            ) from exc

        _commit_session()

    current_app.logger.info(
        "Reconciliation session %s confirmed: variance=%s adjustment=%s journal_entry=%s",
        session_id, variance, adjustment, entry_id,
    )
    return entry_id


def cancel_count(
    session_id: int,
    *,
    restaurant_id: int | None = None,
    expected_version: int | None = None,
    reason: str | None = None,
) -> ReconciliationSession:
    """Discard an open session without ledger effect and release the product lock."""
    session = _load_session(session_id, restaurant_id=restaurant_id, expected_version=expected_version)
    _require_transition(session, STATUS_CANCELLED)

    session.status = STATUS_CANCELLED
    session.cancelled_at = utcnow()
    session.cancellation_reason = reason
    _release_lock(session)

    _commit_session()
    current_app.logger.info("Reconciliation session %s cancelled", session_id)
    return session


def get_session(session_id: int, *, restaurant_id: int | None = None) -> ReconciliationSession:
    return _load_session(session_id, restaurant_id=restaurant_id, lock=False)


def get_open_session(restaurant_id: int, product_id: int) -> ReconciliationSession | None:
    held = db.session.query(ReconciliationLock).filter_by(
        restaurant_id=restaurant_id,
        product_id=product_id,
    ).first()
    if held is None:
        return None
    session = db.session.get(ReconciliationSession, held.session_id)
    return session if session is not None and session.status in OPEN_STATUSES else None


def product_state(restaurant_id: int, product_id: int) -> str:
    """State of the product's current session, NOT_STARTED when none is open."""
    session = get_open_session(restaurant_id, product_id)
    return session.status if session is not None else STATUS_NOT_STARTED


def list_history(
    restaurant_id: int,
    *,
    product_id: int | None = None,
    limit: int = 100,
) -> list[ReconciliationSession]:
    """Terminal (confirmed or cancelled) sessions, newest first."""
    q = db.session.query(ReconciliationSession).filter(
        ReconciliationSession.restaurant_id == restaurant_id,
        ReconciliationSession.status.in_(TERMINAL_STATUSES),
    )
    if product_id is not None:
        q = q.filter(ReconciliationSession.product_id == product_id)
    return q.order_by(ReconciliationSession.id.desc()).limit(limit).all()


def variance_summary(
    restaurant_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    """
    Shrinkage/overage summary over confirmed sessions in the period.

    Shrinkage is the value of negative posted adjustments (reported
    positive), overage the value of positive ones; net = overage - shrinkage.
    """
    start_dt = normalize_datetime(start)
    end_dt = normalize_period_end(end)

    q = db.session.query(ReconciliationSession).filter(
        ReconciliationSession.restaurant_id == restaurant_id,
        ReconciliationSession.status == STATUS_CONFIRMED,
    )
    if start_dt is not None:
        q = q.filter(ReconciliationSession.confirmed_at >= start_dt)
    if end_dt is not None:
        q = q.filter(ReconciliationSession.confirmed_at <= end_dt)

    sessions = q.order_by(ReconciliationSession.confirmed_at.asc(), ReconciliationSession.id.asc()).all()

    shrinkage = 0
    overage = 0
    items = []
    for s in sessions:
        value = s.adjustment_value_cents or 0
        if value < 0:
            shrinkage += -value
        elif value > 0:
            overage += value
        if s.adjustment_quantity:
            items.append({
                "session_id": s.id,
                "product_id": s.product_id,
                "variance": s.variance,
                "adjustment_quantity": s.adjustment_quantity,
                "adjustment_value_cents": value,
                "confirmed_at": to_utc_z(s.confirmed_at),
            })

    return {
        "restaurant_id": restaurant_id,
        "sessions_confirmed": len(sessions),
        "sessions_with_variance": len(items),
        "total_shrinkage_value_cents": shrinkage,
        "total_overage_value_cents": overage,
        "net_adjustment_value_cents": overage - shrinkage,
        "items": items,
    }
