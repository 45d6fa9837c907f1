from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ReconciliationSession(db.Model):
    """
    Physical count of one product (reconciliation session).

    LIFECYCLE:
    1. COUNTING_IN_PROGRESS: Session started, system quantity snapshot frozen
    2. REVIEW_PENDING: Count submitted, variance available for review
    3. CONFIRMED: Adjustment entry posted, stock set to the count (terminal)
    4. CANCELLED: Discarded without ledger effect (terminal)

    A REVIEW_PENDING session may go back to COUNTING_IN_PROGRESS for a
    re-count; the snapshot stays frozen.

    HISTORY: Terminal sessions stay in this table and form the
    reconciliation history (filter on status).

    CONCURRENCY: version_id is SQLAlchemy's optimistic version column; a
    stale writer fails instead of silently overwriting.
    """
    __tablename__ = "reconciliation_sessions"
    __table_args__ = (
        db.Index("ix_recon_restaurant_product_status", "restaurant_id", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    status = db.Column(db.String(24), nullable=False, index=True)

    # Frozen at start
    system_quantity_snapshot = db.Column(db.Integer, nullable=False)
    unit_cost_cents_snapshot = db.Column(db.Integer, nullable=False)

    counted_quantity = db.Column(db.Integer, nullable=True)

    # Stock movement applied on confirmation: counted - on hand at confirm.
    # Differs from variance when stock moved while the count was open.
    adjustment_quantity = db.Column(db.Integer, nullable=True)

    # Set only on confirmation (None when the adjustment was zero)
    journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    # External user reference (auth lives outside this service)
    performed_by = db.Column(db.String(64), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    counted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    journal_entry = db.relationship("JournalEntry")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def variance(self) -> int | None:
        """counted - snapshot; None until a count is submitted."""
        if self.counted_quantity is None:
            return None
        return self.counted_quantity - self.system_quantity_snapshot

    @property
    def variance_value_cents(self) -> int | None:
        variance = self.variance
        if variance is None:
            return None
        return variance * self.unit_cost_cents_snapshot

    @property
    def adjustment_value_cents(self) -> int | None:
        if self.adjustment_quantity is None:
            return None
        return self.adjustment_quantity * self.unit_cost_cents_snapshot

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "product_id": self.product_id,
            "status": self.status,
            "system_quantity_snapshot": self.system_quantity_snapshot,
            "unit_cost_cents_snapshot": self.unit_cost_cents_snapshot,
            "counted_quantity": self.counted_quantity,
            "variance": self.variance,
            "variance_value_cents": self.variance_value_cents,
            "adjustment_quantity": self.adjustment_quantity,
            "adjustment_value_cents": self.adjustment_value_cents,
            "journal_entry_id": self.journal_entry_id,
            "notes": self.notes,
            "cancellation_reason": self.cancellation_reason,
            "performed_by": self.performed_by,
            "started_at": to_utc_z(self.started_at),
            "counted_at": to_utc_z(self.counted_at) if self.counted_at else None,
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
        }


class ReconciliationLock(db.Model):
    """
    Lock table: at most one open reconciliation session per product.

    A row is inserted when a count starts and deleted when the session
    reaches CONFIRMED or CANCELLED. The unique constraint makes a second
    start fail immediately instead of queuing.
    """
    __tablename__ = "reconciliation_locks"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "product_id", name="uq_recon_locks_restaurant_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    session_id = db.Column(
        db.Integer, db.ForeignKey("reconciliation_sessions.id"), nullable=False, unique=True
    )
    acquired_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
