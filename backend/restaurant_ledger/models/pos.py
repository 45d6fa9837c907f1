from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PosTransaction(db.Model):
    """
    Point-of-sale transaction as delivered by the POS feed.

    IDEMPOTENCY: (restaurant_id, external_id) is unique. The feed delivers
    at-least-once, so a second delivery of the same external_id is detected
    here and never produces a second journal entry.

    Exactly one JournalEntry per transaction (journal_entry_id).
    """
    __tablename__ = "pos_transactions"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "external_id", name="uq_pos_transactions_restaurant_external"),
        db.Index("ix_pos_transactions_restaurant_occurred", "restaurant_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    external_id = db.Column(db.String(128), nullable=False)

    gross_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    tip_cents = db.Column(db.Integer, nullable=False, default=0)

    journal_entry_id = db.Column(
        db.Integer, db.ForeignKey("journal_entries.id"), nullable=False, unique=True
    )

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    journal_entry = db.relationship("JournalEntry")
    items = db.relationship("PosTransactionItem", back_populates="transaction", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "external_id": self.external_id,
            "gross_cents": self.gross_cents,
            "tax_cents": self.tax_cents,
            "tip_cents": self.tip_cents,
            "journal_entry_id": self.journal_entry_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class PosTransactionItem(db.Model):
    __tablename__ = "pos_transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    pos_transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    transaction = db.relationship("PosTransaction", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }
