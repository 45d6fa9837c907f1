from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z
from .accounting import _reject_delete, _reject_update


class Product(db.Model):
    """
    Product master data, owned by the external catalog.

    MULTI-TENANT: Products are scoped to restaurants via restaurant_id.
    SKUs are unique within a restaurant.

    This service only reads products (id, sku, unit cost). Stock on hand is
    never stored here; it is derived from StockLedgerEntry rows.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "sku", name="uq_products_restaurant_sku"),
        db.Index("ix_products_restaurant_name", "restaurant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents (frontend may only format for display)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    restaurant = db.relationship("Restaurant", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} restaurant_id={self.restaurant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "sku": self.sku,
            "name": self.name,
            "unit_cost_cents": self.unit_cost_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockLedgerEntry(db.Model):
    """
    Signed quantity movement for one product.

    Every row points at the journal entry that justified it; quantity on
    hand is SUM(quantity_delta) and is never cached on the product.
    Append-only.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.Index("ix_stock_restaurant_product_occurred", "restaurant_id", "product_id", "occurred_at"),
        db.CheckConstraint("quantity_delta <> 0", name="ck_stock_delta_non_zero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)

    journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=False, index=True)

    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "product_id": self.product_id,
            "quantity_delta": self.quantity_delta,
            "journal_entry_id": self.journal_entry_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }


event.listen(StockLedgerEntry, "before_update", _reject_update)
event.listen(StockLedgerEntry, "before_delete", _reject_delete)
