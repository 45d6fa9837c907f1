from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Restaurant(db.Model):
    """
    Multi-tenant root: Every tenant is a Restaurant.

    WHY: Shared-database multi-tenancy with strict isolation. Accounts,
    journal entries, products, stock movements and reconciliation sessions
    all carry restaurant_id and no query may cross restaurant boundaries.

    Provisioning (signup, onboarding) lives outside this service; this row is
    the minimal anchor for scoping and for the per-tenant write lock.
    """
    __tablename__ = "restaurants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code for lookups

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Restaurant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
