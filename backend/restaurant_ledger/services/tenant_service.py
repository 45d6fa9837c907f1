"""
Multi-Tenant Service: Restaurant Context and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every ledger and session operation is scoped to a restaurant, and
cross-tenant access must be explicitly denied.

INVARIANTS:
1. Every request handled by a tenant-scoped route has g.restaurant_id set
2. Product and session ids from client input are validated against it
3. Cross-tenant lookups fail as "not found" (existence is not revealed)

USAGE:
    from restaurant_ledger.services.tenant_service import current_restaurant_id

    restaurant_id = current_restaurant_id()
"""

from flask import g

from ..extensions import db
from ..models import Restaurant


class TenantAccessError(Exception):
    """Raised when tenant context is missing or cross-tenant access is attempted."""
    pass


def current_restaurant_id() -> int:
    """
    Get the current tenant's restaurant_id from Flask g context.

    Raises TenantAccessError if restaurant_id is not set. This should never
    happen after @require_restaurant, but is a safety check.
    """
    if not hasattr(g, 'restaurant_id') or g.restaurant_id is None:
        raise TenantAccessError("Tenant context not established")
    return g.restaurant_id


def require_restaurant(restaurant_id: int, *, lock: bool = False) -> Restaurant:
    """
    Load an active restaurant or raise TenantAccessError.

    lock=True applies SELECT ... FOR UPDATE (the tenant write lock row).
    """
    query = db.session.query(Restaurant).filter_by(id=restaurant_id)
    if lock:
        query = query.with_for_update()
    restaurant = query.first()
    if restaurant is None or not restaurant.is_active:
        raise TenantAccessError("Restaurant not found")
    return restaurant


def require_owned(row, restaurant_id: int, label: str):
    """Return row if it belongs to restaurant_id, else raise TenantAccessError."""
    if row is None or row.restaurant_id != restaurant_id:
        # Don't reveal it exists in another restaurant
        raise TenantAccessError(f"{label} not found")
    return row


def create_restaurant(name: str, code: str | None = None) -> Restaurant:
    """Create a restaurant row (CLI / tests; provisioning proper is external)."""
    restaurant = Restaurant(name=name, code=code, is_active=True)
    db.session.add(restaurant)
    db.session.flush()
    return restaurant
