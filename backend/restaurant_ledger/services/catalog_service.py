# backend/restaurant_ledger/services/catalog_service.py
"""
Product catalog lookups (read-only).

The catalog is owned by an external collaborator; this service only reads
product id, SKU and unit cost. Catalog edits that do not move stock never
touch the stock ledger or the journal.

MULTI-TENANT: Every lookup is restaurant-scoped; a product from another
restaurant is reported as not found.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product
from .tenant_service import TenantAccessError, require_owned


class CatalogError(Exception):
    """Raised when a product cannot be resolved."""
    pass


def get_product(restaurant_id: int, sku: str) -> Product:
    """Resolve a product by SKU (unique within a restaurant)."""
    sku = (sku or "").strip()
    if not sku:
        raise CatalogError("SKU is required")
    product = db.session.query(Product).filter_by(restaurant_id=restaurant_id, sku=sku).first()
    if product is None:
        raise CatalogError(f"Product {sku} not found")
    return product


def get_product_by_id(restaurant_id: int, product_id: int, *, require_active: bool = False) -> Product:
    try:
        product = require_owned(db.session.get(Product, product_id), restaurant_id, "Product")
    except TenantAccessError as exc:
        raise CatalogError(str(exc)) from exc
    if require_active and not product.is_active:
        raise CatalogError("Product is inactive")
    return product
