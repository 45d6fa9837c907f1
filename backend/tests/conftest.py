"""
Pytest fixtures for restaurant ledger backend tests.

Provides test database setup, two-tenant fixtures, chart of accounts,
catalog products, and test client.
"""

import pytest

from restaurant_ledger import create_app
from restaurant_ledger.extensions import db
from restaurant_ledger.models import Product, Restaurant
from restaurant_ledger.services.ledger_service import ensure_default_accounts


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema (Core deletes bypass the immutability hooks)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def restaurant_a(db_session):
    """Create Restaurant A (first tenant)."""
    restaurant = Restaurant(name="Restaurant A - Harbor Grill", code="HARBOR", is_active=True)
    db_session.add(restaurant)
    db_session.commit()
    return restaurant


@pytest.fixture(scope='function')
def restaurant_b(db_session):
    """Create Restaurant B (second tenant)."""
    restaurant = Restaurant(name="Restaurant B - Uptown Deli", code="UPTOWN", is_active=True)
    db_session.add(restaurant)
    db_session.commit()
    return restaurant


@pytest.fixture(scope='function')
def accounts_a(restaurant_a):
    """Default chart of accounts for Restaurant A, keyed by role."""
    return ensure_default_accounts(restaurant_a.id)


@pytest.fixture(scope='function')
def accounts_b(restaurant_b):
    return ensure_default_accounts(restaurant_b.id)


@pytest.fixture(scope='function')
def product_a(db_session, restaurant_a):
    """Catalog product in Restaurant A at 2.50 per unit."""
    product = Product(restaurant_id=restaurant_a.id, sku="FLOUR-1KG", name="Flour 1kg", unit_cost_cents=250)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, restaurant_b):
    product = Product(restaurant_id=restaurant_b.id, sku="FLOUR-1KG", name="Flour 1kg", unit_cost_cents=300)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def headers_a(restaurant_a):
    return {"X-Restaurant-Id": str(restaurant_a.id)}


@pytest.fixture(scope='function')
def headers_b(restaurant_b):
    return {"X-Restaurant-Id": str(restaurant_b.id)}
