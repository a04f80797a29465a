"""
Pytest fixtures for LedgerDesk backend tests.

Provides an in-memory database, a test client, and factories for the
reference data an invoice needs (currency, customer, users, products).
"""

from decimal import Decimal

import pytest
from ledgerdesk import create_app
from ledgerdesk.extensions import db
from ledgerdesk.models import Currency, Customer, ProductCategory, User
from ledgerdesk.services import products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOW_STOCK_THRESHOLD': 10,
        'MOVEMENT_LIST_LIMIT': 100,
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
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def currency(db_session):
    cur = Currency(code="USD", symbol="$", name="US Dollar")
    db_session.add(cur)
    db_session.commit()
    return cur


@pytest.fixture(scope='function')
def customer(db_session, currency):
    cust = Customer(name="Acme Trading", email="billing@acme.test", currency_id=currency.id)
    db_session.add(cust)
    db_session.commit()
    return cust


@pytest.fixture(scope='function')
def admin(db_session):
    user = User(username="admin", email="admin@ledgerdesk.local", role="admin")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def attendant(db_session):
    user = User(username="attendant", email="attendant@ledgerdesk.local", role="attendant")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def category(db_session):
    cat = ProductCategory(name="Hardware")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def make_product(db_session, currency, admin):
    """Factory: create a product with opening stock recorded as an 'initial' movement."""
    def _make(name="Widget", stock_qty=0, buy_price="5.00", sell_price="9.99", category_id=None):
        return products_service.create_product(
            patch={
                "name": name,
                "type": "both",
                "currency_id": currency.id,
                "stock_qty": stock_qty,
                "buy_price": Decimal(buy_price) if buy_price is not None else None,
                "sell_price": Decimal(sell_price) if sell_price is not None else None,
                "category_id": category_id,
            },
            created_by=admin.id,
        )
    return _make


@pytest.fixture(scope='function')
def product_a(make_product):
    return make_product(name="Product A", stock_qty=10, buy_price="60.00", sell_price="100.00")


@pytest.fixture(scope='function')
def product_b(make_product):
    return make_product(name="Product B", stock_qty=5, buy_price="30.00", sell_price="50.00")


def auth_headers(user) -> dict:
    """Helper to create acting-user headers."""
    return {'X-User-Id': str(user.id)}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture(scope='function')
def attendant_headers(attendant):
    return auth_headers(attendant)
