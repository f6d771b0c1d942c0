"""
Pytest fixtures for StockSnap backend tests.

Provides test database setup, users with each role, a small catalog and
an authenticated test client.
"""

import pytest

from stocksnap import create_app
from stocksnap.extensions import db
from stocksnap.models.auth import ROLE_ADMIN, ROLE_SELLER
from stocksnap.services import auth_service, catalog_service, session_service


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'STATS_TIMEZONE': 'UTC',
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
        db.session.expunge_all()


@pytest.fixture(scope='function')
def admin(db_session):
    """Admin user: catalog writes and adjustments."""
    return auth_service.create_user(
        email="admin@stocksnap.test",
        password=TEST_PASSWORD,
        display_name="Admin",
        role=ROLE_ADMIN,
        bcrypt_rounds=4,
    )


@pytest.fixture(scope='function')
def seller(db_session):
    """Seller user: sales and in/out movements only."""
    return auth_service.create_user(
        email="seller@stocksnap.test",
        password=TEST_PASSWORD,
        display_name="Seller",
        role=ROLE_SELLER,
        bcrypt_rounds=4,
    )


def make_product(actor, name, price, *, stock=0, threshold=5, **extra):
    """Create a product through the catalog service; opening stock is an "in" movement."""
    patch = {"name": name, "price": price, "low_stock_threshold": threshold, **extra}
    return catalog_service.create_product(patch, actor.id, initial_stock=stock)


@pytest.fixture(scope='function')
def product_factory(admin):
    """Create extra products owned by the admin fixture."""
    def _make(name, price, **kwargs):
        return make_product(admin, name, price, **kwargs)
    return _make


@pytest.fixture(scope='function')
def product_a(admin):
    """Product A: price 10, 20 on hand."""
    return make_product(admin, "Product A", 10.0, stock=20, barcode="4006381333931")


@pytest.fixture(scope='function')
def product_b(admin):
    """Product B: price 5, 3 on hand."""
    return make_product(admin, "Product B", 5.0, stock=3)


def get_auth_token(user) -> str:
    """Helper to get a bearer token for a user without going through HTTP."""
    _, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(get_auth_token(admin))


@pytest.fixture(scope='function')
def seller_headers(seller):
    return auth_headers(get_auth_token(seller))
