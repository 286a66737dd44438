"""
Pytest fixtures for storefront backend tests.

Provides an in-memory application, a per-test table wipe, seeded users and
products, and helpers to drive orders through their lifecycle.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Product, User
from storefront.models.auth import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_PRODUCT_MANAGER
from storefront.services import cart_service, checkout_service, order_service, session_service
from storefront.services.auth_service import hash_password


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
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


def _make_user(db_session, email: str, role: str) -> User:
    user = User(email=email, password_hash=hash_password(TEST_PASSWORD), role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    return _make_user(db_session, "alice@example.com", ROLE_CUSTOMER)


@pytest.fixture(scope='function')
def other_customer(db_session):
    return _make_user(db_session, "bob@example.com", ROLE_CUSTOMER)


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user(db_session, "admin@example.com", ROLE_ADMIN)


@pytest.fixture(scope='function')
def product_manager(db_session):
    return _make_user(db_session, "pm@example.com", ROLE_PRODUCT_MANAGER)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(price_cents=..., stock=..., critical_stock_level=...)."""
    counter = {"n": 0}

    def _make(price_cents=1000, stock=10, critical_stock_level=0, is_active=True, name=None):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            price_cents=price_cents,
            stock=stock,
            critical_stock_level=critical_stock_level,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def place_order(db_session):
    """Factory: place_order(user, [(product, count), ...]) -> Order."""
    def _place(user, lines, address="1 Main Street, Springfield"):
        for product, count in lines:
            cart_service.add_item(db_session, user.id, product.id, count)
        return checkout_service.checkout(db_session, user.id, address)

    return _place


@pytest.fixture(scope='function')
def ship_order(db_session, admin):
    """Drive a Pending order to Shipped (or Completed)."""
    def _ship(order, complete=False):
        order_service.mark_paid(db_session, order.id, admin.id)
        order_service.mark_shipped(db_session, order.id, admin.id)
        if complete:
            order_service.mark_completed(db_session, order.id, admin.id)
        return order

    return _ship


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory: bearer headers for an existing user."""
    def _headers(user):
        _, token = session_service.create_session(db_session, user.id)
        return auth_headers(token)

    return _headers
