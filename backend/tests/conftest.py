"""
Pytest fixtures for the distribuidora backend tests.

Provides an in-memory database, a per-test table wipe, catalog/user
fixtures and the test client.
"""

from decimal import Decimal

import pytest

from distribuidora import create_app
from distribuidora.extensions import db
from distribuidora.models import Presentation, Product, User, Warehouse
from distribuidora.models.auth import ROLE_ADMIN, ROLE_CASHIER
from distribuidora.services import inventory_service
from distribuidora.services.auth_service import hash_password

PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(
        TESTING=True,
        SQLALCHEMY_DATABASE_URI='sqlite:///:memory:',
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        CASH_AUTO_OPEN_ON_START=False,
        TX_RETRY_BACKOFF=0,
    )

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
        db.session.remove()


@pytest.fixture(scope='function')
def warehouse(db_session):
    """Primary warehouse."""
    wh = Warehouse(code="PRINCIPAL", name="Bodega Principal", is_primary=True)
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture(scope='function')
def branch(db_session):
    """Second warehouse."""
    wh = Warehouse(code="SUCURSAL", name="Sucursal Norte")
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture(scope='function')
def product(db_session):
    """Product sold by the unit: cost 4.00, price 10.00."""
    p = Product(sku="ARROZ-1", name="Arroz", base_unit="unidad", cost=Decimal("4.00"), default_price=Decimal("10.00"))
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def other_product(db_session):
    p = Product(sku="FRIJOL-1", name="Frijol", base_unit="unidad", cost=Decimal("2.50"), default_price=Decimal("6.00"))
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def box(db_session, product):
    """Box of 12 units of product, priced 100.00."""
    pres = Presentation(product_id=product.id, name="Caja x12", units_per_presentation=12, price=Decimal("100.00"))
    db_session.add(pres)
    db_session.commit()
    return pres


def _make_user(db_session, username, role):
    user = User(username=username, name=username.title(), password_hash=hash_password(PASSWORD), role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user(db_session, "admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def cashier(db_session):
    return _make_user(db_session, "cajero", ROLE_CASHIER)


@pytest.fixture(scope='function')
def other_cashier(db_session):
    return _make_user(db_session, "cajera2", ROLE_CASHIER)


def stock(product, warehouse, quantity, min_stock=None):
    """Put quantity base units of product in warehouse through the ledger."""
    inventory_service.apply_movement(
        product_id=product.id,
        warehouse_id=warehouse.id,
        quantity=quantity,
        type="IN",
        note="test setup",
    )
    if min_stock is not None:
        inventory_service.set_min_stock(product_id=product.id, warehouse_id=warehouse.id, min_stock=min_stock)


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
