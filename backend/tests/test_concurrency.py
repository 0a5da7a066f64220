"""
Unit-of-work tests: retries on write conflicts, constraint mapping and
rollback of partial work.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.orm.exc import StaleDataError

from distribuidora import create_app
from distribuidora.errors import ConflictError, InsufficientStockError, IntegrityError, ValidationError
from distribuidora.extensions import db
from distribuidora.models import CashSession, Product, Sale, Warehouse
from distribuidora.services import cash_service, inventory_service, sales_service
from distribuidora.services.concurrency import run_in_transaction

from conftest import stock


def test_conflict_is_retried_then_succeeds(db_session):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("row changed underneath")
        return "done"

    assert run_in_transaction(flaky, attempts=3, backoff_base=0) == "done"
    assert len(calls) == 3


def test_persistent_conflict_becomes_conflict_error(db_session):
    calls = []

    def always_stale():
        calls.append(1)
        raise StaleDataError("row changed underneath")

    with pytest.raises(ConflictError):
        run_in_transaction(always_stale, attempts=2, backoff_base=0)
    assert len(calls) == 2


def test_store_constraint_becomes_integrity_error(db_session, warehouse):
    def duplicate_code():
        db.session.add(Warehouse(code=warehouse.code, name="Copia"))
        db.session.flush()

    with pytest.raises(IntegrityError) as exc_info:
        run_in_transaction(duplicate_code, attempts=2, backoff_base=0)
    assert exc_info.value.status_code == 409
    assert db_session.query(Warehouse).count() == 1


def test_sqlalchemy_integrity_error_is_not_leaked(db_session):
    def raise_raw():
        raise SAIntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    with pytest.raises(IntegrityError):
        run_in_transaction(raise_raw, attempts=1, backoff_base=0)


def test_domain_errors_are_not_retried(db_session, warehouse):
    calls = []

    def invalid():
        calls.append(1)
        db.session.add(Warehouse(code="TEMP", name="Temporal"))
        db.session.flush()
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        run_in_transaction(invalid, attempts=3, backoff_base=0)
    assert len(calls) == 1
    assert db_session.query(Warehouse).filter_by(code="TEMP").count() == 0


def test_stale_stock_level_update_is_detected(db_session, product, warehouse):
    stock(product, warehouse, 10)
    level = inventory_service.ensure_stock_level(product.id, warehouse.id)
    db_session.commit()
    assert level.on_hand == 10

    # Another writer bumps the row version behind this session's back
    db_session.execute(
        db.text("UPDATE stock_levels SET on_hand = 3, version_id = version_id + 1 WHERE id = :id"),
        {"id": level.id},
    )
    level.on_hand = 99

    with pytest.raises(StaleDataError):
        db_session.flush()
    db_session.rollback()


def test_open_session_index_backs_the_registry(db_session, warehouse):
    cash_service.open_session(warehouse_id=warehouse.id)

    def second_open_row():
        db.session.add(CashSession(warehouse_id=warehouse.id, opening_amount=0))
        db.session.flush()

    with pytest.raises(IntegrityError):
        run_in_transaction(second_open_row, attempts=1, backoff_base=0)
    assert db_session.query(CashSession).count() == 1


@pytest.fixture
def file_app(tmp_path):
    """App on a file database so two sessions hold separate connections."""
    race_app = create_app(
        TESTING=True,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'race.db'}",
        CASH_AUTO_OPEN_ON_START=False,
        TX_RETRY_BACKOFF=0,
    )
    with race_app.app_context():
        db.create_all()
        yield race_app
        db.session.remove()
        db.engine.dispose()


def test_competing_sales_revalidate_stock(file_app, monkeypatch):
    warehouse = Warehouse(code="PRINCIPAL", name="Bodega Principal", is_primary=True)
    product = Product(sku="ARROZ-1", name="Arroz", cost=Decimal("4.00"), default_price=Decimal("10.00"))
    db.session.add_all([warehouse, product])
    db.session.commit()
    stock(product, warehouse, 5)
    warehouse_id, product_id = warehouse.id, product.id

    check_stock = sales_service.validate_stock
    rival_sales = []

    def validate_then_lose_the_race(wh_id, lines):
        check_stock(wh_id, lines)
        if rival_sales:
            return
        rival_sales.append(None)
        # A second cashier's sale commits on its own session between our check and our write
        with file_app.app_context():
            rival = sales_service.create_sale(
                warehouse_id=warehouse_id, items=[{"product_id": product_id, "quantity": 4}]
            )
            rival_sales[0] = rival.id

    monkeypatch.setattr(sales_service, "validate_stock", validate_then_lose_the_race)

    with pytest.raises(InsufficientStockError) as exc_info:
        sales_service.create_sale(warehouse_id=warehouse_id, items=[{"product_id": product_id, "quantity": 5}])

    assert exc_info.value.available == 1
    assert exc_info.value.requested == 5
    assert rival_sales[0] is not None
    db.session.expire_all()
    assert inventory_service.get_on_hand(product_id, warehouse_id) == 1
    assert inventory_service.get_movement_balance(product_id, warehouse_id) == 1
    assert [sale.id for sale in db.session.query(Sale).all()] == rival_sales
