"""Credit order (fiado) lifecycle tests."""

from decimal import Decimal

import pytest

from distribuidora.errors import ConflictError, InsufficientStockError, ValidationError
from distribuidora.models import CashMovement, InventoryMovement, Order, Sale
from distribuidora.services import cash_service, inventory_service, order_service, reconciliation_service, sales_service

from conftest import stock


def _order(product, warehouse, quantity=2):
    return order_service.create_order(
        warehouse_id=warehouse.id,
        customer_name="Doña Rosa",
        customer_phone="555-0101",
        items=[{"product_id": product.id, "quantity": quantity}],
    )


def test_create_order_debits_stock(db_session, product, warehouse):
    stock(product, warehouse, 10)

    order = _order(product, warehouse, quantity=4)

    assert order.status == "PENDING"
    assert order.total == Decimal("40.00")
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 6
    movement = db_session.query(InventoryMovement).filter_by(reference_id=f"ORDER-{order.id}").one()
    assert movement.quantity == -4


def test_create_order_requires_customer_and_stock(db_session, product, warehouse):
    with pytest.raises(ValidationError):
        order_service.create_order(
            warehouse_id=warehouse.id, customer_name=" ", items=[{"product_id": product.id, "quantity": 1}]
        )
    with pytest.raises(InsufficientStockError):
        _order(product, warehouse, quantity=1)
    assert db_session.query(Order).count() == 0


def test_pay_order_creates_sale_without_moving_stock(db_session, product, warehouse, cashier):
    stock(product, warehouse, 10)
    order = _order(product, warehouse, quantity=3)
    session = cash_service.open_session(warehouse_id=warehouse.id, user_id=cashier.id)
    movements_before = db_session.query(InventoryMovement).count()

    paid = order_service.pay_order(order.id, payment_method="efectivo", user_id=cashier.id, cash_session=session)

    assert paid.status == "PAID"
    assert paid.paid_at is not None
    sale = db_session.get(Sale, paid.sale_id)
    assert sale.order_id == order.id
    assert sale.total == Decimal("30.00")
    assert [item.base_quantity for item in sale.items] == [3]
    assert db_session.query(InventoryMovement).count() == movements_before
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 7

    posting = db_session.query(CashMovement).filter_by(reference_type="ORDER").one()
    assert posting.amount == Decimal("30.00")
    assert posting.reference_id == str(order.id)


def test_transfer_payment_posts_no_cash(db_session, product, warehouse, cashier):
    stock(product, warehouse, 10)
    order = _order(product, warehouse)
    session = cash_service.open_session(warehouse_id=warehouse.id, user_id=cashier.id)

    order_service.pay_order(order.id, payment_method="transferencia", cash_session=session)

    assert db_session.query(CashMovement).count() == 0


@pytest.mark.parametrize("method", ["Efectivo", "CASH", " efectivo "])
def test_cash_payment_method_is_case_insensitive(db_session, product, warehouse, cashier, method):
    stock(product, warehouse, 10)
    order = _order(product, warehouse)
    session = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=0, user_id=cashier.id)

    order_service.pay_order(order.id, payment_method=method, cash_session=session)

    posting = db_session.query(CashMovement).filter_by(reference_type="ORDER").one()
    assert posting.amount == Decimal("20.00")
    summary = reconciliation_service.preview_session(warehouse.id)
    assert summary.total_fiados_cobrados == Decimal("20.00")
    assert cash_service.drawer_totals(session)["expected"] == summary.expected_cash


def test_order_cannot_be_paid_twice(db_session, product, warehouse):
    stock(product, warehouse, 10)
    order = _order(product, warehouse)
    order_service.pay_order(order.id)

    with pytest.raises(ConflictError):
        order_service.pay_order(order.id)
    assert db_session.query(Sale).count() == 1


def test_cancel_order_restocks(db_session, product, warehouse):
    stock(product, warehouse, 10)
    order = _order(product, warehouse, quantity=5)

    cancelled = order_service.cancel_order(order.id)

    assert cancelled.status == "CANCELLED"
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 10
    assert inventory_service.get_movement_balance(product.id, warehouse.id) == 10

    with pytest.raises(ConflictError):
        order_service.cancel_order(order.id)
    with pytest.raises(ConflictError):
        order_service.pay_order(order.id)


def test_paid_order_cannot_be_cancelled_or_deleted(db_session, product, warehouse):
    stock(product, warehouse, 10)
    order = _order(product, warehouse)
    order_service.pay_order(order.id)

    with pytest.raises(ConflictError):
        order_service.cancel_order(order.id)
    with pytest.raises(ConflictError):
        order_service.delete_order(order.id)
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 8


def test_delete_pending_order_restocks(db_session, product, warehouse):
    stock(product, warehouse, 10)
    order = _order(product, warehouse, quantity=6)

    order_service.delete_order(order.id)

    assert db_session.query(Order).count() == 0
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 10


def test_delete_cancelled_order_does_not_restock_twice(db_session, product, warehouse):
    stock(product, warehouse, 10)
    order = _order(product, warehouse, quantity=6)
    order_service.cancel_order(order.id)

    order_service.delete_order(order.id)

    assert inventory_service.get_on_hand(product.id, warehouse.id) == 10


def test_settling_sale_cannot_be_deleted(db_session, product, warehouse):
    stock(product, warehouse, 10)
    order = _order(product, warehouse)
    paid = order_service.pay_order(order.id)

    with pytest.raises(ConflictError):
        sales_service.delete_sale(paid.sale_id)
    assert db_session.query(Sale).count() == 1


def test_list_orders_by_status_and_search(db_session, product, warehouse):
    stock(product, warehouse, 10)
    first = _order(product, warehouse, quantity=1)
    order_service.create_order(
        warehouse_id=warehouse.id, customer_name="Tienda El Sol", items=[{"product_id": product.id, "quantity": 1}]
    )
    order_service.pay_order(first.id)

    rows, total = order_service.list_orders(status="PENDING")
    assert total == 1
    assert rows[0].customer_name == "Tienda El Sol"

    rows, total = order_service.list_orders(search="rosa")
    assert total == 1
    assert rows[0].id == first.id

    with pytest.raises(ValidationError):
        order_service.list_orders(status="LOST")
