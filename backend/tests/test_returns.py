"""
Product return tests: restocking, cash refunds, sale and credit order
status, reversal, and their effect on cash reconciliation.
"""

from decimal import Decimal

import pytest

from distribuidora.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from distribuidora.models import CashMovement, InventoryMovement, Order, ProductReturn, Sale
from distribuidora.services import (
    cash_service,
    inventory_service,
    order_service,
    reconciliation_service,
    return_service,
    sales_service,
)

from conftest import PASSWORD, stock


def _cash_sale(product, warehouse, session, quantity=5, payment_method=None):
    return sales_service.create_sale(
        warehouse_id=warehouse.id,
        items=[{"product_id": product.id, "quantity": quantity}],
        payment_method=payment_method,
        cash_session=session,
    )


def test_partial_return_restocks_and_refunds_cash(db_session, product, warehouse, cashier):
    stock(product, warehouse, 20)
    session = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=100, user_id=cashier.id)
    sale = _cash_sale(product, warehouse, session)

    product_return = return_service.create_return(
        warehouse_id=warehouse.id,
        sale_id=sale.id,
        product_id=product.id,
        quantity=2,
        reason="Empaque roto",
        cash_session=session,
    )

    assert inventory_service.get_on_hand(product.id, warehouse.id) == 17
    assert product_return.base_quantity == 2
    assert product_return.unit_price == Decimal("10.00")
    assert product_return.total == Decimal("20.00")

    movement = db_session.query(InventoryMovement).filter_by(reference_id=f"RETURN-{product_return.id}").one()
    assert movement.type == "IN"
    assert movement.quantity == 2

    refund = db_session.query(CashMovement).filter_by(reference_type="RETURN").one()
    assert refund.type == "OUT"
    assert refund.amount == Decimal("20.00")
    assert refund.session_id == session.id
    assert refund.reference_id == str(product_return.id)

    assert db_session.get(Sale, sale.id).status == "COMPLETED"

    summary = reconciliation_service.preview_session(warehouse.id)
    assert summary.total_cash == Decimal("50.00")
    assert summary.total_returns_cash == Decimal("20.00")
    assert summary.expected_cash == Decimal("130.00")
    assert cash_service.drawer_totals(session)["expected"] == summary.expected_cash


def test_full_return_marks_sale_returned(db_session, product, warehouse, cashier):
    stock(product, warehouse, 20)
    session = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=100, user_id=cashier.id)
    sale = _cash_sale(product, warehouse, session)

    return_service.create_return(
        warehouse_id=warehouse.id, sale_id=sale.id, product_id=product.id, quantity=3,
        reason="Cliente desistió", cash_session=session,
    )
    return_service.create_return(
        warehouse_id=warehouse.id, sale_id=sale.id, product_id=product.id, quantity=2,
        reason="Cliente desistió", cash_session=session,
    )

    assert db_session.get(Sale, sale.id).status == "RETURNED"
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 20

    summary = reconciliation_service.preview_session(warehouse.id)
    assert summary.total_sales == Decimal("0.00")
    assert summary.sales_count == 0
    assert summary.total_cost == Decimal("0.00")
    assert summary.total_returns_cash == Decimal("0.00")
    assert summary.expected_cash == Decimal("100.00")
    assert cash_service.drawer_totals(session)["expected"] == Decimal("100.00")


def test_return_of_paid_credit_order_flips_order(db_session, product, warehouse, cashier):
    stock(product, warehouse, 10)
    session = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=0, user_id=cashier.id)
    order = order_service.create_order(
        warehouse_id=warehouse.id, customer_name="Don Pedro", items=[{"product_id": product.id, "quantity": 2}]
    )
    paid = order_service.pay_order(order.id, payment_method="efectivo", cash_session=session)

    return_service.create_return(
        warehouse_id=warehouse.id,
        sale_id=paid.sale_id,
        product_id=product.id,
        quantity=2,
        reason="Producto vencido",
        cash_session=session,
    )

    assert db_session.get(Order, order.id).status == "RETURNED"
    assert db_session.get(Sale, paid.sale_id).status == "RETURNED"
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 10

    summary = reconciliation_service.preview_session(warehouse.id)
    assert summary.total_fiados_cobrados == Decimal("0.00")
    assert summary.total_returns_cash == Decimal("0.00")
    assert summary.expected_cash == Decimal("0.00")
    assert cash_service.drawer_totals(session)["expected"] == Decimal("0.00")

    with pytest.raises(ConflictError):
        order_service.cancel_order(order.id)
    with pytest.raises(ConflictError):
        order_service.delete_order(order.id)
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 10


def test_return_is_bounded_by_what_the_sale_sold(db_session, product, other_product, warehouse):
    stock(product, warehouse, 10)
    stock(other_product, warehouse, 10)
    sale = sales_service.create_sale(
        warehouse_id=warehouse.id, items=[{"product_id": product.id, "quantity": 3}]
    )
    return_service.create_return(
        warehouse_id=warehouse.id, sale_id=sale.id, product_id=product.id, quantity=2, reason="Dañado"
    )

    with pytest.raises(ValidationError) as exc_info:
        return_service.create_return(
            warehouse_id=warehouse.id, sale_id=sale.id, product_id=product.id, quantity=2, reason="Dañado"
        )
    assert exc_info.value.details["already_returned"] == 2
    assert exc_info.value.details["sold"] == 3

    with pytest.raises(ValidationError):
        return_service.create_return(
            warehouse_id=warehouse.id, sale_id=sale.id, product_id=other_product.id, quantity=1, reason="Dañado"
        )
    with pytest.raises(ValidationError):
        return_service.create_return(
            warehouse_id=warehouse.id, sale_id=sale.id, product_id=product.id, quantity=1, reason=" "
        )
    with pytest.raises(NotFoundError):
        return_service.create_return(
            warehouse_id=warehouse.id, sale_id=987654, product_id=product.id, quantity=1, reason="Dañado"
        )

    assert db_session.query(ProductReturn).count() == 1
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 9


def test_return_against_sale_of_another_warehouse(db_session, product, warehouse, branch):
    stock(product, warehouse, 5)
    sale = sales_service.create_sale(warehouse_id=warehouse.id, items=[{"product_id": product.id, "quantity": 1}])

    with pytest.raises(ValidationError):
        return_service.create_return(
            warehouse_id=branch.id, sale_id=sale.id, product_id=product.id, quantity=1, reason="Error"
        )
    assert inventory_service.get_on_hand(product.id, branch.id) == 0


def test_transfer_sale_refund_posts_no_cash(db_session, product, warehouse, cashier):
    stock(product, warehouse, 10)
    session = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=50, user_id=cashier.id)
    sale = _cash_sale(product, warehouse, None, quantity=2, payment_method="transferencia")

    product_return = return_service.create_return(
        warehouse_id=warehouse.id, sale_id=sale.id, product_id=product.id, quantity=1,
        reason="Talla equivocada", cash_session=session,
    )

    assert product_return.refund_method == "transferencia"
    assert db_session.query(CashMovement).count() == 0
    summary = reconciliation_service.preview_session(warehouse.id)
    assert summary.total_returns_cash == Decimal("0.00")
    assert summary.expected_cash == Decimal("50.00")


def test_return_without_sale_uses_presentation_multiplier(db_session, product, box, warehouse):
    product_return = return_service.create_return(
        warehouse_id=warehouse.id,
        product_id=product.id,
        presentation_id=box.id,
        quantity=1,
        reason="Devolución de tienda",
    )

    assert product_return.base_quantity == 12
    assert product_return.total == Decimal("100.00")
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 12

    with pytest.raises(ValidationError):
        return_service.create_return(
            warehouse_id=warehouse.id,
            product_id=product.id,
            presentation_id=box.id,
            quantity=1,
            stock_quantity=10,
            reason="Devolución de tienda",
        )


def test_refund_of_an_earlier_shift_sale_reduces_expected_cash(db_session, product, warehouse, cashier):
    stock(product, warehouse, 10)
    first = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=100, user_id=cashier.id)
    sale = _cash_sale(product, warehouse, first)
    reconciliation_service.close_session(
        warehouse_id=warehouse.id, closing_amount=150, username=cashier.username, password=PASSWORD
    )

    second = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=150, user_id=cashier.id)
    return_service.create_return(
        warehouse_id=warehouse.id, sale_id=sale.id, product_id=product.id, quantity=5,
        reason="Lote defectuoso", cash_session=second,
    )

    summary = reconciliation_service.preview_session(warehouse.id)
    assert db_session.get(Sale, sale.id).status == "RETURNED"
    assert summary.total_returns_cash == Decimal("50.00")
    assert summary.expected_cash == Decimal("100.00")
    assert cash_service.drawer_totals(second)["expected"] == Decimal("100.00")


def test_delete_return_reverses_everything(db_session, product, warehouse, cashier):
    stock(product, warehouse, 10)
    session = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=0, user_id=cashier.id)
    order = order_service.create_order(
        warehouse_id=warehouse.id, customer_name="Doña Ana", items=[{"product_id": product.id, "quantity": 3}]
    )
    paid = order_service.pay_order(order.id, cash_session=session)
    product_return = return_service.create_return(
        warehouse_id=warehouse.id, sale_id=paid.sale_id, product_id=product.id, quantity=3,
        reason="Pedido equivocado", cash_session=session,
    )
    assert db_session.get(Order, order.id).status == "RETURNED"

    return_service.delete_return(product_return.id)

    assert db_session.query(ProductReturn).count() == 0
    assert db_session.get(Sale, paid.sale_id).status == "COMPLETED"
    assert db_session.get(Order, order.id).status == "PAID"
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 7
    assert db_session.query(CashMovement).filter_by(reference_type="RETURN").count() == 0

    cancel = db_session.query(InventoryMovement).filter_by(reference_id=f"RETURN-CANCEL-{product_return.id}").one()
    assert cancel.quantity == -3
    assert inventory_service.get_movement_balance(product.id, warehouse.id) == 7


def test_delete_return_fails_when_goods_left_again(db_session, product, warehouse):
    product_return = return_service.create_return(
        warehouse_id=warehouse.id, product_id=product.id, quantity=3, reason="Sobrante de ruta"
    )
    inventory_service.apply_movement(product_id=product.id, warehouse_id=warehouse.id, quantity=3, type="OUT")

    with pytest.raises(InsufficientStockError):
        return_service.delete_return(product_return.id)
    assert db_session.query(ProductReturn).count() == 1
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 0


def test_sale_with_returns_cannot_be_deleted(db_session, product, warehouse):
    stock(product, warehouse, 5)
    sale = sales_service.create_sale(warehouse_id=warehouse.id, items=[{"product_id": product.id, "quantity": 2}])
    return_service.create_return(
        warehouse_id=warehouse.id, sale_id=sale.id, product_id=product.id, quantity=1, reason="Dañado"
    )

    with pytest.raises(ConflictError):
        sales_service.delete_sale(sale.id)
    assert db_session.get(Sale, sale.id) is not None
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 4


def test_list_and_summarize_returns(db_session, product, warehouse, branch):
    return_service.create_return(warehouse_id=warehouse.id, product_id=product.id, quantity=1, reason="Vencido")
    return_service.create_return(warehouse_id=warehouse.id, product_id=product.id, quantity=2, reason="Vencido")
    return_service.create_return(warehouse_id=branch.id, product_id=product.id, quantity=1, reason="Dañado")

    rows, total = return_service.list_returns(warehouse_id=warehouse.id)
    assert total == 2
    assert all(row.warehouse_id == warehouse.id for row in rows)

    summary = return_service.returns_summary()
    assert summary["total_returns"] == 3
    assert summary["total_amount"] == Decimal("40.00")
    assert [(row["reason"], row["count"]) for row in summary["by_reason"]] == [("Dañado", 1), ("Vencido", 2)]
