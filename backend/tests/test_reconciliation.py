"""
Cash reconciliation tests: the expected-cash formula, difference status,
close authorization and the read-only preview.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from distribuidora.errors import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from distribuidora.models import CashDrawer, CashSession, Expense
from distribuidora.services import (
    cash_service,
    expense_service,
    order_service,
    purchase_service,
    reconciliation_service,
    sales_service,
)
from distribuidora.services.reconciliation_service import classify_payment_method, difference_status

from conftest import PASSWORD, stock


@pytest.fixture
def busy_shift(db_session, product, warehouse, cashier):
    """
    Opening 100, cash sale 50, transfer sale 30, cash expense 20.
    Expected cash at close: 130.
    """
    stock(product, warehouse, 50)
    session = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=100, user_id=cashier.id)
    sales_service.create_sale(
        warehouse_id=warehouse.id,
        items=[{"product_id": product.id, "quantity": 5}],
        payment_method="efectivo",
        cash_session=session,
    )
    sales_service.create_sale(
        warehouse_id=warehouse.id,
        items=[{"product_id": product.id, "quantity": 3}],
        payment_method="transferencia",
    )
    expense_service.create_expense(
        category="transporte", amount=20, payment_method="efectivo", warehouse_id=warehouse.id
    )
    return session


@pytest.mark.parametrize("method,expected", [
    (None, "cash"),
    ("", "cash"),
    ("Efectivo", "cash"),
    ("cash", "cash"),
    ("transferencia", "transfer"),
    ("TRANSFER", "transfer"),
    ("nequi", "other"),
])
def test_classify_payment_method(method, expected):
    assert classify_payment_method(method) == expected


def test_difference_status():
    assert difference_status(Decimal("0.00")) == "CUADRADO"
    assert difference_status(Decimal("0.01")) == "SOBRANTE"
    assert difference_status(Decimal("-0.01")) == "FALTANTE"


def test_balanced_close(db_session, busy_shift, warehouse, cashier):
    closed, summary = reconciliation_service.close_session(
        warehouse_id=warehouse.id, closing_amount="130.00", username=cashier.username, password=PASSWORD
    )

    assert summary.opening_amount == Decimal("100.00")
    assert summary.total_sales == Decimal("80.00")
    assert summary.total_cash == Decimal("50.00")
    assert summary.total_transfer == Decimal("30.00")
    assert summary.sales_count == 2
    assert summary.total_expenses_cash == Decimal("20.00")
    assert summary.expected_cash == Decimal("130.00")
    assert summary.cash_difference == Decimal("0.00")
    assert summary.difference_status == "CUADRADO"

    # 8 units at cost 4.00
    assert summary.total_cost == Decimal("32.00")
    assert summary.gross_profit == Decimal("48.00")

    assert closed.closed_at is not None
    assert closed.closed_by_user_id == cashier.id
    assert closed.expected_cash == Decimal("130.00")
    assert closed.closing_amount == Decimal("130.00")
    assert closed.total_transfer == Decimal("30.00")
    assert cash_service.get_open_session(warehouse.id) is None
    assert db_session.query(CashDrawer).filter_by(warehouse_id=warehouse.id).one().open_session_id is None


def test_over_and_short(db_session, busy_shift, warehouse, cashier):
    over = reconciliation_service.preview_session(warehouse.id, counted=140)
    assert over.cash_difference == Decimal("10.00")
    assert over.difference_status == "SOBRANTE"

    _, short = reconciliation_service.close_session(
        warehouse_id=warehouse.id, closing_amount="125.50", username=cashier.username, password=PASSWORD
    )
    assert short.cash_difference == Decimal("-4.50")
    assert short.difference_status == "FALTANTE"


def test_preview_writes_nothing(db_session, busy_shift, warehouse):
    summary = reconciliation_service.preview_session(warehouse.id)

    assert summary.expected_cash == Decimal("130.00")
    assert summary.counted_cash is None
    assert summary.difference_status is None
    db_session.expire_all()
    session = db_session.get(CashSession, busy_shift.id)
    assert session.closed_at is None
    assert session.expected_cash is None


def test_summary_to_dict_serializes_amounts_as_strings(db_session, busy_shift, warehouse):
    data = reconciliation_service.preview_session(warehouse.id, counted=130).to_dict()

    assert data["expected_cash"] == "130.00"
    assert data["difference_status"] == "CUADRADO"
    assert data["window_start"].endswith("Z")


def test_wrong_password_is_rejected_and_session_stays_open(db_session, busy_shift, warehouse, cashier):
    with pytest.raises(AuthenticationError) as exc_info:
        reconciliation_service.close_session(
            warehouse_id=warehouse.id, closing_amount=130, username=cashier.username, password="wrong-password"
        )
    assert exc_info.value.status_code == 401
    assert cash_service.get_open_session(warehouse.id).id == busy_shift.id


def test_other_cashier_cannot_close(db_session, busy_shift, warehouse, other_cashier):
    with pytest.raises(AuthorizationError):
        reconciliation_service.close_session(
            warehouse_id=warehouse.id, closing_amount=130, username=other_cashier.username, password=PASSWORD
        )
    assert cash_service.get_open_session(warehouse.id) is not None


def test_elevated_user_can_close_someone_elses_session(db_session, busy_shift, warehouse, admin):
    closed, summary = reconciliation_service.close_session(
        warehouse_id=warehouse.id, closing_amount=130, username=admin.username, password=PASSWORD
    )
    assert closed.closed_by_user_id == admin.id
    assert summary.difference_status == "CUADRADO"


def test_close_without_open_session(db_session, warehouse, cashier):
    with pytest.raises(NotFoundError):
        reconciliation_service.close_session(
            warehouse_id=warehouse.id, closing_amount=0, username=cashier.username, password=PASSWORD
        )


def test_closing_amount_is_required(db_session, busy_shift, warehouse, cashier):
    with pytest.raises(ValidationError):
        reconciliation_service.close_session(
            warehouse_id=warehouse.id, closing_amount=None, username=cashier.username, password=PASSWORD
        )


def test_credit_orders_in_the_window(db_session, product, warehouse, cashier):
    stock(product, warehouse, 20)
    cash_service.open_session(warehouse_id=warehouse.id, opening_amount=0, user_id=cashier.id)
    paid = order_service.create_order(
        warehouse_id=warehouse.id, customer_name="Don Pedro", items=[{"product_id": product.id, "quantity": 2}]
    )
    order_service.create_order(
        warehouse_id=warehouse.id, customer_name="Doña Ana", items=[{"product_id": product.id, "quantity": 4}]
    )
    order_service.pay_order(paid.id, payment_method="efectivo")

    summary = reconciliation_service.preview_session(warehouse.id)

    assert summary.total_fiados == Decimal("40.00")
    assert summary.total_fiados_cobrados == Decimal("20.00")
    # The settling sale is counted once, through fiados cobrados
    assert summary.total_sales == Decimal("0.00")
    assert summary.sales_count == 0
    assert summary.expected_cash == Decimal("20.00")


def test_cash_purchases_and_loans_reduce_expected(db_session, product, warehouse, cashier):
    cash_service.open_session(warehouse_id=warehouse.id, opening_amount=500, user_id=cashier.id)
    purchase_service.receive_purchase(
        warehouse_id=warehouse.id,
        items=[{"product_id": product.id, "quantity": 10, "unit_cost": "4.00"}],
    )
    purchase_service.receive_purchase(
        warehouse_id=warehouse.id,
        items=[{"product_id": product.id, "quantity": 10, "unit_cost": "4.00"}],
        payment_method="transferencia",
    )
    expense_service.create_loan(borrower_name="Luis", amount=60, payment_method="efectivo", warehouse_id=warehouse.id)

    summary = reconciliation_service.preview_session(warehouse.id)

    assert summary.total_purchases_cash == Decimal("40.00")
    assert summary.total_loans_cash == Decimal("60.00")
    assert summary.expected_cash == Decimal("400.00")


def test_non_cash_and_foreign_warehouse_expenses_are_ignored(db_session, warehouse, branch, cashier):
    cash_service.open_session(warehouse_id=warehouse.id, opening_amount=100, user_id=cashier.id)
    expense_service.create_expense(category="luz", amount=30, payment_method="transferencia", warehouse_id=warehouse.id)
    expense_service.create_expense(category="agua", amount=15, payment_method="efectivo", warehouse_id=branch.id)
    expense_service.create_expense(category="aseo", amount=5)

    summary = reconciliation_service.preview_session(warehouse.id)

    # Only the warehouse-less cash expense counts
    assert summary.total_expenses_cash == Decimal("5.00")
    assert summary.expected_cash == Decimal("95.00")


def test_expense_created_before_the_session_is_outside_the_window(db_session, warehouse, cashier):
    session = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=100, user_id=cashier.id)
    expense = expense_service.create_expense(
        category="arriendo", amount=50, payment_method="efectivo", warehouse_id=warehouse.id
    )
    expense.created_at = session.opened_at - timedelta(hours=1)
    db_session.commit()

    summary = reconciliation_service.preview_session(warehouse.id)

    assert summary.total_expenses_cash == Decimal("0.00")
    assert summary.expected_cash == Decimal("100.00")
    assert db_session.query(Expense).count() == 1


def test_manual_movements_are_not_part_of_expected_cash(db_session, warehouse, cashier):
    session = cash_service.open_session(warehouse_id=warehouse.id, opening_amount=100, user_id=cashier.id)
    cash_service.record_manual_movement(warehouse_id=warehouse.id, type="IN", amount=40)

    summary = reconciliation_service.preview_session(warehouse.id)

    assert summary.expected_cash == Decimal("100.00")
    assert cash_service.drawer_totals(session)["expected"] == Decimal("140.00")


def test_uncollected_credit_order_does_not_change_expected_cash(db_session, product, warehouse, cashier):
    stock(product, warehouse, 10)
    cash_service.open_session(warehouse_id=warehouse.id, opening_amount=100000, user_id=cashier.id)
    sales_service.create_sale(
        warehouse_id=warehouse.id,
        items=[{"product_id": product.id, "quantity": 1, "unit_price": 50000}],
    )
    order_service.create_order(
        warehouse_id=warehouse.id,
        customer_name="Tienda La Esquina",
        items=[{"product_id": product.id, "quantity": 1, "unit_price": 30000}],
    )

    summary = reconciliation_service.preview_session(warehouse.id, counted=150000)
    assert summary.total_fiados == Decimal("30000.00")
    assert summary.expected_cash == Decimal("150000.00")
    assert summary.difference_status == "CUADRADO"

    expense_service.create_expense(category="fletes", amount=20000, warehouse_id=warehouse.id)

    _, summary = reconciliation_service.close_session(
        warehouse_id=warehouse.id, closing_amount=150000, username=cashier.username, password=PASSWORD
    )
    assert summary.expected_cash == Decimal("130000.00")
    assert summary.cash_difference == Decimal("20000.00")
    assert summary.difference_status == "SOBRANTE"
