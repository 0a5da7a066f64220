# Overview: End-of-shift cash reconciliation; preview and close of a cash session.

"""
Cash Reconciliation

For the window [opened_at, end] and the session's warehouse:

    expected_cash = opening_amount
                  + total_cash              (non-order sales paid in cash)
                  + total_fiados_cobrados   (credit orders paid in window)
                  - total_expenses_cash
                  - total_purchases_cash
                  - total_loans_cash
                  - total_returns_cash

    cash_difference = counted - expected_cash
    status: CUADRADO (0), SOBRANTE (> 0), FALTANTE (< 0)

Expenses, purchases and loans fall in the window by their creation
timestamp, not their business date. Sales that settle a credit order are
left out of total_sales and total_cash; the payment is counted once,
through total_fiados_cobrados.

Sales marked RETURNED are left out of the sales totals. A cash refund in
the window is subtracted unless the income it reverses was itself dropped
from this window, that is, its sale is RETURNED and was made in the window
(a fully returned credit order no longer counts as collected). Refunds
of sales that still count, or of sales made before the window, are
subtracted, so expected cash follows the drawer.

Manual deposits/withdrawals and loan repayments are not part of the formula;
drawer_totals() in cash_service reports them separately.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import AuthorizationError, ConflictError, ValidationError
from ..extensions import db
from ..models import (
    CashDrawer,
    CashSession,
    Expense,
    Loan,
    Order,
    Product,
    ProductReturn,
    Purchase,
    Sale,
    SaleItem,
)
from ..models.sales import ORDER_PAID, ORDER_PENDING, SALE_RETURNED
from ..money import ZERO, money, to_str
from ..time_utils import to_utc_z, utcnow
from .auth_service import authenticate, is_elevated
from .cash_service import require_open_session
from .concurrency import lock_for_update, run_in_transaction

STATUS_BALANCED = "CUADRADO"
STATUS_OVER = "SOBRANTE"
STATUS_SHORT = "FALTANTE"

CASH_METHOD_NAMES = ("cash", "efectivo")
TRANSFER_METHOD_NAMES = ("transferencia", "transfer")


def classify_payment_method(method: str | None) -> str:
    """'cash', 'transfer' or 'other'. Unset means cash."""
    if method is None or not method.strip():
        return "cash"
    normalized = method.strip().lower()
    if normalized in CASH_METHOD_NAMES:
        return "cash"
    if normalized in TRANSFER_METHOD_NAMES:
        return "transfer"
    return "other"


def difference_status(difference: Decimal) -> str:
    if difference == 0:
        return STATUS_BALANCED
    return STATUS_OVER if difference > 0 else STATUS_SHORT


@dataclass(frozen=True)
class CloseSummary:
    session_id: int
    warehouse_id: int
    window_start: datetime
    window_end: datetime
    opening_amount: Decimal
    total_sales: Decimal
    total_cash: Decimal
    total_transfer: Decimal
    sales_count: int
    total_fiados: Decimal
    total_fiados_cobrados: Decimal
    total_expenses_cash: Decimal
    total_purchases_cash: Decimal
    total_loans_cash: Decimal
    total_returns_cash: Decimal
    total_cost: Decimal
    gross_profit: Decimal
    expected_cash: Decimal
    counted_cash: Decimal | None = None
    cash_difference: Decimal | None = None
    difference_status: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = to_str(value)
        data["window_start"] = to_utc_z(self.window_start)
        data["window_end"] = to_utc_z(self.window_end)
        return data


def _cash_or_unset(column):
    return db.or_(column.is_(None), column == "", func.lower(column).in_(CASH_METHOD_NAMES))


def _sum(query) -> Decimal:
    return money(query.scalar() or 0)


def _returns_cash(warehouse_id: int, start: datetime, end: datetime) -> Decimal:
    refunds = (
        db.session.query(ProductReturn)
        .filter(
            ProductReturn.warehouse_id == warehouse_id,
            _cash_or_unset(ProductReturn.refund_method),
            ProductReturn.created_at >= start,
            ProductReturn.created_at <= end,
        )
        .all()
    )
    total = ZERO
    for refund in refunds:
        sale = refund.sale
        if sale is not None and sale.status == SALE_RETURNED and start <= sale.created_at <= end:
            # The sale income left the window with it
            continue
        total += money(refund.total)
    return total


def compute_summary(session: CashSession, counted=None, end: datetime | None = None) -> CloseSummary:
    """Reads only. counted=None leaves the difference fields unset."""
    start = session.opened_at
    end = end or utcnow()
    warehouse_id = session.warehouse_id

    sales = (
        db.session.query(Sale.id, Sale.total, Sale.payment_method)
        .filter(
            Sale.warehouse_id == warehouse_id,
            Sale.order_id.is_(None),
            Sale.status != SALE_RETURNED,
            Sale.created_at >= start,
            Sale.created_at <= end,
        )
        .all()
    )
    total_sales = ZERO
    total_cash = ZERO
    total_transfer = ZERO
    for row in sales:
        amount = money(row.total)
        total_sales += amount
        kind = classify_payment_method(row.payment_method)
        if kind == "cash":
            total_cash += amount
        elif kind == "transfer":
            total_transfer += amount

    total_cost = _sum(
        db.session.query(func.coalesce(func.sum(SaleItem.base_quantity * Product.cost), 0))
        .join(Sale, SaleItem.sale_id == Sale.id)
        .join(Product, SaleItem.product_id == Product.id)
        .filter(
            Sale.warehouse_id == warehouse_id,
            Sale.order_id.is_(None),
            Sale.status != SALE_RETURNED,
            Sale.created_at >= start,
            Sale.created_at <= end,
        )
    )

    total_fiados = _sum(
        db.session.query(func.coalesce(func.sum(Order.total), 0)).filter(
            Order.warehouse_id == warehouse_id,
            Order.status == ORDER_PENDING,
            Order.created_at >= start,
            Order.created_at <= end,
        )
    )
    total_fiados_cobrados = _sum(
        db.session.query(func.coalesce(func.sum(Order.total), 0)).filter(
            Order.warehouse_id == warehouse_id,
            Order.status == ORDER_PAID,
            Order.paid_at >= start,
            Order.paid_at <= end,
        )
    )

    total_expenses_cash = _sum(
        db.session.query(func.coalesce(func.sum(Expense.amount), 0)).filter(
            db.or_(Expense.warehouse_id == warehouse_id, Expense.warehouse_id.is_(None)),
            _cash_or_unset(Expense.payment_method),
            Expense.created_at >= start,
            Expense.created_at <= end,
        )
    )
    total_purchases_cash = _sum(
        db.session.query(func.coalesce(func.sum(Purchase.total), 0)).filter(
            Purchase.warehouse_id == warehouse_id,
            _cash_or_unset(Purchase.payment_method),
            Purchase.created_at >= start,
            Purchase.created_at <= end,
        )
    )
    total_loans_cash = _sum(
        db.session.query(func.coalesce(func.sum(Loan.amount), 0)).filter(
            db.or_(Loan.warehouse_id == warehouse_id, Loan.warehouse_id.is_(None)),
            _cash_or_unset(Loan.payment_method),
            Loan.created_at >= start,
            Loan.created_at <= end,
        )
    )
    total_returns_cash = _returns_cash(warehouse_id, start, end)

    opening = money(session.opening_amount)
    expected = (
        opening
        + total_cash
        + total_fiados_cobrados
        - total_expenses_cash
        - total_purchases_cash
        - total_loans_cash
        - total_returns_cash
    )

    counted_cash = difference = status = None
    if counted is not None:
        counted_cash = money(counted, field="closing_amount")
        if counted_cash < 0:
            raise ValidationError("closing_amount cannot be negative")
        difference = counted_cash - expected
        status = difference_status(difference)

    return CloseSummary(
        session_id=session.id,
        warehouse_id=warehouse_id,
        window_start=start,
        window_end=end,
        opening_amount=opening,
        total_sales=total_sales,
        total_cash=total_cash,
        total_transfer=total_transfer,
        sales_count=len(sales),
        total_fiados=total_fiados,
        total_fiados_cobrados=total_fiados_cobrados,
        total_expenses_cash=total_expenses_cash,
        total_purchases_cash=total_purchases_cash,
        total_loans_cash=total_loans_cash,
        total_returns_cash=total_returns_cash,
        total_cost=total_cost,
        gross_profit=total_sales - total_cost,
        expected_cash=expected,
        counted_cash=counted_cash,
        cash_difference=difference,
        difference_status=status,
    )


def preview_session(warehouse_id: int, counted=None) -> CloseSummary:
    """Summary of the open session as if it closed now. No writes."""
    return compute_summary(require_open_session(warehouse_id), counted=counted)


def close_session(
    *,
    warehouse_id: int,
    closing_amount,
    username: str,
    password: str,
    notes: str | None = None,
) -> tuple[CashSession, CloseSummary]:
    """
    Close the warehouse's open session.

    Order of checks: credentials, then the open session, then authorization
    (the opener or an elevated role). Only then is anything locked or
    computed.

    Raises:
        AuthenticationError: bad credentials
        NotFoundError: no open session
        AuthorizationError: user is neither the opener nor elevated
        ConflictError: the session was closed concurrently
    """
    if closing_amount is None:
        raise ValidationError("closing_amount is required")
    user = authenticate(username, password)
    session = require_open_session(warehouse_id)
    if session.opened_by_user_id != user.id and not is_elevated(user):
        raise AuthorizationError(
            "Only the user who opened the session or a manager can close it",
            {"session_id": session.id},
        )
    session_id = session.id

    def _op():
        drawer = lock_for_update(db.session.query(CashDrawer).filter_by(warehouse_id=warehouse_id)).first()
        if drawer is None or drawer.open_session_id != session_id:
            raise ConflictError("Cash session is no longer open", {"session_id": session_id})
        locked = lock_for_update(db.session.query(CashSession).filter_by(id=session_id)).first()
        if locked is None or locked.closed_at is not None:
            raise ConflictError("Cash session is no longer open", {"session_id": session_id})

        end = utcnow()
        summary = compute_summary(locked, counted=closing_amount, end=end)

        locked.closed_at = end
        locked.closed_by_user_id = user.id
        locked.closing_amount = summary.counted_cash
        locked.expected_cash = summary.expected_cash
        locked.cash_difference = summary.cash_difference
        locked.total_sales = summary.total_sales
        locked.total_cash = summary.total_cash
        locked.total_transfer = summary.total_transfer
        locked.total_fiados = summary.total_fiados
        locked.sales_count = summary.sales_count
        locked.notes = notes
        drawer.open_session_id = None
        db.session.flush()
        return locked, summary

    closed, summary = run_in_transaction(_op)
    current_app.logger.info(
        "Cash session %s closed by %s: expected %s, counted %s (%s)",
        closed.id,
        user.username,
        summary.expected_cash,
        summary.counted_cash,
        summary.difference_status,
    )
    return closed, summary
