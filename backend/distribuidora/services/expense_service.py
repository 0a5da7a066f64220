# backend/distribuidora/services/expense_service.py
"""
Expenses, loans and loan repayments.

Cash (or unset) payments are posted against the open session of the
record's warehouse, or of the primary warehouse when none is given, in the
same unit as the record itself. Without an open session nothing is posted;
the reconciler still counts the record by its creation timestamp.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Expense, Loan, LoanPayment, Warehouse
from ..models.cash import CASH_IN, CASH_OUT, REF_EXPENSE, REF_LOAN, REF_LOAN_PAYMENT
from ..models.expenses import LOAN_ACTIVE, LOAN_CANCELLED, LOAN_PAID
from ..money import ZERO, money, optional_money, positive_money
from ..time_utils import utcnow
from .cash_service import _post_cash_movement_inner, _remove_postings_inner, get_open_session
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import get_warehouse
from .reconciliation_service import classify_payment_method

HUNDRED = Decimal("100")


def _cash_session_for(warehouse_id: int | None):
    if warehouse_id is None:
        code = current_app.config.get("PRIMARY_WAREHOUSE_CODE")
        warehouse = db.session.query(Warehouse).filter_by(code=code).first() if code else None
        if warehouse is None:
            warehouse = db.session.query(Warehouse).filter_by(is_primary=True).order_by(Warehouse.id).first()
        if warehouse is None:
            return None
        warehouse_id = warehouse.id
    return get_open_session(warehouse_id)


def _post_if_cash(payment_method, *, warehouse_id, type, amount, reference_type, reference_id, notes, user_id):
    if classify_payment_method(payment_method) != "cash":
        return None
    session = _cash_session_for(warehouse_id)
    if session is None:
        return None
    return _post_cash_movement_inner(
        session,
        type=type,
        amount=amount,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        user_id=user_id,
    )


# =============================================================================
# EXPENSES
# =============================================================================

def create_expense(
    *,
    category: str,
    amount,
    description: str | None = None,
    payment_method: str | None = None,
    date=None,
    warehouse_id: int | None = None,
    user_id: int | None = None,
) -> Expense:
    if not category:
        raise ValidationError("category is required")
    value = positive_money(amount)

    def _op():
        if warehouse_id is not None:
            get_warehouse(warehouse_id)
        expense = Expense(
            warehouse_id=warehouse_id,
            category=category,
            description=description,
            amount=value,
            payment_method=payment_method or None,
            date=date or utcnow(),
            user_id=user_id,
        )
        db.session.add(expense)
        db.session.flush()
        _post_if_cash(
            payment_method,
            warehouse_id=warehouse_id,
            type=CASH_OUT,
            amount=value,
            reference_type=REF_EXPENSE,
            reference_id=expense.id,
            notes=f"Expense: {category}",
            user_id=user_id,
        )
        return expense

    expense = run_in_transaction(_op)
    current_app.logger.info("Expense %s recorded (%s, %s)", expense.id, category, value)
    return expense


def delete_expense(expense_id: int) -> None:
    def _op():
        expense = db.session.get(Expense, expense_id)
        if expense is None:
            raise NotFoundError("Expense not found", {"expense_id": expense_id})
        _remove_postings_inner(REF_EXPENSE, expense.id)
        db.session.delete(expense)

    run_in_transaction(_op)


def list_expenses(*, warehouse_id: int | None = None, limit: int = 50, offset: int = 0) -> tuple[list[Expense], int]:
    query = db.session.query(Expense)
    if warehouse_id is not None:
        query = query.filter(Expense.warehouse_id == warehouse_id)
    total = query.count()
    rows = query.order_by(Expense.created_at.desc(), Expense.id.desc()).offset(offset).limit(limit).all()
    return rows, total


# =============================================================================
# LOANS
# =============================================================================

def loan_total(amount: Decimal, interest_rate: Decimal) -> Decimal:
    """Simple interest: amount * (1 + rate / 100)."""
    return money(amount * (1 + interest_rate / HUNDRED))


def create_loan(
    *,
    borrower_name: str,
    amount,
    interest_rate=0,
    payment_method: str | None = None,
    notes: str | None = None,
    warehouse_id: int | None = None,
    user_id: int | None = None,
) -> Loan:
    if not borrower_name:
        raise ValidationError("borrower_name is required")
    value = positive_money(amount)
    rate = optional_money(interest_rate, field="interest_rate") or ZERO
    if rate < 0:
        raise ValidationError("interest_rate cannot be negative")
    total = loan_total(value, rate)

    def _op():
        if warehouse_id is not None:
            get_warehouse(warehouse_id)
        loan = Loan(
            warehouse_id=warehouse_id,
            borrower_name=borrower_name,
            amount=value,
            interest_rate=rate,
            total_amount=total,
            paid_amount=ZERO,
            balance=total,
            status=LOAN_ACTIVE,
            payment_method=payment_method or None,
            notes=notes,
            user_id=user_id,
        )
        db.session.add(loan)
        db.session.flush()
        _post_if_cash(
            payment_method,
            warehouse_id=warehouse_id,
            type=CASH_OUT,
            amount=value,
            reference_type=REF_LOAN,
            reference_id=loan.id,
            notes=f"Loan: {borrower_name}",
            user_id=user_id,
        )
        return loan

    loan = run_in_transaction(_op)
    current_app.logger.info("Loan %s to %s for %s", loan.id, borrower_name, value)
    return loan


def record_loan_payment(
    loan_id: int,
    *,
    amount,
    payment_method: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> LoanPayment:
    """
    Register a repayment. The balance never goes below zero; the loan turns
    PAID once it reaches zero.
    """
    value = positive_money(amount)

    def _op():
        loan = lock_for_update(db.session.query(Loan).filter_by(id=loan_id)).first()
        if loan is None:
            raise NotFoundError("Loan not found", {"loan_id": loan_id})
        if loan.status != LOAN_ACTIVE:
            raise ConflictError(f"Loan is {loan.status}", {"loan_id": loan_id})

        payment = LoanPayment(
            loan_id=loan.id,
            amount=value,
            payment_method=payment_method or None,
            notes=notes,
            user_id=user_id,
        )
        db.session.add(payment)

        loan.paid_amount = money(loan.paid_amount) + value
        remaining = money(loan.total_amount) - loan.paid_amount
        loan.balance = max(ZERO, remaining)
        if remaining <= 0:
            loan.status = LOAN_PAID
        db.session.flush()

        _post_if_cash(
            payment_method,
            warehouse_id=loan.warehouse_id,
            type=CASH_IN,
            amount=value,
            reference_type=REF_LOAN_PAYMENT,
            reference_id=payment.id,
            notes=f"Loan payment: {loan.borrower_name}",
            user_id=user_id,
        )
        return payment

    return run_in_transaction(_op)


def cancel_loan(loan_id: int, reason: str | None = None) -> Loan:
    def _op():
        loan = lock_for_update(db.session.query(Loan).filter_by(id=loan_id)).first()
        if loan is None:
            raise NotFoundError("Loan not found", {"loan_id": loan_id})
        loan.status = LOAN_CANCELLED
        loan.notes = reason or "Cancelled"
        return loan

    return run_in_transaction(_op)


def get_loan(loan_id: int) -> Loan:
    loan = db.session.get(Loan, loan_id)
    if loan is None:
        raise NotFoundError("Loan not found", {"loan_id": loan_id})
    return loan


def list_loans(*, status: str | None = None, limit: int = 50, offset: int = 0) -> tuple[list[Loan], int]:
    query = db.session.query(Loan)
    if status:
        query = query.filter(Loan.status == status)
    total = query.count()
    rows = query.order_by(Loan.created_at.desc(), Loan.id.desc()).offset(offset).limit(limit).all()
    return rows, total
