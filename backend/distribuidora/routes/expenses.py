# Overview: Flask API routes for expenses and loans; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_user_id, require_auth
from ..errors import LedgerError
from ..services import expense_service
from ..time_utils import parse_iso_datetime

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api")


@expenses_bp.post("/expenses")
@require_auth
def create_expense_route():
    """
    Request body:
    {
        "category": "servicios",
        "amount": "35.00",
        "description": "...",          (optional)
        "payment_method": "efectivo",  (optional; unset = cash)
        "date": "2026-10-17",          (optional business date)
        "warehouse_id": 1              (optional)
    }
    """
    try:
        data = request.get_json() or {}
        expense = expense_service.create_expense(
            category=data.get("category"),
            amount=data.get("amount"),
            description=data.get("description"),
            payment_method=data.get("payment_method"),
            date=parse_iso_datetime(data.get("date")),
            warehouse_id=data.get("warehouse_id"),
            user_id=current_user_id(),
        )
        return jsonify({"expense": expense.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValueError:
        return jsonify({"error": "Invalid date format"}), 400
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("/expenses")
@require_auth
def list_expenses_route():
    limit = min(request.args.get("limit", 50, type=int), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    rows, total = expense_service.list_expenses(
        warehouse_id=request.args.get("warehouse_id", type=int), limit=limit, offset=offset
    )
    return jsonify({"expenses": [e.to_dict() for e in rows], "total": total}), 200


@expenses_bp.delete("/expenses/<int:expense_id>")
@require_auth
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(expense_id)
        return jsonify({"success": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.post("/loans")
@require_auth
def create_loan_route():
    try:
        data = request.get_json() or {}
        loan = expense_service.create_loan(
            borrower_name=data.get("borrower_name"),
            amount=data.get("amount"),
            interest_rate=data.get("interest_rate", 0),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
            warehouse_id=data.get("warehouse_id"),
            user_id=current_user_id(),
        )
        return jsonify({"loan": loan.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create loan")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("/loans")
@require_auth
def list_loans_route():
    limit = min(request.args.get("limit", 50, type=int), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    rows, total = expense_service.list_loans(status=request.args.get("status"), limit=limit, offset=offset)
    return jsonify({"loans": [loan.to_dict() for loan in rows], "total": total}), 200


@expenses_bp.post("/loans/<int:loan_id>/payments")
@require_auth
def loan_payment_route(loan_id: int):
    try:
        data = request.get_json() or {}
        payment = expense_service.record_loan_payment(
            loan_id,
            amount=data.get("amount"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
            user_id=current_user_id(),
        )
        loan = expense_service.get_loan(loan_id)
        return jsonify({"payment": payment.to_dict(), "loan": loan.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record loan payment")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.patch("/loans/<int:loan_id>/cancel")
@require_auth
def cancel_loan_route(loan_id: int):
    try:
        data = request.get_json(silent=True) or {}
        loan = expense_service.cancel_loan(loan_id, reason=data.get("reason"))
        return jsonify({"loan": loan.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
