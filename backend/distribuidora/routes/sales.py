# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_user_id, require_auth
from ..errors import LedgerError
from ..services import cash_service, sales_service
from ..services.reconciliation_service import classify_payment_method

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@sales_bp.post("/")
@require_auth
def create_sale_route():
    """
    Create a completed sale.

    Request body:
    {
        "warehouse_id": 1,
        "items": [{"product_id": 1, "quantity": 2, "presentation_id": 3, "unit_price": "10.00"}],
        "payment_method": "efectivo" | "transferencia" | ...,   (optional; unset = cash)
        "price_type": "publico",      (optional)
        "cash_received": "50.00",     (optional)
        "change": "5.00",             (optional)
        "domicilio_price": "3.00"     (optional)
    }

    A cash sale is posted to the warehouse's open cash session, if any.
    """
    try:
        data = request.get_json() or {}
        warehouse_id = data.get("warehouse_id")
        if not warehouse_id:
            return jsonify({"error": "warehouse_id required"}), 400

        payment_method = data.get("payment_method")
        cash_session = None
        if classify_payment_method(payment_method) == "cash":
            cash_session = cash_service.get_open_session(warehouse_id)

        sale = sales_service.create_sale(
            warehouse_id=warehouse_id,
            items=data.get("items") or [],
            payment_method=payment_method,
            price_type=data.get("price_type"),
            cash_received=data.get("cash_received"),
            change=data.get("change"),
            domicilio_price=data.get("domicilio_price"),
            user_id=current_user_id(),
            cash_session=cash_session,
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@sales_bp.get("/")
@require_auth
def list_sales_route():
    limit = min(request.args.get("limit", 50, type=int), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    rows, total = sales_service.list_sales(
        warehouse_id=request.args.get("warehouse_id", type=int),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "sales": [sale.to_dict(include_items=False) for sale in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.delete("/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    """Delete a sale, restoring its stock and removing its cash postings."""
    try:
        sales_service.delete_sale(sale_id, user_id=current_user_id())
        return jsonify({"success": True}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
