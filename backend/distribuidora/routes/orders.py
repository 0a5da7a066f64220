# Overview: Flask API routes for credit orders (fiados); parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_user_id, require_auth
from ..errors import LedgerError
from ..services import cash_service, order_service
from ..time_utils import parse_iso_datetime

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@orders_bp.post("/")
@require_auth
def create_order_route():
    """
    Create a credit order. Stock is debited immediately.

    Request body:
    {
        "warehouse_id": 1,
        "customer_name": "Tienda La Esquina",
        "customer_phone": "...",   (optional)
        "due_date": "2026-11-01T00:00:00Z",   (optional)
        "items": [{"product_id": 1, "quantity": 2}]
    }
    """
    try:
        data = request.get_json() or {}
        if not data.get("warehouse_id"):
            return jsonify({"error": "warehouse_id required"}), 400

        due_date = parse_iso_datetime(data["due_date"]) if data.get("due_date") else None
        order = order_service.create_order(
            warehouse_id=data["warehouse_id"],
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            notes=data.get("notes"),
            due_date=due_date,
            price_type=data.get("price_type"),
            items=data.get("items") or [],
            user_id=current_user_id(),
        )
        return jsonify({"order": order.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@orders_bp.get("/")
@require_auth
def list_orders_route():
    try:
        limit = min(request.args.get("limit", 50, type=int), 500)
        offset = max(request.args.get("offset", 0, type=int), 0)
        rows, total = order_service.list_orders(
            status=request.args.get("status"),
            warehouse_id=request.args.get("warehouse_id", type=int),
            search=request.args.get("search"),
            limit=limit,
            offset=offset,
        )
        return jsonify({"orders": [o.to_dict() for o in rows], "total": total}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        return jsonify({"order": order_service.get_order(order_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:order_id>/pay")
@require_auth
def pay_order_route(order_id: int):
    """Settle an order. Cash payments post to the warehouse's open cash session."""
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.get_order(order_id)
        cash_session = cash_service.get_open_session(order.warehouse_id)

        order = order_service.pay_order(
            order_id,
            payment_method=data.get("payment_method"),
            user_id=current_user_id(),
            cash_session=cash_session,
        )
        return jsonify({"order": order.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to pay order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        order = order_service.cancel_order(order_id, user_id=current_user_id())
        return jsonify({"order": order.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_auth
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id, user_id=current_user_id())
        return jsonify({"success": True}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500
