# Overview: Flask API routes for supplier purchases; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_user_id, require_auth
from ..errors import LedgerError
from ..services import purchase_service

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@purchases_bp.post("/")
@require_auth
def receive_purchase_route():
    """
    Receive a supplier purchase.

    Request body:
    {
        "warehouse_id": 1,
        "supplier_name": "...",
        "invoice_number": "...",
        "items": [{"product_id": 1, "quantity": 10, "unit_cost": "4.20"}],
        "tax": "0.00",
        "discount": "0.00",
        "payment_method": "efectivo"
    }
    """
    try:
        data = request.get_json() or {}
        if not data.get("warehouse_id"):
            return jsonify({"error": "warehouse_id required"}), 400

        purchase = purchase_service.receive_purchase(
            warehouse_id=data["warehouse_id"],
            items=data.get("items") or [],
            supplier_name=data.get("supplier_name"),
            invoice_number=data.get("invoice_number"),
            notes=data.get("notes"),
            tax=data.get("tax"),
            discount=data.get("discount"),
            payment_method=data.get("payment_method"),
            user_id=current_user_id(),
        )
        return jsonify({"purchase": purchase.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@purchases_bp.get("/")
@require_auth
def list_purchases_route():
    limit = min(request.args.get("limit", 50, type=int), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    rows, total = purchase_service.list_purchases(
        warehouse_id=request.args.get("warehouse_id", type=int), limit=limit, offset=offset
    )
    return jsonify({"purchases": [p.to_dict() for p in rows], "total": total}), 200


@purchases_bp.delete("/<int:purchase_id>")
@require_auth
def delete_purchase_route(purchase_id: int):
    try:
        purchase_service.delete_purchase(purchase_id, user_id=current_user_id())
        return jsonify({"success": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete purchase")
        return jsonify({"error": "Internal server error"}), 500
