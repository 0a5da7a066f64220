# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/distribuidora/routes/inventory.py
"""
Inventory API Routes

Every stock change goes through inventory_service / transfer_service; these
routes only parse input and render results.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_user_id, require_auth
from ..errors import LedgerError
from ..services import inventory_service, transfer_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/movements")
@require_auth
def apply_movement_route():
    """
    Apply a stock movement.

    Request body:
    {
        "product_id": 1,
        "warehouse_id": 1,
        "quantity": 10,
        "type": "IN" | "OUT" | "ADJUST",
        "unit_cost": "12.50",   (optional)
        "reference_id": "...",  (optional)
        "note": "..."           (optional)
    }
    """
    try:
        data = request.get_json() or {}
        product_id = data.get("product_id")
        warehouse_id = data.get("warehouse_id")
        if not product_id or not warehouse_id or data.get("type") is None:
            return jsonify({"error": "product_id, warehouse_id and type required"}), 400

        movement = inventory_service.apply_movement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=data.get("quantity"),
            type=str(data["type"]).upper(),
            unit_cost=data.get("unit_cost"),
            reference_id=data.get("reference_id"),
            note=data.get("note"),
            user_id=current_user_id(),
        )
        on_hand = inventory_service.get_on_hand(product_id, warehouse_id)
        return jsonify({"movement": movement.to_dict(), "on_hand": on_hand}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply inventory movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    movements = inventory_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        warehouse_id=request.args.get("warehouse_id", type=int),
        reference_id=request.args.get("reference_id"),
        limit=min(request.args.get("limit", 200, type=int), 1000),
    )
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.post("/transfer")
@require_auth
def transfer_route():
    """
    Move stock between warehouses.

    Request body:
    {
        "product_id": 1,
        "from_warehouse_id": 1,
        "to_warehouse_id": 2,
        "quantity": 5
    }
    """
    try:
        data = request.get_json() or {}
        required = ("product_id", "from_warehouse_id", "to_warehouse_id", "quantity")
        if any(data.get(key) is None for key in required):
            return jsonify({"error": "product_id, from_warehouse_id, to_warehouse_id and quantity required"}), 400

        movement = transfer_service.transfer_stock(
            product_id=data["product_id"],
            from_warehouse_id=data["from_warehouse_id"],
            to_warehouse_id=data["to_warehouse_id"],
            quantity=data["quantity"],
            user_id=current_user_id(),
        )
        return jsonify({"reference_id": movement.reference_id, "movement": movement.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to transfer stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock-levels")
@require_auth
def stock_levels_route():
    levels = inventory_service.get_stock_levels(warehouse_id=request.args.get("warehouse_id", type=int))
    return jsonify({"stock_levels": [level.to_dict() for level in levels]}), 200


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    levels = inventory_service.get_low_stock(warehouse_id=request.args.get("warehouse_id", type=int))
    return jsonify({"stock_levels": [level.to_dict() for level in levels]}), 200


@inventory_bp.patch("/min-stock")
@require_auth
def set_min_stock_route():
    try:
        data = request.get_json() or {}
        if data.get("product_id") is None or data.get("warehouse_id") is None:
            return jsonify({"error": "product_id and warehouse_id required"}), 400

        level = inventory_service.set_min_stock(
            product_id=data["product_id"],
            warehouse_id=data["warehouse_id"],
            min_stock=data.get("min_stock"),
        )
        return jsonify({"stock_level": level.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set minimum stock")
        return jsonify({"error": "Internal server error"}), 500
