# Overview: Flask API routes for product returns; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import current_user_id, require_auth
from ..errors import LedgerError
from ..money import to_str
from ..services import cash_service, return_service
from ..services.auth_service import is_elevated
from ..time_utils import parse_iso_datetime

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@returns_bp.post("/")
@require_auth
def create_return_route():
    """
    Register a product return.

    Request body:
    {
        "warehouse_id": 1,
        "product_id": 1,
        "quantity": 2,
        "reason": "Producto vencido",
        "sale_id": 10,               (optional)
        "presentation_id": 3,        (optional)
        "unit_price": "10.00",       (optional; defaults to the sale's price)
        "refund_method": "efectivo", (optional; defaults to the sale's method)
        "notes": "..."               (optional)
    }

    A cash refund is posted to the warehouse's open cash session, if any.
    """
    try:
        data = request.get_json() or {}
        warehouse_id = data.get("warehouse_id")
        if not warehouse_id:
            return jsonify({"error": "warehouse_id required"}), 400
        if not data.get("product_id"):
            return jsonify({"error": "product_id required"}), 400

        product_return = return_service.create_return(
            warehouse_id=warehouse_id,
            product_id=data["product_id"],
            quantity=data.get("quantity"),
            reason=data.get("reason"),
            sale_id=data.get("sale_id"),
            presentation_id=data.get("presentation_id"),
            stock_quantity=data.get("stock_quantity"),
            unit_price=data.get("unit_price"),
            refund_method=data.get("refund_method"),
            notes=data.get("notes"),
            user_id=current_user_id(),
            cash_session=cash_service.get_open_session(warehouse_id),
        )
        return jsonify({"return": product_return.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@returns_bp.get("/")
@require_auth
def list_returns_route():
    try:
        limit = min(max(request.args.get("limit", 50, type=int), 1), 200)
        offset = max(request.args.get("offset", 0, type=int), 0)
        rows, total = return_service.list_returns(
            warehouse_id=request.args.get("warehouse_id", type=int),
            product_id=request.args.get("product_id", type=int),
            sale_id=request.args.get("sale_id", type=int),
            start=parse_iso_datetime(request.args.get("start_date")),
            end=parse_iso_datetime(request.args.get("end_date")),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "returns": [r.to_dict() for r in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200

    except ValueError:
        return jsonify({"error": "Invalid date format"}), 400


@returns_bp.get("/summary")
@require_auth
def returns_summary_route():
    try:
        summary = return_service.returns_summary(
            warehouse_id=request.args.get("warehouse_id", type=int),
            start=parse_iso_datetime(request.args.get("start_date")),
            end=parse_iso_datetime(request.args.get("end_date")),
        )
    except ValueError:
        return jsonify({"error": "Invalid date format"}), 400

    return jsonify({
        "total_returns": summary["total_returns"],
        "total_amount": to_str(summary["total_amount"]),
        "by_reason": [
            {"reason": row["reason"], "count": row["count"], "total": to_str(row["total"])}
            for row in summary["by_reason"]
        ],
    }), 200


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        return jsonify({"return": return_service.get_return(return_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@returns_bp.delete("/<int:return_id>")
@require_auth
def delete_return_route(return_id: int):
    """Reverse a return: stock back out, refund posting removed. Managers only."""
    if not is_elevated(g.current_user):
        return jsonify({"error": "Only managers can delete returns"}), 403
    try:
        return_service.delete_return(return_id, user_id=current_user_id())
        return jsonify({"success": True}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete return")
        return jsonify({"error": "Internal server error"}), 500
