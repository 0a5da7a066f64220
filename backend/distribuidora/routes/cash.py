# Overview: Flask API routes for cash sessions; parses input and returns JSON responses.

# backend/distribuidora/routes/cash.py
"""
Cash Session API Routes

WHY: Cashier accountability per warehouse.

- Session lifecycle: open -> close (immutable once closed)
- Closing re-checks the user's credentials; only the opener or an
  admin/manager may close
- Manual deposits/withdrawals are logged as cash movements
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_user_id, require_auth
from ..errors import LedgerError
from ..money import to_str
from ..services import cash_service, reconciliation_service
from ..time_utils import parse_iso_datetime

cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


@cash_bp.post("/open")
@require_auth
def open_session_route():
    """
    Request body:
    {
        "warehouse_id": 1,
        "opening_amount": "100.00"
    }
    """
    try:
        data = request.get_json() or {}
        if not data.get("warehouse_id"):
            return jsonify({"error": "warehouse_id required"}), 400

        session = cash_service.open_session(
            warehouse_id=data["warehouse_id"],
            opening_amount=data.get("opening_amount", 0),
            user_id=current_user_id(),
        )
        return jsonify({"session": session.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.post("/close")
@require_auth
def close_session_route():
    """
    Close the warehouse's open session.

    Request body:
    {
        "warehouse_id": 1,
        "closing_amount": "250.00",
        "username": "cashier",
        "password": "...",
        "notes": "..."   (optional)
    }
    """
    try:
        data = request.get_json() or {}
        if not data.get("warehouse_id"):
            return jsonify({"error": "warehouse_id required"}), 400
        if not data.get("username") or not data.get("password"):
            return jsonify({"error": "username and password required"}), 400

        session, summary = reconciliation_service.close_session(
            warehouse_id=data["warehouse_id"],
            closing_amount=data.get("closing_amount"),
            username=data["username"],
            password=data["password"],
            notes=data.get("notes"),
        )
        return jsonify({"session": session.to_dict(), "summary": summary.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/preview")
@require_auth
def preview_session_route():
    """Close summary of the open session as of now. ?counted= adds the difference."""
    try:
        warehouse_id = request.args.get("warehouse_id", type=int)
        if not warehouse_id:
            return jsonify({"error": "warehouse_id required"}), 400

        summary = reconciliation_service.preview_session(warehouse_id, counted=request.args.get("counted") or None)
        return jsonify({"summary": summary.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to preview cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/session")
@require_auth
def current_session_route():
    """Open session (or null) and its movement-log totals."""
    warehouse_id = request.args.get("warehouse_id", type=int)
    if not warehouse_id:
        return jsonify({"error": "warehouse_id required"}), 400

    session = cash_service.get_open_session(warehouse_id)
    if session is None:
        return jsonify({"session": None, "totals": None}), 200
    totals = {key: to_str(value) for key, value in cash_service.drawer_totals(session).items()}
    return jsonify({"session": session.to_dict(), "totals": totals}), 200


@cash_bp.post("/movements")
@require_auth
def create_movement_route():
    """
    Manual deposit or withdrawal.

    Request body:
    {
        "warehouse_id": 1,
        "type": "IN" | "OUT",
        "amount": "20.00",
        "notes": "..."
    }
    """
    try:
        data = request.get_json() or {}
        if not data.get("warehouse_id") or not data.get("type"):
            return jsonify({"error": "warehouse_id and type required"}), 400

        movement = cash_service.record_manual_movement(
            warehouse_id=data["warehouse_id"],
            type=str(data["type"]).upper(),
            amount=data.get("amount"),
            notes=data.get("notes"),
            user_id=current_user_id(),
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record cash movement")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/movements")
@require_auth
def list_movements_route():
    try:
        session_id = request.args.get("session_id", type=int)
        if session_id is None:
            warehouse_id = request.args.get("warehouse_id", type=int)
            if not warehouse_id:
                return jsonify({"error": "session_id or warehouse_id required"}), 400
            session_id = cash_service.require_open_session(warehouse_id).id

        movements = cash_service.list_session_movements(session_id)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@cash_bp.get("/closures")
@require_auth
def list_closures_route():
    try:
        limit = min(request.args.get("limit", 50, type=int), 500)
        offset = max(request.args.get("offset", 0, type=int), 0)
        rows, total = cash_service.list_closures(
            warehouse_id=request.args.get("warehouse_id", type=int),
            start=parse_iso_datetime(request.args.get("start_date")),
            end=parse_iso_datetime(request.args.get("end_date")),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "closures": [s.to_dict() for s in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200

    except ValueError:
        return jsonify({"error": "Invalid date format"}), 400


@cash_bp.get("/closures/<int:session_id>")
@require_auth
def get_closure_route(session_id: int):
    try:
        session = cash_service.get_closure(session_id)
        movements = cash_service.list_session_movements(session.id)
        return jsonify({"closure": session.to_dict(), "movements": [m.to_dict() for m in movements]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
