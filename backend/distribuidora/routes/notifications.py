from flask import Blueprint, jsonify, request

from ..decorators import require_auth
from ..errors import LedgerError
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@notifications_bp.get("/")
@require_auth
def list_notifications_route():
    only_open = request.args.get("only_open", "true").lower() not in {"0", "false", "no"}
    limit = min(request.args.get("limit", 50, type=int), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    rows, total = notification_service.list_notifications(only_open=only_open, limit=limit, offset=offset)
    return jsonify({"notifications": [n.to_dict() for n in rows], "total": total}), 200


@notifications_bp.patch("/<int:notification_id>/resolve")
@require_auth
def resolve_notification_route(notification_id: int):
    try:
        notification = notification_service.resolve_notification(notification_id)
        return jsonify({"notification": notification.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
