# Overview: Low-stock notifications raised after stock movements.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError
from ..extensions import db
from ..models import Notification, StockLevel
from ..models.inventory import NOTIFICATION_LOW_STOCK
from ..time_utils import utcnow
from .concurrency import run_in_transaction


def notify_low_stock(level: StockLevel) -> Notification | None:
    """
    Raise a LOW_STOCK notification when on_hand <= min_stock.

    Runs in a SAVEPOINT: if writing the notification fails only the
    notification is rolled back; the movement that triggered it stands.
    The caller must have flushed the level update already.
    """
    if level.on_hand > level.min_stock:
        return None

    try:
        with db.session.begin_nested():
            notification = Notification(
                type=NOTIFICATION_LOW_STOCK,
                message=(
                    f"Product {level.product_id} in warehouse {level.warehouse_id} "
                    f"is low ({level.on_hand} <= min {level.min_stock})"
                ),
                product_id=level.product_id,
                warehouse_id=level.warehouse_id,
                on_hand=level.on_hand,
                min_stock=level.min_stock,
            )
            db.session.add(notification)
        return notification
    except SQLAlchemyError:
        current_app.logger.exception(
            "Failed to record low-stock notification for product %s in warehouse %s",
            level.product_id,
            level.warehouse_id,
        )
        return None


def list_notifications(*, only_open: bool = True, limit: int = 50, offset: int = 0) -> tuple[list[Notification], int]:
    query = db.session.query(Notification)
    if only_open:
        query = query.filter(Notification.resolved_at.is_(None))
    total = query.count()
    rows = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def resolve_notification(notification_id: int) -> Notification:
    def _op():
        notification = db.session.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.resolved_at is None:
            notification.resolved_at = utcnow()
        return notification

    return run_in_transaction(_op)
