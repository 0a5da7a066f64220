# backend/distribuidora/services/order_service.py
"""
Credit orders ("fiados").

The goods leave with the customer when the order is created, so stock is
debited then. Paying the order creates a Sale linked back through
order_id; that sale moves no stock. Cancelling or deleting a PENDING order
credits the stock back.
"""
from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CashSession, Order, OrderItem, Sale, SaleItem
from ..models.cash import CASH_IN, REF_ORDER
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..models.sales import ORDER_CANCELLED, ORDER_PAID, ORDER_PENDING, ORDER_RETURNED, ORDER_STATUSES, PRICE_TYPE_DEFAULT
from ..money import ZERO
from ..time_utils import utcnow
from .cash_service import _post_cash_movement_inner, _remove_postings_inner
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import _apply_movement_inner, get_warehouse
from .reconciliation_service import classify_payment_method
from .sales_service import price_lines, validate_stock


def order_reference(order_id: int) -> str:
    return f"ORDER-{order_id}"


def _lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError("Order not found", {"order_id": order_id})
    return order


def _restock_items(order: Order, *, note: str, user_id: int | None) -> None:
    for item in order.items:
        _apply_movement_inner(
            product_id=item.product_id,
            warehouse_id=order.warehouse_id,
            quantity=item.base_quantity,
            type=MOVEMENT_IN,
            reference_id=order_reference(order.id),
            note=note,
            user_id=user_id,
        )


def create_order(
    *,
    warehouse_id: int,
    customer_name: str,
    items: list[dict],
    customer_phone: str | None = None,
    notes: str | None = None,
    due_date=None,
    price_type: str | None = None,
    user_id: int | None = None,
) -> Order:
    """
    Register a credit order and debit its stock, as one unit.

    Items use the same shape and validation as sales.
    """
    if not customer_name or not str(customer_name).strip():
        raise ValidationError("customer_name is required")
    if not items:
        raise ValidationError("Order requires at least one item")

    def _op():
        get_warehouse(warehouse_id)
        lines = price_lines(items)
        validate_stock(warehouse_id, lines)

        order = Order(
            warehouse_id=warehouse_id,
            user_id=user_id,
            customer_name=str(customer_name).strip(),
            customer_phone=customer_phone,
            notes=notes,
            due_date=due_date,
            price_type=price_type or PRICE_TYPE_DEFAULT,
            total=sum((line.subtotal for line in lines), ZERO),
            status=ORDER_PENDING,
        )
        db.session.add(order)
        db.session.flush()

        for line in lines:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=line.product.id,
                presentation_id=line.presentation_id,
                quantity=line.quantity,
                base_quantity=line.base_quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            ))
            _apply_movement_inner(
                product_id=line.product.id,
                warehouse_id=warehouse_id,
                quantity=line.base_quantity,
                type=MOVEMENT_OUT,
                reference_id=order_reference(order.id),
                note=f"Credit order for {order.customer_name}",
                user_id=user_id,
            )
        db.session.flush()
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("Credit order %s created for %s (%s)", order.id, order.customer_name, order.total)
    return order


def pay_order(
    order_id: int,
    *,
    payment_method: str | None = None,
    user_id: int | None = None,
    cash_session: CashSession | None = None,
) -> Order:
    """
    Settle a PENDING order: create its Sale (no stock movement), mark it
    PAID and stamp paid_at. A cash payment with a session handle also posts
    CashMovement(IN, ORDER) in the same unit.
    """
    def _op():
        order = _lock_order(order_id)
        if order.status == ORDER_PAID:
            raise ConflictError("Order is already paid", {"order_id": order_id})
        if order.status != ORDER_PENDING:
            raise ConflictError(f"Cannot pay an order in status {order.status}", {"order_id": order_id})

        sale = Sale(
            warehouse_id=order.warehouse_id,
            user_id=user_id,
            order_id=order.id,
            subtotal=order.total,
            total=order.total,
            payment_method=payment_method or None,
            price_type=order.price_type or PRICE_TYPE_DEFAULT,
        )
        db.session.add(sale)
        db.session.flush()
        for item in order.items:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=item.product_id,
                presentation_id=item.presentation_id,
                quantity=item.quantity,
                base_quantity=item.base_quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal,
            ))

        order.status = ORDER_PAID
        order.paid_at = utcnow()
        order.payment_method = payment_method or None
        order.paid_by_user_id = user_id
        order.sale_id = sale.id

        if cash_session is not None and classify_payment_method(payment_method) == "cash" and order.total > 0:
            _post_cash_movement_inner(
                cash_session,
                type=CASH_IN,
                amount=order.total,
                reference_type=REF_ORDER,
                reference_id=order.id,
                notes=f"Credit order {order.id} paid",
                user_id=user_id,
            )
        db.session.flush()
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("Credit order %s paid by sale %s", order.id, order.sale_id)
    return order


def cancel_order(order_id: int, *, user_id: int | None = None) -> Order:
    """Cancel a PENDING order and credit its stock back."""
    def _op():
        order = _lock_order(order_id)
        if order.status == ORDER_PAID:
            raise ConflictError("Cannot cancel a paid order", {"order_id": order_id})
        if order.status == ORDER_CANCELLED:
            raise ConflictError("Order is already cancelled", {"order_id": order_id})
        if order.status != ORDER_PENDING:
            raise ConflictError(f"Cannot cancel an order in status {order.status}", {"order_id": order_id})

        _restock_items(order, note=f"Credit order {order.id} cancelled", user_id=user_id)
        order.status = ORDER_CANCELLED
        db.session.flush()
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("Credit order %s cancelled", order.id)
    return order


def delete_order(order_id: int, *, user_id: int | None = None) -> None:
    """
    Delete an order that was never paid. A PENDING order's stock is credited
    back first; a cancelled one already returned it.
    """
    def _op():
        order = _lock_order(order_id)
        if order.status in (ORDER_PAID, ORDER_RETURNED):
            raise ConflictError(
                "A paid order is settled by a sale and cannot be deleted",
                {"order_id": order_id, "sale_id": order.sale_id},
            )
        if order.status == ORDER_PENDING:
            _restock_items(order, note=f"Credit order {order.id} deleted", user_id=user_id)
        _remove_postings_inner(REF_ORDER, order.id)
        db.session.delete(order)

    run_in_transaction(_op)
    current_app.logger.info("Credit order %s deleted", order_id)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", {"order_id": order_id})
    return order


def list_orders(
    *,
    status: str | None = None,
    warehouse_id: int | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    query = db.session.query(Order)
    if status and status != "ALL":
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid order status {status!r}", {"allowed": list(ORDER_STATUSES)})
        query = query.filter(Order.status == status)
    if warehouse_id is not None:
        query = query.filter(Order.warehouse_id == warehouse_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(db.or_(Order.customer_name.ilike(pattern), Order.customer_phone.ilike(pattern)))
    total = query.count()
    rows = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
    return rows, total
