# backend/distribuidora/services/return_service.py
"""
Product returns.

A return puts goods back into stock with an IN movement referenced
RETURN-<id>. A cash refund with a session handle posts
CashMovement(OUT, RETURN) in the same unit.

Against a sale, the returned base quantity per product is bounded by what
the sale sold. Once every unit of the sale is back, the sale becomes
RETURNED, and a credit order it settled becomes RETURNED too. Partial
returns leave both statuses alone.

Deleting a return reverses all of it: an OUT movement referenced
RETURN-CANCEL-<id>, removal of the refund posting, and the statuses back
to COMPLETED / PAID.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import CashSession, Order, ProductReturn, Sale
from ..models.cash import CASH_OUT, REF_RETURN
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..models.sales import ORDER_PAID, ORDER_RETURNED, SALE_COMPLETED, SALE_RETURNED
from ..money import ZERO, money, optional_money, quantity as parse_quantity
from .cash_service import _post_cash_movement_inner, _remove_postings_inner
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import _apply_movement_inner, get_product, get_warehouse
from .reconciliation_service import classify_payment_method
from .sales_service import _resolve_presentation, resolve_base_quantity


def return_reference(return_id: int) -> str:
    return f"RETURN-{return_id}"


def _lock_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale


def _returned_by_product(sale_id: int) -> dict[int, int]:
    rows = (
        db.session.query(ProductReturn.product_id, func.coalesce(func.sum(ProductReturn.base_quantity), 0))
        .filter(ProductReturn.sale_id == sale_id)
        .group_by(ProductReturn.product_id)
        .all()
    )
    return {product_id: int(total) for product_id, total in rows}


def _sold_by_product(sale: Sale) -> dict[int, int]:
    sold: dict[int, int] = {}
    for item in sale.items:
        sold[item.product_id] = sold.get(item.product_id, 0) + item.base_quantity
    return sold


def _set_order_status(sale: Sale, from_status: str, to_status: str) -> None:
    if sale.order_id is None:
        return
    order = lock_for_update(db.session.query(Order).filter_by(id=sale.order_id)).first()
    if order is not None and order.status == from_status:
        order.status = to_status


def _default_unit_price(sale: Sale | None, product, presentation) -> Decimal:
    if sale is not None:
        presentation_id = presentation.id if presentation else None
        for item in sale.items:
            if item.product_id == product.id and item.presentation_id == presentation_id:
                return money(item.unit_price)
    if presentation is not None and presentation.price is not None:
        return money(presentation.price)
    return money(product.default_price)


def create_return(
    *,
    warehouse_id: int,
    product_id: int,
    quantity,
    reason: str,
    sale_id: int | None = None,
    presentation_id: int | None = None,
    stock_quantity=None,
    unit_price=None,
    refund_method: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    cash_session: CashSession | None = None,
) -> ProductReturn:
    """
    Record a product return, restock it and refund it, as one unit.

    The base quantity comes from the presentation's stored multiplier, as
    for sales. unit_price defaults to the price the sale charged, then to
    the presentation or product price. refund_method defaults to the sale's
    payment method; unset means cash.

    Raises:
        ValidationError: missing reason, bad quantity or price, product not
            in the sale, or more units returned than the sale sold
        NotFoundError: unknown warehouse, product, presentation or sale
    """
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required")

    def _op():
        get_warehouse(warehouse_id)
        product = get_product(product_id)
        qty = parse_quantity(quantity)
        presentation = None
        if presentation_id is not None:
            presentation = _resolve_presentation(product, presentation_id)
        base_quantity = resolve_base_quantity(product, qty, presentation, stock_quantity)

        sale = None
        method = refund_method
        if sale_id is not None:
            sale = _lock_sale(sale_id)
            if sale.warehouse_id != warehouse_id:
                raise ValidationError(
                    "Sale belongs to another warehouse",
                    {"sale_id": sale.id, "warehouse_id": sale.warehouse_id},
                )
            sold = _sold_by_product(sale).get(product.id, 0)
            if sold == 0:
                raise ValidationError(
                    f"{product.name} was not part of sale {sale.id}",
                    {"sale_id": sale.id, "product_id": product.id},
                )
            already = _returned_by_product(sale.id).get(product.id, 0)
            if already + base_quantity > sold:
                raise ValidationError(
                    f"Cannot return more {product.name} than sale {sale.id} sold",
                    {
                        "sale_id": sale.id,
                        "product_id": product.id,
                        "sold": sold,
                        "already_returned": already,
                        "requested": base_quantity,
                    },
                )
            if method is None:
                method = sale.payment_method

        price = optional_money(unit_price, field="unit_price")
        if price is None:
            price = _default_unit_price(sale, product, presentation)
        if price < 0:
            raise ValidationError("unit_price cannot be negative")

        product_return = ProductReturn(
            warehouse_id=warehouse_id,
            sale_id=sale.id if sale else None,
            product_id=product.id,
            presentation_id=presentation.id if presentation else None,
            user_id=user_id,
            quantity=qty,
            base_quantity=base_quantity,
            unit_price=price,
            total=money(price * qty),
            refund_method=method or None,
            reason=str(reason).strip(),
            notes=notes,
        )
        db.session.add(product_return)
        db.session.flush()

        _apply_movement_inner(
            product_id=product.id,
            warehouse_id=warehouse_id,
            quantity=base_quantity,
            type=MOVEMENT_IN,
            reference_id=return_reference(product_return.id),
            note=f"Return: {product_return.reason}",
            user_id=user_id,
        )

        if cash_session is not None and classify_payment_method(method) == "cash" and product_return.total > 0:
            _post_cash_movement_inner(
                cash_session,
                type=CASH_OUT,
                amount=product_return.total,
                reference_type=REF_RETURN,
                reference_id=product_return.id,
                notes=f"Product return: {product_return.reason}",
                user_id=user_id,
            )

        if sale is not None:
            returned = _returned_by_product(sale.id)
            if all(returned.get(pid, 0) >= units for pid, units in _sold_by_product(sale).items()):
                sale.status = SALE_RETURNED
                _set_order_status(sale, ORDER_PAID, ORDER_RETURNED)

        db.session.flush()
        return product_return

    product_return = run_in_transaction(_op)
    current_app.logger.info(
        "Return %s: %s base units of product %s back into warehouse %s (%s)",
        product_return.id,
        product_return.base_quantity,
        product_return.product_id,
        product_return.warehouse_id,
        product_return.total,
    )
    return product_return


def delete_return(return_id: int, *, user_id: int | None = None) -> None:
    """
    Undo a return in one unit.

    Raises:
        NotFoundError: unknown return
        InsufficientStockError: the returned goods already left again
        ConflictError: the refund was posted to a session that is now closed
    """
    def _op():
        product_return = db.session.get(ProductReturn, return_id)
        if product_return is None:
            raise NotFoundError("Return not found", {"return_id": return_id})

        _apply_movement_inner(
            product_id=product_return.product_id,
            warehouse_id=product_return.warehouse_id,
            quantity=product_return.base_quantity,
            type=MOVEMENT_OUT,
            reference_id=f"RETURN-CANCEL-{product_return.id}",
            note=f"Return {product_return.id} cancelled",
            user_id=user_id,
        )
        _remove_postings_inner(REF_RETURN, product_return.id)

        if product_return.sale_id is not None:
            sale = _lock_sale(product_return.sale_id)
            if sale.status == SALE_RETURNED:
                sale.status = SALE_COMPLETED
                _set_order_status(sale, ORDER_RETURNED, ORDER_PAID)

        db.session.delete(product_return)

    run_in_transaction(_op)
    current_app.logger.info("Return %s deleted", return_id)


def get_return(return_id: int) -> ProductReturn:
    product_return = db.session.get(ProductReturn, return_id)
    if product_return is None:
        raise NotFoundError("Return not found", {"return_id": return_id})
    return product_return


def _filtered(query, *, warehouse_id=None, product_id=None, sale_id=None, start=None, end=None):
    if warehouse_id is not None:
        query = query.filter(ProductReturn.warehouse_id == warehouse_id)
    if product_id is not None:
        query = query.filter(ProductReturn.product_id == product_id)
    if sale_id is not None:
        query = query.filter(ProductReturn.sale_id == sale_id)
    if start is not None:
        query = query.filter(ProductReturn.created_at >= start)
    if end is not None:
        query = query.filter(ProductReturn.created_at <= end)
    return query


def list_returns(
    *,
    warehouse_id: int | None = None,
    product_id: int | None = None,
    sale_id: int | None = None,
    start=None,
    end=None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ProductReturn], int]:
    query = _filtered(
        db.session.query(ProductReturn),
        warehouse_id=warehouse_id,
        product_id=product_id,
        sale_id=sale_id,
        start=start,
        end=end,
    )
    total = query.count()
    rows = (
        query.order_by(ProductReturn.created_at.desc(), ProductReturn.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def returns_summary(*, warehouse_id: int | None = None, start=None, end=None) -> dict:
    """Count and refunded amount, overall and per reason."""
    rows = _filtered(
        db.session.query(
            ProductReturn.reason,
            func.count(ProductReturn.id),
            func.coalesce(func.sum(ProductReturn.total), 0),
        ),
        warehouse_id=warehouse_id,
        start=start,
        end=end,
    ).group_by(ProductReturn.reason).order_by(ProductReturn.reason).all()

    by_reason = [
        {"reason": reason, "count": count, "total": money(total)}
        for reason, count, total in rows
    ]
    return {
        "total_returns": sum(row["count"] for row in by_reason),
        "total_amount": sum((row["total"] for row in by_reason), ZERO),
        "by_reason": by_reason,
    }
