# backend/distribuidora/services/purchase_service.py
"""
Supplier purchases received into a warehouse.

Each line becomes an IN movement carrying its unit cost, and the product's
moving-average cost is recomputed from its total on-hand before the
receipt:

    new_cost = (on_hand * cost + incoming * unit_cost) / (on_hand + incoming)

A cash (or unset) payment posts CashMovement(OUT, PURCHASE) against the
warehouse's open session, when there is one, in the same unit.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Presentation, Product, Purchase, PurchaseItem
from ..models.cash import CASH_OUT, REF_PURCHASE
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..money import ZERO, money, optional_money, quantity as parse_quantity
from .cash_service import _post_cash_movement_inner, _remove_postings_inner, get_open_session
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import _apply_movement_inner, get_base_stock, get_warehouse
from .reconciliation_service import classify_payment_method
from .sales_service import resolve_base_quantity


def moving_average_cost(on_hand: int, cost: Decimal, incoming: int, unit_cost: Decimal) -> Decimal:
    new_stock = on_hand + incoming
    if new_stock <= 0:
        return money(unit_cost)
    return money((Decimal(on_hand) * cost + Decimal(incoming) * unit_cost) / Decimal(new_stock))


def _lock_product(product_id) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    return product


def receive_purchase(
    *,
    warehouse_id: int,
    items: list[dict],
    supplier_name: str | None = None,
    invoice_number: str | None = None,
    notes: str | None = None,
    tax=None,
    discount=None,
    payment_method: str | None = None,
    user_id: int | None = None,
) -> Purchase:
    """
    Receive stock from a supplier.

    Each item: {"product_id", "quantity", "unit_cost", "presentation_id"?,
    "stock_quantity"?}; unit_cost is per base unit.
    total = subtotal + tax - discount.
    """
    if not items:
        raise ValidationError("Purchase requires at least one item")
    tax_amount = optional_money(tax, field="tax") or ZERO
    discount_amount = optional_money(discount, field="discount") or ZERO
    if tax_amount < 0 or discount_amount < 0:
        raise ValidationError("tax and discount cannot be negative")

    def _op():
        warehouse = get_warehouse(warehouse_id)
        purchase = Purchase(
            warehouse_id=warehouse.id,
            supplier_name=supplier_name,
            invoice_number=invoice_number,
            notes=notes,
            subtotal=ZERO,
            tax=tax_amount,
            discount=discount_amount,
            total=ZERO,
            payment_method=payment_method or None,
            user_id=user_id,
        )
        db.session.add(purchase)
        db.session.flush()

        subtotal = ZERO
        for index, item in enumerate(items):
            if not isinstance(item, dict) or item.get("product_id") is None:
                raise ValidationError(f"Line {index + 1}: product_id required")
            product = _lock_product(item["product_id"])
            qty = parse_quantity(item.get("quantity"))
            unit_cost = money(item.get("unit_cost"), field="unit_cost")
            if unit_cost < 0:
                raise ValidationError(f"Line {index + 1}: unit_cost cannot be negative")

            presentation = None
            if item.get("presentation_id") is not None:
                presentation = db.session.get(Presentation, item["presentation_id"])
                if presentation is None or presentation.product_id != product.id:
                    raise NotFoundError("Presentation not found", {"presentation_id": item["presentation_id"]})
            base_quantity = resolve_base_quantity(product, qty, presentation, item.get("stock_quantity"))

            line_subtotal = money(unit_cost * base_quantity)
            subtotal += line_subtotal
            db.session.add(PurchaseItem(
                purchase_id=purchase.id,
                product_id=product.id,
                presentation_id=presentation.id if presentation else None,
                quantity=qty,
                base_quantity=base_quantity,
                unit_cost=unit_cost,
                subtotal=line_subtotal,
            ))

            product.cost = moving_average_cost(
                get_base_stock(product.id), money(product.cost), base_quantity, unit_cost
            )
            label = f"Purchase {purchase.id}" + (f" - {supplier_name}" if supplier_name else "")
            _apply_movement_inner(
                product_id=product.id,
                warehouse_id=warehouse.id,
                quantity=base_quantity,
                type=MOVEMENT_IN,
                unit_cost=unit_cost,
                reference_id=f"PURCHASE-{purchase.id}",
                note=label,
                user_id=user_id,
            )

        purchase.subtotal = subtotal
        purchase.total = subtotal + tax_amount - discount_amount
        if purchase.total < 0:
            raise ValidationError("Purchase total cannot be negative")

        session = get_open_session(warehouse.id)
        if session is not None and classify_payment_method(payment_method) == "cash" and purchase.total > 0:
            _post_cash_movement_inner(
                session,
                type=CASH_OUT,
                amount=purchase.total,
                reference_type=REF_PURCHASE,
                reference_id=purchase.id,
                notes=f"Purchase {purchase.id}",
                user_id=user_id,
            )
        db.session.flush()
        return purchase

    purchase = run_in_transaction(_op)
    current_app.logger.info("Purchase %s received into warehouse %s (%s)", purchase.id, warehouse_id, purchase.total)
    return purchase


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFoundError("Purchase not found", {"purchase_id": purchase_id})
    return purchase


def delete_purchase(purchase_id: int, *, user_id: int | None = None) -> None:
    """
    Undo a receipt: OUT movements for every line (fails if the stock was
    already sold) and removal of its cash posting. Product cost is left as is.
    """
    def _op():
        purchase = get_purchase(purchase_id)
        for item in purchase.items:
            _apply_movement_inner(
                product_id=item.product_id,
                warehouse_id=purchase.warehouse_id,
                quantity=item.base_quantity,
                type=MOVEMENT_OUT,
                reference_id=f"DELETE-PURCHASE-{purchase.id}",
                note=f"Purchase {purchase.id} deleted",
                user_id=user_id,
            )
        _remove_postings_inner(REF_PURCHASE, purchase.id)
        db.session.delete(purchase)

    run_in_transaction(_op)
    current_app.logger.info("Purchase %s deleted", purchase_id)


def list_purchases(*, warehouse_id: int | None = None, limit: int = 50, offset: int = 0) -> tuple[list[Purchase], int]:
    query = db.session.query(Purchase)
    if warehouse_id is not None:
        query = query.filter(Purchase.warehouse_id == warehouse_id)
    total = query.count()
    rows = query.order_by(Purchase.created_at.desc(), Purchase.id.desc()).offset(offset).limit(limit).all()
    return rows, total
