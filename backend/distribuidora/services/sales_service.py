"""
Sales Service - atomic point-of-sale transactions

WHY: A sale is only real if its items, its stock debit and its movements
all exist. Everything from validation to the optional cash posting runs in
one unit of work; any failure leaves no sale, no items, no stock change and
no movement behind.

MONEY: Decimal throughout. Each line subtotal is rounded half-up to 2
places once; header totals are exact sums of already-rounded values.

BASE QUANTITIES: a presentation's stored units_per_presentation is the
authority. A caller-supplied stock_quantity is accepted only as a
cross-check and rejected when it disagrees.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CashSession, Presentation, Product, ProductReturn, Sale, SaleItem
from ..models.cash import CASH_IN, REF_SALE
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..models.sales import PRICE_TYPE_DEFAULT
from ..money import ZERO, money, optional_money, quantity as parse_quantity, whole_units
from .cash_service import _post_cash_movement_inner, _remove_postings_inner
from .concurrency import run_in_transaction
from .inventory_service import _apply_movement_inner, get_on_hand, get_product, get_warehouse


@dataclass(frozen=True)
class PricedLine:
    """A basket line after product, price and base quantity are resolved."""
    product: Product
    presentation_id: int | None
    quantity: Decimal
    base_quantity: int
    unit_price: Decimal
    subtotal: Decimal


def _resolve_presentation(product: Product, presentation_id) -> Presentation:
    presentation = db.session.get(Presentation, presentation_id)
    if presentation is None or presentation.product_id != product.id:
        raise NotFoundError(
            f"Presentation {presentation_id} not found for product {product.name}",
            {"product_id": product.id, "presentation_id": presentation_id},
        )
    if not presentation.is_active:
        raise ValidationError(f"Presentation {presentation.name} is inactive")
    return presentation


def resolve_base_quantity(product: Product, qty: Decimal, presentation: Presentation | None, stock_quantity=None) -> int:
    """
    Base units debited for a line.

    With a presentation: qty * units_per_presentation, and a supplied
    stock_quantity must match it. Without one: stock_quantity or qty.
    """
    if presentation is not None:
        base = whole_units(qty * presentation.units_per_presentation)
        if stock_quantity is not None and whole_units(stock_quantity, field="stock_quantity") != base:
            raise ValidationError(
                f"stock_quantity does not match presentation {presentation.name}",
                {
                    "product_id": product.id,
                    "presentation_id": presentation.id,
                    "expected": base,
                    "received": str(stock_quantity),
                },
            )
        return base
    if stock_quantity is not None:
        return whole_units(stock_quantity, field="stock_quantity")
    return whole_units(qty)


def price_lines(items: list[dict]) -> list[PricedLine]:
    """Resolve and price every line. Reads only; nothing is written."""
    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"Line {index + 1} must be an object")
        product_id = item.get("product_id")
        if product_id is None:
            raise ValidationError(f"Line {index + 1}: product_id required")
        product = get_product(product_id, require_active=True)
        qty = parse_quantity(item.get("quantity"))

        presentation = None
        if item.get("presentation_id") is not None:
            presentation = _resolve_presentation(product, item["presentation_id"])

        base_quantity = resolve_base_quantity(product, qty, presentation, item.get("stock_quantity"))

        unit_price = optional_money(item.get("unit_price"), field="unit_price")
        if unit_price is None:
            if presentation is not None and presentation.price is not None:
                unit_price = money(presentation.price)
            else:
                unit_price = money(product.default_price)
        if unit_price < 0:
            raise ValidationError(f"Line {index + 1}: unit_price cannot be negative")

        lines.append(PricedLine(
            product=product,
            presentation_id=presentation.id if presentation else None,
            quantity=qty,
            base_quantity=base_quantity,
            unit_price=unit_price,
            subtotal=money(unit_price * qty),
        ))
    return lines


def validate_stock(warehouse_id: int, lines: list[PricedLine]) -> None:
    """
    Check every line before any mutation; the basket fails as a whole.
    Lines of the same product are aggregated. Levels are read FOR UPDATE.
    """
    requested: dict[int, int] = {}
    names: dict[int, str] = {}
    for line in lines:
        requested[line.product.id] = requested.get(line.product.id, 0) + line.base_quantity
        names[line.product.id] = line.product.name

    insufficient = []
    for product_id, qty in requested.items():
        on_hand = get_on_hand(product_id, warehouse_id, lock=True)
        if on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "product_name": names[product_id],
                "warehouse_id": warehouse_id,
                "available": on_hand,
                "requested": qty,
                "shortfall": qty - on_hand,
            })

    if len(insufficient) == 1:
        row = insufficient[0]
        raise InsufficientStockError(
            f"Insufficient stock for {row['product_name']}. Available: {row['available']}, required: {row['requested']}",
            product_id=row["product_id"],
            warehouse_id=warehouse_id,
            available=row["available"],
            requested=row["requested"],
        )
    if insufficient:
        raise InsufficientStockError("Insufficient stock to complete sale", items=insufficient)


def _create_sale_inner(
    *,
    warehouse_id: int,
    items: list[dict],
    payment_method: str | None = None,
    price_type: str | None = None,
    cash_received=None,
    change=None,
    domicilio_price=None,
    user_id: int | None = None,
    cash_session: CashSession | None = None,
) -> Sale:
    if not items:
        raise ValidationError("Sale requires at least one item")
    get_warehouse(warehouse_id)

    lines = price_lines(items)
    validate_stock(warehouse_id, lines)

    subtotal = sum((line.subtotal for line in lines), ZERO)
    domicilio = optional_money(domicilio_price, field="domicilio_price")
    if domicilio is not None and domicilio < 0:
        raise ValidationError("domicilio_price cannot be negative")
    total = subtotal + (domicilio or ZERO)

    sale = Sale(
        warehouse_id=warehouse_id,
        user_id=user_id,
        subtotal=subtotal,
        domicilio=domicilio if domicilio else None,
        total=total,
        payment_method=payment_method or None,
        price_type=price_type or PRICE_TYPE_DEFAULT,
        cash_received=optional_money(cash_received, field="cash_received") or None,
        change=optional_money(change, field="change") or None,
    )
    db.session.add(sale)
    db.session.flush()

    for line in lines:
        db.session.add(SaleItem(
            sale_id=sale.id,
            product_id=line.product.id,
            presentation_id=line.presentation_id,
            quantity=line.quantity,
            base_quantity=line.base_quantity,
            unit_price=line.unit_price,
            subtotal=line.subtotal,
        ))
        # Re-checks on-hand under the row lock; a concurrent debit aborts the sale here
        _apply_movement_inner(
            product_id=line.product.id,
            warehouse_id=warehouse_id,
            quantity=line.base_quantity,
            type=MOVEMENT_OUT,
            reference_id=str(sale.id),
            note=f"Sale {sale.id}",
            user_id=user_id,
        )

    if cash_session is not None and total > 0:
        _post_cash_movement_inner(
            cash_session,
            type=CASH_IN,
            amount=total,
            reference_type=REF_SALE,
            reference_id=sale.id,
            notes=f"Sale {sale.id}",
            user_id=user_id,
        )

    db.session.flush()
    return sale


def create_sale(
    *,
    warehouse_id: int,
    items: list[dict],
    payment_method: str | None = None,
    price_type: str | None = None,
    cash_received=None,
    change=None,
    domicilio_price=None,
    user_id: int | None = None,
    cash_session: CashSession | None = None,
) -> Sale:
    """
    Create a completed sale.

    Each item: {"product_id", "quantity", "unit_price"?, "presentation_id"?,
    "stock_quantity"?}. When cash_session is given, a CashMovement(IN, SALE)
    for the total is posted in the same unit.

    Raises:
        ValidationError: empty basket, bad quantity/price, multiplier mismatch
        NotFoundError: unknown warehouse, product or presentation
        InsufficientStockError: any line is under-stocked (nothing written)
    """
    sale = run_in_transaction(lambda: _create_sale_inner(
        warehouse_id=warehouse_id,
        items=items,
        payment_method=payment_method,
        price_type=price_type,
        cash_received=cash_received,
        change=change,
        domicilio_price=domicilio_price,
        user_id=user_id,
        cash_session=cash_session,
    ))
    current_app.logger.info("Sale %s created in warehouse %s for %s", sale.id, warehouse_id, sale.total)
    return sale


def delete_sale(sale_id: int, user_id: int | None = None) -> None:
    """
    Delete a sale and undo its effects in one unit: an IN movement per item
    restoring exactly its base quantity, and removal of its cash postings.

    A sale that settles a credit order cannot be deleted here; its stock
    belongs to the order. Neither can a sale with returns recorded against
    it, nor one whose cash posting sits in a closed session.
    """
    def _op():
        sale = db.session.get(Sale, sale_id)
        if sale is None:
            raise NotFoundError("Sale not found", {"sale_id": sale_id})
        if sale.order_id is not None:
            raise ConflictError(
                "Sale settles a credit order and cannot be deleted",
                {"sale_id": sale_id, "order_id": sale.order_id},
            )
        if db.session.query(ProductReturn.id).filter_by(sale_id=sale.id).first() is not None:
            raise ConflictError(
                "Sale has product returns; delete them first",
                {"sale_id": sale_id},
            )

        for item in sale.items:
            _apply_movement_inner(
                product_id=item.product_id,
                warehouse_id=sale.warehouse_id,
                quantity=item.base_quantity,
                type=MOVEMENT_IN,
                reference_id=f"DELETE-{sale.id}",
                note=f"Sale {sale.id} deleted",
                user_id=user_id,
            )

        _remove_postings_inner(REF_SALE, sale.id)
        db.session.delete(sale)

    run_in_transaction(_op)
    current_app.logger.info("Sale %s deleted", sale_id)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale


def list_sales(*, warehouse_id: int | None = None, limit: int = 50, offset: int = 0) -> tuple[list[Sale], int]:
    query = db.session.query(Sale)
    if warehouse_id is not None:
        query = query.filter(Sale.warehouse_id == warehouse_id)
    total = query.count()
    rows = query.order_by(Sale.created_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()
    return rows, total
