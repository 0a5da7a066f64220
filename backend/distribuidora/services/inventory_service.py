# Overview: Stock ledger and movement recorder; the only writer of on-hand quantities.

# backend/distribuidora/services/inventory_service.py

"""
Inventory Ledger Invariants (authoritative)

- StockLevel is keyed by (product_id, warehouse_id) and created lazily.
- on_hand is an integer count of base units and never goes negative; a
  movement that would take it below zero aborts its whole unit of work.
- Every change to on_hand appends exactly one InventoryMovement in the same
  unit. Movements are append-only; reversals are new movements.
- Signed movement quantity: -q for OUT, +q for IN and ADJUST. ADJUST sets an
  absolute level (q), so its row records the level and its note records the
  delta it applied.
- After each movement the low-stock rule runs; its failure never undoes the
  movement.

Public functions commit their own unit of work. The *_inner helpers never
commit, so sales, transfers, orders and purchases can compose several
movements into one atomic unit.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryMovement, Product, StockLevel, Warehouse
from ..models.inventory import MOVEMENT_ADJUST, MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TYPES
from ..money import optional_money, to_decimal
from .concurrency import lock_for_update, run_in_transaction
from .notification_service import notify_low_stock


def get_product(product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    if require_active and not product.is_active:
        raise ValidationError(f"Product {product.name} is inactive", {"product_id": product_id})
    return product


def get_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(f"Warehouse {warehouse_id} not found", {"warehouse_id": warehouse_id})
    return warehouse


def normalize_quantity(quantity) -> int:
    """Truncate toward zero, then take the absolute value. Must end up > 0."""
    value = abs(int(to_decimal(quantity, field="quantity")))
    if value <= 0:
        raise ValidationError("Quantity must be > 0")
    return value


def ensure_stock_level(product_id: int, warehouse_id: int, *, lock: bool = False) -> StockLevel:
    """
    Return the level for (product, warehouse), creating it at 0/0 if missing.

    Safe to call repeatedly (idempotent). With lock=True the existing row is
    read FOR UPDATE. A concurrent creator of the same key makes the losing
    unit fail on the unique constraint; the unit of work replays it and the
    replay finds the row.
    """
    query = db.session.query(StockLevel).filter_by(product_id=product_id, warehouse_id=warehouse_id)
    if lock:
        query = lock_for_update(query)
    level = query.first()
    if level is not None:
        return level

    level = StockLevel(product_id=product_id, warehouse_id=warehouse_id, on_hand=0, min_stock=0)
    db.session.add(level)
    db.session.flush()
    return level


def get_on_hand(product_id: int, warehouse_id: int, *, lock: bool = False) -> int:
    query = db.session.query(StockLevel).filter_by(product_id=product_id, warehouse_id=warehouse_id)
    if lock:
        query = lock_for_update(query)
    level = query.first()
    return level.on_hand if level else 0


def get_base_stock(product_id: int, warehouse_id: int | None = None) -> int:
    """On-hand in base units, for one warehouse or across all of them."""
    query = db.session.query(func.coalesce(func.sum(StockLevel.on_hand), 0)).filter(
        StockLevel.product_id == product_id
    )
    if warehouse_id is not None:
        query = query.filter(StockLevel.warehouse_id == warehouse_id)
    return int(query.scalar() or 0)


def get_movement_balance(product_id: int, warehouse_id: int) -> int:
    """Sum of signed movement quantities for (product, warehouse)."""
    total = db.session.query(func.coalesce(func.sum(InventoryMovement.quantity), 0)).filter(
        InventoryMovement.product_id == product_id,
        InventoryMovement.warehouse_id == warehouse_id,
    ).scalar()
    return int(total or 0)


def _apply_movement_inner(
    *,
    product_id: int,
    warehouse_id: int,
    quantity,
    type: str,
    unit_cost=None,
    reference_id: str | None = None,
    note: str | None = None,
    user_id: int | None = None,
) -> InventoryMovement:
    """Core movement logic without commit. Callers own the unit of work."""
    if type not in MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type {type!r}", {"allowed": list(MOVEMENT_TYPES)})
    qty = normalize_quantity(quantity)
    cost: Decimal | None = optional_money(unit_cost, field="unit_cost")
    if cost is not None and cost < 0:
        raise ValidationError("unit_cost cannot be negative")

    get_product(product_id)
    get_warehouse(warehouse_id)

    level = ensure_stock_level(product_id, warehouse_id, lock=True)
    current = level.on_hand

    if type == MOVEMENT_IN:
        new_on_hand = current + qty
    elif type == MOVEMENT_OUT:
        new_on_hand = current - qty
    else:
        new_on_hand = qty

    if new_on_hand < 0:
        raise InsufficientStockError(
            "Insufficient stock: on-hand cannot go negative",
            product_id=product_id,
            warehouse_id=warehouse_id,
            available=current,
            requested=qty,
        )

    level.on_hand = new_on_hand

    if type == MOVEMENT_ADJUST:
        delta = new_on_hand - current
        adjust_note = f"delta={delta:+d}"
        note = f"{note} ({adjust_note})" if note else adjust_note

    movement = InventoryMovement(
        product_id=product_id,
        warehouse_id=warehouse_id,
        type=type,
        quantity=-qty if type == MOVEMENT_OUT else qty,
        unit_cost=cost,
        reference_id=str(reference_id) if reference_id is not None else None,
        note=note,
        user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()

    notify_low_stock(level)
    return movement


def apply_movement(
    *,
    product_id: int,
    warehouse_id: int,
    quantity,
    type: str,
    unit_cost=None,
    reference_id: str | None = None,
    note: str | None = None,
    user_id: int | None = None,
) -> InventoryMovement:
    """
    Apply one IN/OUT/ADJUST movement and record it, as one unit of work.

    Raises:
        ValidationError: quantity truncates to 0, unknown type, bad cost
        NotFoundError: unknown product or warehouse
        InsufficientStockError: the result would be negative (nothing written)
    """
    def _op():
        return _apply_movement_inner(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            type=type,
            unit_cost=unit_cost,
            reference_id=reference_id,
            note=note,
            user_id=user_id,
        )

    return run_in_transaction(_op)


def set_min_stock(*, product_id: int, warehouse_id: int, min_stock: int) -> StockLevel:
    if isinstance(min_stock, bool) or not isinstance(min_stock, int) or min_stock < 0:
        raise ValidationError("min_stock must be a non-negative integer")

    def _op():
        get_product(product_id)
        get_warehouse(warehouse_id)
        level = ensure_stock_level(product_id, warehouse_id, lock=True)
        level.min_stock = min_stock
        return level

    return run_in_transaction(_op)


def get_stock_levels(*, warehouse_id: int | None = None, limit: int = 1000) -> list[StockLevel]:
    query = db.session.query(StockLevel)
    if warehouse_id is not None:
        query = query.filter(StockLevel.warehouse_id == warehouse_id)
    return query.order_by(StockLevel.warehouse_id, StockLevel.product_id).limit(limit).all()


def get_low_stock(*, warehouse_id: int | None = None, limit: int = 500) -> list[StockLevel]:
    query = db.session.query(StockLevel).filter(StockLevel.on_hand <= StockLevel.min_stock)
    if warehouse_id is not None:
        query = query.filter(StockLevel.warehouse_id == warehouse_id)
    return query.order_by(StockLevel.warehouse_id, StockLevel.product_id).limit(limit).all()


def list_movements(
    *,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    reference_id: str | None = None,
    limit: int = 200,
) -> list[InventoryMovement]:
    query = db.session.query(InventoryMovement)
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if warehouse_id is not None:
        query = query.filter(InventoryMovement.warehouse_id == warehouse_id)
    if reference_id is not None:
        query = query.filter(InventoryMovement.reference_id == str(reference_id))
    return query.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc()).limit(limit).all()
