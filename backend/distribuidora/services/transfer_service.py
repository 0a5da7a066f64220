# backend/distribuidora/services/transfer_service.py
"""
Warehouse-to-warehouse stock transfer.

One correlation id (UUID) is stamped on both legs: OUT at the source, then
IN at the destination, inside a single unit of work. If the OUT leg fails
the IN leg never runs and nothing is written, so the product's total
on-hand across warehouses is conserved.
"""
from __future__ import annotations

import uuid

from flask import current_app

from ..errors import ValidationError
from ..models import InventoryMovement
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from .concurrency import run_in_transaction
from .inventory_service import _apply_movement_inner, get_warehouse, normalize_quantity


def transfer_stock(
    *,
    product_id: int,
    from_warehouse_id: int,
    to_warehouse_id: int,
    quantity,
    user_id: int | None = None,
) -> InventoryMovement:
    """
    Move quantity base units of a product between warehouses.

    Returns:
        The IN movement at the destination.

    Raises:
        ValidationError: same warehouse on both ends, or quantity <= 0
        NotFoundError: unknown product or warehouse
        InsufficientStockError: the source cannot cover the quantity
    """
    if from_warehouse_id == to_warehouse_id:
        raise ValidationError("Cannot transfer to the same warehouse")
    qty = normalize_quantity(quantity)

    def _op():
        reference_id = str(uuid.uuid4())
        source = get_warehouse(from_warehouse_id)
        destination = get_warehouse(to_warehouse_id)

        _apply_movement_inner(
            product_id=product_id,
            warehouse_id=source.id,
            quantity=qty,
            type=MOVEMENT_OUT,
            reference_id=reference_id,
            note=f"Transfer to {destination.code}",
            user_id=user_id,
        )
        return _apply_movement_inner(
            product_id=product_id,
            warehouse_id=destination.id,
            quantity=qty,
            type=MOVEMENT_IN,
            reference_id=reference_id,
            note=f"Transfer from {source.code}",
            user_id=user_id,
        )

    movement = run_in_transaction(_op)
    current_app.logger.info(
        "Transferred %s units of product %s from warehouse %s to %s (ref %s)",
        qty,
        product_id,
        from_warehouse_id,
        to_warehouse_id,
        movement.reference_id,
    )
    return movement
