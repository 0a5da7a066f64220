from __future__ import annotations

from ..extensions import db
from ..money import to_str
from ..time_utils import to_utc_z, utcnow

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUST = "ADJUST"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUST)

NOTIFICATION_LOW_STOCK = "LOW_STOCK"


class StockLevel(db.Model):
    """
    On-hand quantity of one product in one warehouse.

    Only the inventory ledger writes on_hand. version_id lets a backend
    without SELECT ... FOR UPDATE detect a lost update (StaleDataError).
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_stock_levels_product_warehouse"),
        db.CheckConstraint("on_hand >= 0", name="ck_stock_levels_on_hand_nonnegative"),
        db.CheckConstraint("min_stock >= 0", name="ck_stock_levels_min_stock_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    on_hand = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", back_populates="stock_levels")
    warehouse = db.relationship("Warehouse", backref=db.backref("stock_levels", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low(self) -> bool:
        return self.on_hand <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "on_hand": self.on_hand,
            "min_stock": self.min_stock,
            "is_low": self.is_low,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only stock fact.

    quantity is signed: negative for OUT, positive for IN. For ADJUST it is
    the absolute level that was set (the applied delta is kept in note).
    Rows are never updated or deleted; a reversal is a new movement.
    reference_id correlates the legs of one operation (transfer UUID,
    sale id, order id, purchase id).
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_invmov_product_warehouse_created", "product_id", "warehouse_id", "created_at"),
        db.Index("ix_invmov_reference", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=True)

    reference_id = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "type": self.type,
            "quantity": self.quantity,
            "unit_cost": to_str(self.unit_cost),
            "reference_id": self.reference_id,
            "note": self.note,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


class Notification(db.Model):
    """Operator notification (low stock). Resolved, never deleted."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_open", "resolved_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False, index=True)
    message = db.Column(db.String(255), nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)
    on_hand = db.Column(db.Integer, nullable=True)
    min_stock = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    resolved_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "on_hand": self.on_hand,
            "min_stock": self.min_stock,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
        }
