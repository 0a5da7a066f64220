from __future__ import annotations

from ..extensions import db
from ..money import to_str
from ..time_utils import to_utc_z, utcnow

PRICE_TYPE_DEFAULT = "publico"

SALE_COMPLETED = "COMPLETED"
SALE_RETURNED = "RETURNED"
SALE_STATUSES = (SALE_COMPLETED, SALE_RETURNED)

ORDER_PENDING = "PENDING"
ORDER_PAID = "PAID"
ORDER_CANCELLED = "CANCELLED"
ORDER_RETURNED = "RETURNED"
ORDER_STATUSES = (ORDER_PENDING, ORDER_PAID, ORDER_CANCELLED, ORDER_RETURNED)


class Sale(db.Model):
    """
    Completed point-of-sale transaction.

    Created atomically with its items and their OUT movements. Immutable
    afterwards; deletion reverses the stock effect and removes the cash
    postings that reference it.

    order_id is set when the sale settles a credit order (fiado); the
    stock already left when the order was created.

    status becomes RETURNED once every unit it sold has come back through
    product returns; reconciliation leaves such sales out.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_warehouse_created", "warehouse_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    domicilio = db.Column(db.Numeric(12, 2), nullable=True)  # delivery fee
    total = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(32), nullable=True)  # None means cash
    price_type = db.Column(db.String(32), nullable=False, default=PRICE_TYPE_DEFAULT)
    cash_received = db.Column(db.Numeric(12, 2), nullable=True)
    change = db.Column(db.Numeric(12, 2), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, server_default=SALE_COMPLETED)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    order = db.relationship("Order", foreign_keys=[order_id])
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "subtotal": to_str(self.subtotal),
            "domicilio": to_str(self.domicilio),
            "total": to_str(self.total),
            "payment_method": self.payment_method,
            "price_type": self.price_type,
            "cash_received": to_str(self.cash_received),
            "change": to_str(self.change),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("base_quantity > 0", name="ck_sale_items_base_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    presentation_id = db.Column(db.Integer, db.ForeignKey("presentations.id"), nullable=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)  # sale units
    base_quantity = db.Column(db.Integer, nullable=False)  # debited from stock
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "presentation_id": self.presentation_id,
            "quantity": str(self.quantity),
            "base_quantity": self.base_quantity,
            "unit_price": to_str(self.unit_price),
            "subtotal": to_str(self.subtotal),
        }


class Order(db.Model):
    """
    Credit sale ("fiado").

    LIFECYCLE:
    - PENDING: goods delivered, stock already debited, payment deferred
    - PAID: a Sale was created for it (sale_id), paid_at stamped
    - CANCELLED: stock credited back
    - RETURNED: goods came back after payment; every unit of the settling
      sale was returned
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_warehouse_status_created", "warehouse_id", "status", "created_at"),
        db.Index("ix_orders_warehouse_status_paid", "warehouse_id", "status", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    customer_name = db.Column(db.String(128), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.DateTime, nullable=True)

    price_type = db.Column(db.String(32), nullable=False, default=PRICE_TYPE_DEFAULT)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING, index=True)

    paid_at = db.Column(db.DateTime, nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)
    paid_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    # Plain column: sales.order_id already points back, avoiding an FK cycle
    sale_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "user_id": self.user_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "price_type": self.price_type,
            "total": to_str(self.total),
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "payment_method": self.payment_method,
            "paid_by_user_id": self.paid_by_user_id,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("base_quantity > 0", name="ck_order_items_base_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    presentation_id = db.Column(db.Integer, db.ForeignKey("presentations.id"), nullable=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    base_quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    order = db.relationship("Order", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "presentation_id": self.presentation_id,
            "quantity": str(self.quantity),
            "base_quantity": self.base_quantity,
            "unit_price": to_str(self.unit_price),
            "subtotal": to_str(self.subtotal),
        }


class ProductReturn(db.Model):
    """
    Goods handed back by a customer.

    Puts base_quantity back into stock with an IN movement referenced
    RETURN-<id>. A cash refund is posted to the open session as
    CashMovement(OUT, RETURN). sale_id is optional; when set, the returned
    quantity is bounded by what that sale sold.
    """
    __tablename__ = "product_returns"
    __table_args__ = (
        db.CheckConstraint("base_quantity > 0", name="ck_product_returns_base_quantity_positive"),
        db.Index("ix_product_returns_warehouse_created", "warehouse_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    presentation_id = db.Column(db.Integer, db.ForeignKey("presentations.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    base_quantity = db.Column(db.Integer, nullable=False)  # credited to stock
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)  # refunded
    refund_method = db.Column(db.String(32), nullable=True)  # None means cash

    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    sale = db.relationship("Sale")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "presentation_id": self.presentation_id,
            "user_id": self.user_id,
            "quantity": str(self.quantity),
            "base_quantity": self.base_quantity,
            "unit_price": to_str(self.unit_price),
            "total": to_str(self.total),
            "refund_method": self.refund_method,
            "reason": self.reason,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
