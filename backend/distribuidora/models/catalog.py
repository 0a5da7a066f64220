from __future__ import annotations

from ..extensions import db
from ..money import to_str
from ..time_utils import to_utc_z, utcnow


class Warehouse(db.Model):
    """
    Stock location. Each warehouse has its own stock levels and its own
    cash drawer; the primary warehouse is the one auto-opened at start-up.
    """
    __tablename__ = "warehouses"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_warehouses_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "is_primary": self.is_primary,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    STOCK: on-hand lives only in StockLevel rows (one per warehouse).
    base_stock is derived from them, so there is a single source of truth
    and every change to it goes through the inventory ledger.

    COST: moving-average unit cost, recomputed by each incoming purchase.
    Products are never deleted; is_active=False hides them from sales.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Indivisible unit stock is counted in (kg, unidad, ...)
    base_unit = db.Column(db.String(16), nullable=False, default="unidad")

    cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    default_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    stock_levels = db.relationship("StockLevel", back_populates="product", lazy=True)
    presentations = db.relationship("Presentation", back_populates="product", lazy=True)

    @property
    def base_stock(self) -> int:
        return sum(level.on_hand for level in self.stock_levels)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "base_unit": self.base_unit,
            "base_stock": self.base_stock,
            "cost": to_str(self.cost),
            "default_price": to_str(self.default_price),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Presentation(db.Model):
    """
    Packaging variant of a product (e.g. "Bulto 50 kg").

    units_per_presentation is the authoritative base-unit multiplier; sales
    derive base quantities from it rather than trusting the client's math.
    """
    __tablename__ = "presentations"
    __table_args__ = (
        db.UniqueConstraint("product_id", "name", name="uq_presentations_product_name"),
        db.CheckConstraint("units_per_presentation >= 1", name="ck_presentations_units_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    units_per_presentation = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Numeric(12, 2), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    product = db.relationship("Product", back_populates="presentations")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "units_per_presentation": self.units_per_presentation,
            "price": to_str(self.price),
            "is_active": self.is_active,
        }
