from __future__ import annotations

from ..extensions import db
from ..money import to_str
from ..time_utils import to_utc_z, utcnow

LOAN_ACTIVE = "ACTIVE"
LOAN_PAID = "PAID"
LOAN_CANCELLED = "CANCELLED"


class Expense(db.Model):
    """
    Operating expense.

    date is the business date; created_at is when it was recorded. Cash
    reconciliation windows use created_at ("recorded during this shift").
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)
    date = db.Column(db.DateTime, nullable=False, default=utcnow)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "category": self.category,
            "description": self.description,
            "amount": to_str(self.amount),
            "payment_method": self.payment_method,
            "date": to_utc_z(self.date),
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


class Purchase(db.Model):
    """Supplier purchase received into a warehouse."""
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_warehouse_created", "warehouse_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    supplier_name = db.Column(db.String(128), nullable=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    items = db.relationship(
        "PurchaseItem",
        back_populates="purchase",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "supplier_name": self.supplier_name,
            "invoice_number": self.invoice_number,
            "notes": self.notes,
            "subtotal": to_str(self.subtotal),
            "tax": to_str(self.tax),
            "discount": to_str(self.discount),
            "total": to_str(self.total),
            "payment_method": self.payment_method,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    presentation_id = db.Column(db.Integer, db.ForeignKey("presentations.id"), nullable=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    base_quantity = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=False)  # per base unit
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    purchase = db.relationship("Purchase", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "presentation_id": self.presentation_id,
            "quantity": str(self.quantity),
            "base_quantity": self.base_quantity,
            "unit_cost": to_str(self.unit_cost),
            "subtotal": to_str(self.subtotal),
        }


class Loan(db.Model):
    """Cash lent out of the drawer (employees, third parties)."""
    __tablename__ = "loans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)
    borrower_name = db.Column(db.String(128), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    interest_rate = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    balance = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=LOAN_ACTIVE, index=True)
    payment_method = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    payments = db.relationship("LoanPayment", back_populates="loan", lazy=True, order_by="LoanPayment.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "borrower_name": self.borrower_name,
            "amount": to_str(self.amount),
            "interest_rate": to_str(self.interest_rate),
            "total_amount": to_str(self.total_amount),
            "paid_amount": to_str(self.paid_amount),
            "balance": to_str(self.balance),
            "status": self.status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class LoanPayment(db.Model):
    __tablename__ = "loan_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    loan_id = db.Column(db.Integer, db.ForeignKey("loans.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    loan = db.relationship("Loan", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "loan_id": self.loan_id,
            "amount": to_str(self.amount),
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
