from __future__ import annotations

from ..extensions import db
from ..money import to_str
from ..time_utils import to_utc_z, utcnow

CASH_IN = "IN"
CASH_OUT = "OUT"
CASH_MOVEMENT_TYPES = (CASH_IN, CASH_OUT)

REF_SALE = "SALE"
REF_ORDER = "ORDER"
REF_EXPENSE = "EXPENSE"
REF_PURCHASE = "PURCHASE"
REF_LOAN = "LOAN"
REF_LOAN_PAYMENT = "LOAN_PAYMENT"
REF_RETURN = "RETURN"
REFERENCE_TYPES = (REF_SALE, REF_ORDER, REF_EXPENSE, REF_PURCHASE, REF_LOAN, REF_LOAN_PAYMENT, REF_RETURN)


class CashDrawer(db.Model):
    """
    Session registry: one row per warehouse.

    open_session_id is the only place the current session is looked up.
    Opening locks this row before check-and-insert, so two openers of the
    same warehouse serialize on it.
    """
    __tablename__ = "cash_drawers"
    __table_args__ = (
        db.UniqueConstraint("warehouse_id", name="uq_cash_drawers_warehouse"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)
    open_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    open_session = db.relationship("CashSession", foreign_keys=[open_session_id])
    __mapper_args__ = {"version_id_col": version_id}


class CashSession(db.Model):
    """
    Cash drawer shift for one warehouse.

    LIFECYCLE:
    - open: closed_at is NULL, accepts cash movements
    - closed: closed_at set; closing_amount, expected_cash, cash_difference
      and the aggregate totals are fixed. Terminal.

    At most one open session per warehouse (registry + partial unique index).
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_sessions_open_warehouse",
            "warehouse_id",
            unique=True,
            sqlite_where=db.text("closed_at IS NULL"),
            postgresql_where=db.text("closed_at IS NULL"),
        ),
        db.Index("ix_cash_sessions_warehouse_closed", "warehouse_id", "closed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    opening_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    opened_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    closed_at = db.Column(db.DateTime, nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closing_amount = db.Column(db.Numeric(12, 2), nullable=True)
    expected_cash = db.Column(db.Numeric(12, 2), nullable=True)
    cash_difference = db.Column(db.Numeric(12, 2), nullable=True)

    total_sales = db.Column(db.Numeric(12, 2), nullable=True)
    total_cash = db.Column(db.Numeric(12, 2), nullable=True)
    total_transfer = db.Column(db.Numeric(12, 2), nullable=True)
    total_fiados = db.Column(db.Numeric(12, 2), nullable=True)
    sales_count = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    warehouse = db.relationship("Warehouse")
    opened_by = db.relationship("User", foreign_keys=[opened_by_user_id])
    closed_by = db.relationship("User", foreign_keys=[closed_by_user_id])
    movements = db.relationship(
        "CashMovement",
        back_populates="session",
        lazy=True,
        order_by="CashMovement.created_at.desc()",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "opening_amount": to_str(self.opening_amount),
            "opened_at": to_utc_z(self.opened_at),
            "opened_by": self.opened_by.display_name if self.opened_by else None,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by": self.closed_by.display_name if self.closed_by else None,
            "closing_amount": to_str(self.closing_amount),
            "expected_cash": to_str(self.expected_cash),
            "cash_difference": to_str(self.cash_difference),
            "total_sales": to_str(self.total_sales),
            "total_cash": to_str(self.total_cash),
            "total_transfer": to_str(self.total_transfer),
            "total_fiados": to_str(self.total_fiados),
            "sales_count": self.sales_count,
            "notes": self.notes,
            "is_open": self.is_open,
        }


class CashMovement(db.Model):
    """
    Cash in/out of a session: manual deposits/withdrawals and automatic
    postings. reference_type/reference_id link back to the source event.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_reference", "reference_type", "reference_id"),
        db.CheckConstraint("amount > 0", name="ck_cash_movements_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)
    type = db.Column(db.String(8), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    session = db.relationship("CashSession", back_populates="movements")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "type": self.type,
            "amount": to_str(self.amount),
            "notes": self.notes,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
