"""
Cash Session Service

WHY: Cashier accountability per warehouse. Each session has an opening
amount, accumulates cash movements, and is closed by the reconciler.

DESIGN PRINCIPLES:
- One open session per warehouse, tracked by the CashDrawer registry row.
  Opening locks that row before check-and-insert; the partial unique index
  on cash_sessions backs it at the store level.
- Callers hold an explicit session handle; posting never searches for
  "the current session".
- Sessions are immutable once closed, including their movement log.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CashDrawer, CashMovement, CashSession, Warehouse
from ..models.cash import CASH_IN, CASH_MOVEMENT_TYPES, CASH_OUT, REFERENCE_TYPES
from ..money import ZERO, money, positive_money
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import get_warehouse


# =============================================================================
# REGISTRY
# =============================================================================

def _lock_drawer(warehouse_id: int) -> CashDrawer:
    """Fetch-or-create the warehouse's registry row, locked for update."""
    drawer = lock_for_update(db.session.query(CashDrawer).filter_by(warehouse_id=warehouse_id)).first()
    if drawer is not None:
        return drawer
    drawer = CashDrawer(warehouse_id=warehouse_id, open_session_id=None)
    db.session.add(drawer)
    db.session.flush()
    return drawer


def get_open_session(warehouse_id: int) -> CashSession | None:
    """The warehouse's open session, read from the registry."""
    drawer = db.session.query(CashDrawer).filter_by(warehouse_id=warehouse_id).first()
    if drawer is None or drawer.open_session_id is None:
        return None
    return drawer.open_session


def require_open_session(warehouse_id: int) -> CashSession:
    session = get_open_session(warehouse_id)
    if session is None:
        raise NotFoundError("No open cash session for this warehouse", {"warehouse_id": warehouse_id})
    return session


def get_session(session_id: int) -> CashSession:
    session = db.session.get(CashSession, session_id)
    if session is None:
        raise NotFoundError("Cash session not found", {"session_id": session_id})
    return session


# =============================================================================
# LIFECYCLE
# =============================================================================

def _open_session_inner(*, warehouse_id: int, opening_amount, user_id: int | None) -> CashSession:
    amount = money(opening_amount if opening_amount is not None else 0, field="opening_amount")
    if amount < 0:
        raise ValidationError("opening_amount cannot be negative")

    get_warehouse(warehouse_id)
    drawer = _lock_drawer(warehouse_id)
    if drawer.open_session_id is not None:
        raise ConflictError(
            "A cash session is already open for this warehouse",
            {"warehouse_id": warehouse_id, "session_id": drawer.open_session_id},
        )

    session = CashSession(
        warehouse_id=warehouse_id,
        opening_amount=amount,
        opened_at=utcnow(),
        opened_by_user_id=user_id,
    )
    db.session.add(session)
    db.session.flush()

    drawer.open_session_id = session.id
    db.session.flush()
    return session


def open_session(*, warehouse_id: int, opening_amount=0, user_id: int | None = None) -> CashSession:
    """
    Open a cash session for a warehouse.

    Raises:
        ConflictError: the warehouse already has an open session
        NotFoundError: unknown warehouse
    """
    session = run_in_transaction(
        lambda: _open_session_inner(warehouse_id=warehouse_id, opening_amount=opening_amount, user_id=user_id)
    )
    current_app.logger.info(
        "Cash session %s opened for warehouse %s with %s", session.id, warehouse_id, session.opening_amount
    )
    return session


def ensure_primary_session(user_id: int | None = None) -> CashSession | None:
    """
    Start-up convenience: open a session for the primary warehouse if none is
    open. Returns the open session, or None when there is no primary warehouse.
    """
    code = current_app.config.get("PRIMARY_WAREHOUSE_CODE")
    warehouse = None
    if code:
        warehouse = db.session.query(Warehouse).filter_by(code=code, is_active=True).first()
    if warehouse is None:
        warehouse = (
            db.session.query(Warehouse)
            .filter_by(is_primary=True, is_active=True)
            .order_by(Warehouse.id)
            .first()
        )
    if warehouse is None:
        return None

    existing = get_open_session(warehouse.id)
    if existing is not None:
        return existing
    try:
        return open_session(warehouse_id=warehouse.id, opening_amount=0, user_id=user_id)
    except ConflictError:
        # Another process opened it between the check and the insert
        return require_open_session(warehouse.id)


# =============================================================================
# CASH MOVEMENTS
# =============================================================================

def _post_cash_movement_inner(
    session: CashSession,
    *,
    type: str,
    amount,
    notes: str | None = None,
    reference_type: str | None = None,
    reference_id=None,
    user_id: int | None = None,
) -> CashMovement:
    """Post against an explicit session handle, inside the caller's unit."""
    if type not in CASH_MOVEMENT_TYPES:
        raise ValidationError(f"Invalid cash movement type {type!r}", {"allowed": list(CASH_MOVEMENT_TYPES)})
    if reference_type is not None and reference_type not in REFERENCE_TYPES:
        raise ValidationError(f"Invalid reference type {reference_type!r}")
    value = positive_money(amount)

    locked = lock_for_update(db.session.query(CashSession).filter_by(id=session.id)).first()
    if locked is None:
        raise NotFoundError("Cash session not found", {"session_id": session.id})
    if locked.closed_at is not None:
        raise ConflictError("Cash session is closed", {"session_id": session.id})

    movement = CashMovement(
        session_id=locked.id,
        type=type,
        amount=value,
        notes=notes,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def post_cash_movement(
    session: CashSession,
    *,
    type: str,
    amount,
    notes: str | None = None,
    reference_type: str | None = None,
    reference_id=None,
    user_id: int | None = None,
) -> CashMovement:
    return run_in_transaction(
        lambda: _post_cash_movement_inner(
            session,
            type=type,
            amount=amount,
            notes=notes,
            reference_type=reference_type,
            reference_id=reference_id,
            user_id=user_id,
        )
    )


def record_manual_movement(
    *,
    warehouse_id: int,
    type: str,
    amount,
    notes: str | None = None,
    user_id: int | None = None,
) -> CashMovement:
    """Deposit (IN) or withdrawal (OUT) typed in by the cashier."""
    session = require_open_session(warehouse_id)
    return post_cash_movement(session, type=type, amount=amount, notes=notes, user_id=user_id)


def _remove_postings_inner(reference_type: str, reference_id) -> int:
    """
    Delete automatic postings of a domain event being undone.

    A posting inside a closed session is part of that session's reconciled
    record; undoing its event raises ConflictError and removes nothing.
    """
    postings = (
        db.session.query(CashMovement)
        .filter_by(reference_type=reference_type, reference_id=str(reference_id))
        .all()
    )
    for movement in postings:
        if movement.session.closed_at is not None:
            raise ConflictError(
                "Cash posting belongs to a closed cash session",
                {
                    "session_id": movement.session_id,
                    "reference_type": reference_type,
                    "reference_id": str(reference_id),
                },
            )
    for movement in postings:
        db.session.delete(movement)
    db.session.flush()
    return len(postings)


def list_session_movements(session_id: int, limit: int = 200) -> list[CashMovement]:
    return (
        db.session.query(CashMovement)
        .filter_by(session_id=session_id)
        .order_by(CashMovement.created_at.desc(), CashMovement.id.desc())
        .limit(limit)
        .all()
    )


def drawer_totals(session: CashSession) -> dict:
    """Opening plus posted movements: what the movement log alone says is in the drawer."""
    rows = (
        db.session.query(CashMovement.type, func.coalesce(func.sum(CashMovement.amount), 0))
        .filter(CashMovement.session_id == session.id)
        .group_by(CashMovement.type)
        .all()
    )
    sums = {row[0]: money(row[1]) for row in rows}
    income = sums.get(CASH_IN, ZERO)
    outflow = sums.get(CASH_OUT, ZERO)
    opening = money(session.opening_amount)
    return {
        "opening": opening,
        "income": income,
        "outflow": outflow,
        "expected": opening + income - outflow,
    }


# =============================================================================
# REPORTING
# =============================================================================

def list_closures(
    *,
    warehouse_id: int | None = None,
    start=None,
    end=None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[CashSession], int]:
    query = db.session.query(CashSession).filter(CashSession.closed_at.isnot(None))
    if warehouse_id is not None:
        query = query.filter(CashSession.warehouse_id == warehouse_id)
    if start is not None:
        query = query.filter(CashSession.closed_at >= start)
    if end is not None:
        query = query.filter(CashSession.closed_at <= end)
    total = query.count()
    rows = query.order_by(CashSession.closed_at.desc()).offset(offset).limit(limit).all()
    return rows, total


def get_closure(session_id: int) -> CashSession:
    session = get_session(session_id)
    if session.closed_at is None:
        raise NotFoundError("Cash session is still open", {"session_id": session_id})
    return session
