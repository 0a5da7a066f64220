# Overview: Unit of work, row locking and retry for every multi-step mutation.

"""
Concurrency discipline (authoritative)

- Pessimistic: rows that gate a decision (StockLevel, CashDrawer,
  CashSession) are read with SELECT ... FOR UPDATE. PostgreSQL and MySQL
  hold the lock until the unit commits or rolls back.
- Optimistic guard: the same tables carry a version_id column. SQLite
  ignores FOR UPDATE, so a lost update there surfaces as StaleDataError
  at flush time instead of silently overwriting.
- Lock/version conflicts (OperationalError, StaleDataError) roll back and
  re-run the whole unit, re-validating stock on each attempt. When attempts
  run out the caller gets ConflictError and may replay the same inputs.
- Unique-key violations are replayed too (get-or-create races); if the
  violation persists the caller gets IntegrityError.
- Domain errors are never retried: they roll back and propagate.
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, IntegrityError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run func() as one unit of work and commit it.

    Any exception rolls the whole unit back. Concurrency conflicts are
    retried; store constraint violations become IntegrityError.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TX_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning("Write conflict persisted after %d attempts: %s", attempts, exc)
                raise ConflictError("Concurrent update detected, retry the operation") from exc
            time.sleep(backoff_base * (2 ** attempt))
        except SAIntegrityError as exc:
            # A lost get-or-create race passes on replay; a real duplicate fails again
            db.session.rollback()
            if attempt >= attempts - 1:
                raise IntegrityError(f"Constraint violation: {exc.orig}") from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
