# Overview: Domain error taxonomy shared by services and routes.

"""
Every error raised inside a unit of work aborts it: the unit rolls back
before the exception reaches the caller, so no movement, sale or session
change is ever partially applied.

HTTP status codes live on the classes so routes can translate any
LedgerError the same way.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for domain errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    """Malformed or missing input. Nothing was written."""

    status_code = 400


class InsufficientStockError(LedgerError):
    """A movement or sale would take on-hand below zero."""

    status_code = 409

    def __init__(
        self,
        message: str = "Insufficient stock",
        *,
        product_id: int | None = None,
        warehouse_id: int | None = None,
        available: int | None = None,
        requested: int | None = None,
        items: list[dict] | None = None,
    ):
        details: dict = {}
        if items:
            details["items"] = items
        else:
            details.update({
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "available": available,
                "requested": requested,
                "shortfall": (requested - available) if requested is not None and available is not None else None,
            })
        super().__init__(message, details)
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.available = available
        self.requested = requested

    @property
    def shortfall(self) -> int | None:
        if self.requested is None or self.available is None:
            return None
        return self.requested - self.available


class ConflictError(LedgerError):
    """Concurrent state prevents the operation (open session exists, lost write)."""

    status_code = 409


class NotFoundError(LedgerError):
    status_code = 404


class AuthenticationError(LedgerError):
    """Credentials could not be verified."""

    status_code = 401


class AuthorizationError(LedgerError):
    """The acting user may not perform this operation."""

    status_code = 403


class IntegrityError(LedgerError):
    """A store constraint rejected the write (duplicate key, check constraint)."""

    status_code = 409
