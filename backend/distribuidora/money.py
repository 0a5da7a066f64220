# Overview: Fixed-point money and quantity helpers.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
QTY_STEP = Decimal("0.001")


def to_decimal(value, *, field: str = "amount") -> Decimal:
    """Accept int/str/Decimal (and float via str) and return an unrounded Decimal."""
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    elif isinstance(value, float):
        # str() keeps the shortest repr, avoiding binary expansion noise
        result = Decimal(str(value))
    else:
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a number")
    return result


def money(value, *, field: str = "amount") -> Decimal:
    """Round half-up to 2 places. Apply once per computed amount."""
    return to_decimal(value, field=field).quantize(CENT, rounding=ROUND_HALF_UP)


def optional_money(value, *, field: str = "amount") -> Decimal | None:
    if value is None or value == "":
        return None
    return money(value, field=field)


def positive_money(value, *, field: str = "amount") -> Decimal:
    amount = money(value, field=field)
    if amount <= 0:
        raise ValidationError(f"{field} must be positive")
    return amount


def quantity(value, *, field: str = "quantity") -> Decimal:
    qty = to_decimal(value, field=field).quantize(QTY_STEP, rounding=ROUND_HALF_UP)
    if qty <= 0:
        raise ValidationError(f"{field} must be positive")
    return qty


def whole_units(value, *, field: str = "base_quantity") -> int:
    """Base-unit quantities are indivisible; reject fractions instead of truncating."""
    qty = to_decimal(value, field=field)
    if qty != qty.to_integral_value():
        raise ValidationError(f"{field} must be a whole number of base units")
    units = int(qty)
    if units <= 0:
        raise ValidationError(f"{field} must be positive")
    return units


def to_str(value: Decimal | None) -> str | None:
    """JSON serialization of stored amounts (exact, never float)."""
    return str(value) if value is not None else None
