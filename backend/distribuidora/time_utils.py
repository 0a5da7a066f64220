# Overview: UTC timestamp helpers; every stored datetime is UTC-naive.

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Server clock in UTC with tzinfo stripped, as stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """
    Request timestamps (due dates, report ranges) to UTC-naive.

    Blank means None. A value without offset is taken as UTC; "Z" and
    "+HH:MM" offsets are converted. Raises ValueError on garbage, which
    routes answer with 400.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: datetime | None) -> str | None:
    """JSON form: whole seconds with a trailing 'Z'. Naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
