# backend/distribuidora/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/distribuidora.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location (e.g. postgresql://...)
        "sqlite:///distribuidora.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Open a cash session for the primary warehouse when the app starts
    CASH_AUTO_OPEN_ON_START = _env_bool("CASH_AUTO_OPEN_ON_START", False)
    PRIMARY_WAREHOUSE_CODE = os.environ.get("PRIMARY_WAREHOUSE_CODE", "PRINCIPAL")

    # Unit-of-work retry on lock/version conflicts
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))
    TX_RETRY_BACKOFF = float(os.environ.get("TX_RETRY_BACKOFF", "0.1"))

    SESSION_TOKEN_HOURS = int(os.environ.get("SESSION_TOKEN_HOURS", "12"))

    # Roles allowed to close a cash session opened by someone else
    ELEVATED_ROLES = tuple(
        r.strip() for r in os.environ.get("ELEVATED_ROLES", "admin,manager").split(",") if r.strip()
    )

    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )
