# Overview: Password hashing, credential checks and user creation.

"""
Authentication Service

WHY: Every stock and cash write must be attributable, and closing a cash
session requires re-entering credentials.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
from flask import current_app

from ..errors import AuthenticationError, IntegrityError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_CASHIER, ROLES

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    WHY: Cost factor 12 provides good security/performance balance.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a
    mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def authenticate(username: str, password: str) -> User:
    """
    Return the active user matching the credentials.

    Raises:
        AuthenticationError: unknown user, inactive user or wrong password.
        The message never says which.
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    return user


def is_elevated(user: User) -> bool:
    """Roles allowed to act on sessions they did not open."""
    return user is not None and user.role in current_app.config.get("ELEVATED_ROLES", ())


def create_user(username: str, password: str, role: str = ROLE_CASHIER, name: str | None = None) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: empty username, unknown role or weak password
        IntegrityError: username already taken
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if role not in ROLES:
        raise ValidationError(f"Invalid role {role!r}", {"allowed": list(ROLES)})

    if db.session.query(User).filter_by(username=username).first():
        raise IntegrityError("Username already exists", {"username": username})

    user = User(
        username=username,
        name=name,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user
