# Overview: Account creation, password hashing and credential checks.

"""
Authentication Service

Every ledger mutation is attributed to a user id, and admin-only operations
are gated on the user's role.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters, upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..errors import ConflictError, ValidationError
from ..models import User
from ..models.auth import ROLE_CUSTOMER, VALID_ROLES
from ..time_utils import utcnow
from .concurrency import unit_of_work


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    code = "WEAK_PASSWORD"


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash. Stored as a string."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user_by_email(session: Session, email: str) -> User | None:
    return session.execute(
        select(User).where(func.lower(User.email) == normalize_email(email))
    ).scalar_one_or_none()


def create_user(session: Session, email: str, password: str, role: str = ROLE_CUSTOMER) -> User:
    """
    Create an account.

    Raises ValidationError (bad email/role), PasswordValidationError,
    ConflictError (email taken).
    """
    email = normalize_email(email)
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("A valid email is required", details={"email": email})
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of {list(VALID_ROLES)}", details={"role": role})

    password_hash = hash_password(password)

    with unit_of_work(session, operation="create user"):
        if get_user_by_email(session, email) is not None:
            raise ConflictError("Email already registered", details={"email": email})
        user = User(email=email, password_hash=password_hash, role=role, is_active=True)
        session.add(user)

    current_app.logger.info("Created %s account %s (user %s)", role, email, user.id)
    return user


def authenticate(session: Session, email: str, password: str) -> User | None:
    """
    Check credentials. Returns the User or None.

    Updates last_login_at on success.
    """
    user = get_user_by_email(session, email)
    if user is None or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    with unit_of_work(session, operation="record login"):
        user.last_login_at = utcnow()

    return user


def has_role(user: User, *roles: str) -> bool:
    return user is not None and user.role in roles
