# Overview: Bearer session tokens; issue, validate, revoke.

"""
Session Token Management

- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage; the plaintext only goes to the client
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, 24h default)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS, 2h default); idle sessions are revoked
- Revocable on logout
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import SessionToken, User
from ..time_utils import utcnow
from .concurrency import unit_of_work


def generate_token() -> str:
    return secrets.token_hex(32)  # 64 hex characters


def hash_token(token: str) -> str:
    """SHA-256 is enough for high-entropy tokens (unlike passwords)."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _timeouts() -> tuple[timedelta, timedelta]:
    config = current_app.config
    return (
        timedelta(hours=config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)),
        timedelta(hours=config.get("SESSION_IDLE_TIMEOUT_HOURS", 2)),
    )


def create_session(session: Session, user_id: int) -> tuple[SessionToken, str]:
    """Returns (session_record, plaintext_token)."""
    absolute_timeout, _ = _timeouts()
    plaintext_token = generate_token()
    now = utcnow()

    with unit_of_work(session, operation="create session"):
        record = SessionToken(
            user_id=user_id,
            token_hash=hash_token(plaintext_token),
            created_at=now,
            last_used_at=now,
            expires_at=now + absolute_timeout,
            is_revoked=False,
        )
        session.add(record)

    return record, plaintext_token


def _find_active(session: Session, token: str) -> SessionToken | None:
    return session.execute(
        select(SessionToken).where(
            SessionToken.token_hash == hash_token(token),
            SessionToken.is_revoked.is_(False),
        )
    ).scalar_one_or_none()


def validate_session(session: Session, token: str) -> User | None:
    """
    Resolve a bearer token to its active User.

    Returns None for unknown, revoked, expired or idle tokens and for
    deactivated users. Touches last_used_at on success.
    """
    record = _find_active(session, token)
    if record is None:
        return None

    _, idle_timeout = _timeouts()
    now = utcnow()

    if record.expires_at < now:
        return None

    user = session.get(User, record.user_id)

    with unit_of_work(session, operation="validate session"):
        if now - record.last_used_at > idle_timeout or user is None or not user.is_active:
            record.is_revoked = True
            record.revoked_at = now
            user = None
        else:
            record.last_used_at = now

    return user


def revoke_session(session: Session, token: str) -> bool:
    """Returns True if a live session was revoked."""
    with unit_of_work(session, operation="revoke session"):
        record = _find_active(session, token)
        if record is None:
            return False
        record.is_revoked = True
        record.revoked_at = utcnow()

    return True
