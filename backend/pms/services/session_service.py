# Overview: Bearer session tokens for API access; issuance is an operator action (CLI).

"""
Session Token Management

Tokens are 32 random bytes rendered as hex, handed to the client once and
stored only as a SHA-256 hash. A session dies on the absolute timeout, on
the idle timeout, on explicit revocation, or when its staff member is
deactivated.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, Staff
from ..validation import NotFoundError, ValidationError
from pms.time_utils import utcnow


@dataclass
class SessionContext:
    staff: Staff
    session: SessionToken


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 2))


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    staff_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a session for an active staff member.

    Returns (session_record, plaintext_token).
    """
    staff = db.session.get(Staff, staff_id)
    if not staff:
        raise NotFoundError(f"Staff {staff_id} not found")
    if not staff.is_active:
        raise ValidationError("Cannot open a session for an inactive staff member")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        staff_id=staff_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its staff member, or None when the token is
    unknown, expired, idle too long, revoked, or the staff is inactive.
    Touches last_used_at on success.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    staff = session.staff
    if not staff or not staff.is_active:
        _revoke(session, "Staff deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(staff=staff, session=session)


def revoke_session(token: str, reason: str = "Logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False
    _revoke(session, reason)
    return True
