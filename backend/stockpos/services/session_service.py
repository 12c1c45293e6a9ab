# Overview: Service-layer operations for session; issues, validates and revokes bearer tokens.

"""
Session Token Management

A session is issued at login and invalidated at logout. It carries the
operator identity and role used by every authenticated request, captured
once at login.

- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout, 2-hour idle timeout
- Revocable on logout or when the account is deleted
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken
from stockpos.time_utils import utcnow
from .document_store import store


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass(frozen=True)
class SessionContext:
    """Authenticated identity attached to a request."""
    user_id: str
    username: str
    role: str
    session_id: int


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user, user_agent: str | None = None, ip_address: str | None = None) -> tuple[SessionToken, str]:
    """
    Create a session for `user` (a users-collection snapshot).

    Returns (session_record, plaintext_token). Only the hash is stored.
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        username=user.get("username"),
        role=user.get("role"),
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:255] or None,
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
    Return the SessionContext for a live token, or None.

    Expired, idle, revoked or orphaned (user deleted) sessions are None.
    Updates last_used_at on success.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    if store.get("users", session.user_id) is None:
        _revoke(session, "User account deleted")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user_id=session.user_id,
        username=session.username,
        role=session.role,
        session_id=session.id,
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False
    _revoke(session, reason)
    return True


def revoke_user_sessions(user_id: str, reason: str = "Revoke all sessions") -> int:
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
    db.session.commit()
    return len(sessions)
