# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management

- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- The value handed to the client is the token signed with SECRET_KEY
  (itsdangerous TimestampSigner), so tampered or stale values are rejected
  before any database lookup
- Absolute lifetime of SESSION_HOURS (default 8h)
- Revocable on logout, password change or account deactivation
- Tracks client IP and user agent
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, TimestampSigner

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


SESSION_SALT = "mikropanel.session"


@dataclass
class SessionContext:
    """
    Authenticated request context, threaded through handlers via flask.g.

    actor is the username recorded on every write.
    """
    user: User
    session: SessionToken

    @property
    def actor(self) -> str:
        return self.user.username

    @property
    def role(self) -> str:
        return self.user.role


def _signer() -> TimestampSigner:
    return TimestampSigner(current_app.config["SECRET_KEY"], salt=SESSION_SALT)


def _lifetime() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_HOURS", 8))


def generate_token() -> str:
    """Returns 64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Hash token for database storage using SHA-256."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _unsign(signed_token: str) -> str | None:
    try:
        raw = _signer().unsign(signed_token, max_age=int(_lifetime().total_seconds()))
    except SignatureExpired:
        return None
    except BadSignature:
        return None
    return raw.decode("utf-8")


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, signed_token).
    Client receives signed_token, database stores only the hash of the raw token.

    Raises ValueError if the user does not exist or is inactive.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _lifetime(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    signed = _signer().sign(plaintext_token).decode("utf-8")
    return session, signed


def _find_active(signed_token: str) -> SessionToken | None:
    raw = _unsign(signed_token)
    if raw is None:
        return None
    return db.session.query(SessionToken).filter_by(
        token_hash=hash_token(raw),
        is_revoked=False
    ).first()


def validate_session(signed_token: str) -> SessionContext | None:
    """
    Validate a signed session token and return SessionContext if valid.

    Returns None if:
    - Signature is invalid or older than the session lifetime
    - Token is unknown, expired, or revoked
    - User account is deactivated (the session is revoked as a side effect)

    Updates last_used_at on successful validation.
    """
    if not signed_token:
        return None

    session = _find_active(signed_token)
    if not session:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = session.user
    if not user or not user.is_active:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = "User account deactivated"
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session)


def revoke_session(signed_token: str, reason: str = "User logout") -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    session = _find_active(signed_token)
    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason

    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", *, except_session_id: int | None = None) -> int:
    """
    Revoke all active sessions for a user (optionally keeping one).

    Returns count of sessions revoked. Caller commits.
    """
    now = utcnow()

    q = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False)
    if except_session_id is not None:
        q = q.filter(SessionToken.id != except_session_id)

    count = 0
    for session in q.all():
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
        count += 1

    db.session.flush()
    return count


def cleanup_expired_sessions(retention_days: int = 30) -> int:
    """
    Delete expired or revoked sessions older than retention_days.

    Returns count of sessions deleted.
    """
    cutoff = utcnow() - timedelta(days=retention_days)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(True)
        ),
        SessionToken.created_at < cutoff
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
