# Overview: Bearer session tokens carrying the caller's tenancy context.

"""
Session Token Management

Sessions capture tenant_id, branch_id and role at login. That context is
immutable for the session lifetime and is what the TenantScope of every
request is built from.

- 32 random bytes per token, only the SHA-256 is stored
- absolute timeout SESSION_TTL_HOURS, idle timeout SESSION_IDLE_HOURS
- revocation also drops the session's pending gate action
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import PendingAction, SessionToken, Tenant, User
from ..time_utils import utcnow
from .tenant_service import TenantScope


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    scope: TenantScope

    @property
    def session_id(self) -> int:
        return self.session.id


def _ttl() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))


def _idle() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_HOURS", 8))


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is enough for high-entropy tokens; bcrypt is for passwords."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user: User) -> tuple[SessionToken, str]:
    """
    Open a session for an authenticated user.

    Returns (session_record, plaintext_token). The client keeps the token;
    the database only sees its hash.
    """
    tenant = db.session.query(Tenant).filter_by(id=user.tenant_id).first()
    if not tenant or not tenant.is_active:
        raise ValidationError("Tenant is not active")

    plaintext_token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user.id,
        tenant_id=user.tenant_id,
        branch_id=user.branch_id,
        role=user.role,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _ttl(),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.query(PendingAction).filter_by(session_id=session.id).delete()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext.

    Returns None for unknown, expired, idle or revoked tokens, and for
    deactivated users or tenants (those sessions are revoked on the spot).
    Refreshes last_used_at.
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

    if now - session.last_used_at > _idle():
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        db.session.commit()
        return None

    tenant = db.session.query(Tenant).filter_by(id=session.tenant_id).first()
    if not tenant or not tenant.is_active:
        _revoke(session, "Tenant deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        scope=TenantScope(tenant_id=session.tenant_id, role=session.role, branch_id=session.branch_id),
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def cleanup_expired_sessions(older_than_days: int = 30) -> int:
    """
    Delete expired or revoked sessions created more than older_than_days ago.

    Run periodically (flask sessions cleanup).
    """
    now = utcnow()
    cutoff = now - timedelta(days=older_than_days)
    stale = db.session.query(SessionToken).filter(
        db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
        SessionToken.created_at < cutoff,
    ).all()

    for session in stale:
        db.session.query(PendingAction).filter_by(session_id=session.id).delete()
        db.session.delete(session)
    db.session.commit()
    return len(stale)
