# Overview: Password hashing and staff login for a tenant.

"""
Authentication Service

Users belong to exactly one tenant; usernames are unique within it. Passwords
are hashed with bcrypt (cost factor 12). Session tokens live in
session_service.py.
"""

from __future__ import annotations

import bcrypt

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, Tenant, User
from ..models.auth import ROLES, ROLE_STAFF
from ..time_utils import utcnow

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str, min_length: int = MIN_PASSWORD_LENGTH) -> str:
    """Bcrypt hash with cost factor 12. Rejects passwords shorter than min_length."""
    if not isinstance(password, str) or len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters long")
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    tenant_id: int,
    username: str,
    password: str,
    role: str = ROLE_STAFF,
    branch_id: int | None = None,
    email: str | None = None,
) -> User:
    """
    Create a staff login.

    Raises:
        NotFoundError: tenant or branch missing (or branch of another tenant)
        ConflictError: username already taken in this tenant
        ValidationError: bad role, blank username, short password
    """
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant:
        raise NotFoundError("Tenant not found")
    if not tenant.is_active:
        raise ValidationError("Tenant is not active")

    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    if branch_id is not None:
        branch = db.session.query(Branch).filter_by(id=branch_id).first()
        if not branch or branch.tenant_id != tenant_id:
            raise NotFoundError("Branch not found")

    existing = db.session.query(User).filter_by(tenant_id=tenant_id, username=username).first()
    if existing:
        raise ConflictError("Username already exists in this tenant")

    user = User(
        tenant_id=tenant_id,
        branch_id=branch_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(tenant_code: str, username: str, password: str) -> User | None:
    """
    Check credentials within one tenant.

    Returns the User (and stamps last_login_at) or None. Inactive users and
    inactive tenants never authenticate.
    """
    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if not tenant or not tenant.is_active:
        return None

    user = db.session.query(User).filter(
        User.tenant_id == tenant.id,
        User.username == username,
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user
    return None
