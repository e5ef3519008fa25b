from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class SecurityEvent(db.Model):
    """
    Security event audit log with tenant context.

    Tracks cross-tenant access attempts, gate password checks and failed
    logins.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_tenant_occurred", "tenant_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True, index=True)  # Nullable for pre-auth events
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # Nullable for anonymous

    # Event classification
    event_type = db.Column(db.String(64), nullable=False, index=True)  # CROSS_TENANT_ACCESS_DENIED, GATE_PASSWORD_REJECTED, LOGIN_FAILED, ...
    resource = db.Column(db.String(128), nullable=True)  # e.g., "/api/inventory/sales/3"
    action = db.Column(db.String(64), nullable=True)     # e.g., "DELETE", "delete_sale"

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class AdminCredential(db.Model):
    """Tenant-level secondary password guarding sensitive mutations (bcrypt hash)."""
    __tablename__ = "admin_credentials"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )


class PendingAction(db.Model):
    """
    The one sensitive action a session is waiting to confirm.

    One row per session (unique session_id): a newer request replaces the
    older one. Deleted when the action runs, when the caller discards it, or
    when the session is revoked.
    """
    __tablename__ = "pending_actions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("session_tokens.id"), nullable=False, unique=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    kind = db.Column(db.String(32), nullable=False)
    payload = db.Column(db.Text, nullable=False)  # JSON

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
