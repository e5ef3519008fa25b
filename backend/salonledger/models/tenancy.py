from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class Tenant(db.Model):
    """
    Multi-tenant root: every subscribing business is a Tenant.

    All branches, catalog records, appointments and stock belong to exactly
    one tenant. No data may cross tenant boundaries.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code for lookups

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

class Branch(db.Model):
    """
    Physical location within a tenant.

    Branch names and codes are unique within a tenant, not globally.
    Resources with branch_id NULL are shared by every branch of the tenant.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_branches_tenant_name"),
        db.UniqueConstraint("tenant_id", "code", name="uq_branches_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)

    # IANA name; quick service uses it to read the local wall clock
    timezone = db.Column(db.String(64), nullable=False, default="UTC")

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("branches", lazy=True))

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "code": self.code,
            "timezone": self.timezone,
            "created_at": to_utc_z(self.created_at),
        }
