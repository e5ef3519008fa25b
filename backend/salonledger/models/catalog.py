from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Professional(db.Model):
    """Staff member who fulfils appointments. branch_id NULL = works at every branch."""
    __tablename__ = "professionals"
    __table_args__ = (
        db.Index("ix_professionals_tenant_branch", "tenant_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    specialty = db.Column(db.String(255), nullable=True)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Professional id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "name": self.name,
            "specialty": self.specialty,
            "is_available": self.is_available,
            "created_at": to_utc_z(self.created_at),
        }


class Service(db.Model):
    """
    Bookable service.

    Price in cents (authoritative), duration in minutes. The price is copied
    onto each appointment at booking time; later price changes never rewrite
    existing appointments.
    """
    __tablename__ = "services"
    __table_args__ = (
        db.CheckConstraint("price_cents >= 0", name="ck_services_price_nonneg"),
        db.CheckConstraint("duration_minutes > 0", name="ck_services_duration_pos"),
        db.Index("ix_services_tenant_branch", "tenant_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    duration_minutes = db.Column(db.Integer, nullable=False, default=30)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Service id={self.id} name={self.name!r} price_cents={self.price_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "duration_minutes": self.duration_minutes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Client(db.Model):
    """
    Customer record.

    is_walk_in marks the placeholder clients that quick service creates for
    customers who never registered.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_tenant_branch", "tenant_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_walk_in = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "notes": self.notes,
            "is_walk_in": self.is_walk_in,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BusinessHours(db.Model):
    """Opening hours per weekday (Monday=0). Times are local "HH:MM" strings."""
    __tablename__ = "business_hours"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "branch_id", "weekday", name="uq_business_hours_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    weekday = db.Column(db.Integer, nullable=False)
    is_open = db.Column(db.Boolean, nullable=False, default=True)
    opens_at = db.Column(db.String(5), nullable=False, default="09:00")
    closes_at = db.Column(db.String(5), nullable=False, default="18:00")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "weekday": self.weekday,
            "is_open": self.is_open,
            "opens_at": self.opens_at,
            "closes_at": self.closes_at,
        }
