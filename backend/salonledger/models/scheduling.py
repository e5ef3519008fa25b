from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

STATUS_SCHEDULED = "scheduled"
STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
APPOINTMENT_STATUSES = (STATUS_SCHEDULED, STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED)

PAYMENT_PENDING = "pending"
PAYMENT_AWAITING = "awaiting_payment"
PAYMENT_PAID = "paid"
PAYMENT_CANCELLED = "cancelled"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_AWAITING, PAYMENT_PAID, PAYMENT_CANCELLED)


class Appointment(db.Model):
    """
    One service for one client with one professional at one local date/time.

    LIFECYCLE: scheduled -> confirmed -> completed, or scheduled/confirmed ->
    cancelled. Cancelled is terminal and is the only form of deletion; a
    cancelled row keeps total_price_cents = 0 and payment_status = cancelled
    so financial aggregates skip it.

    slot_key holds "professional:branch:date:time" while a reservation made
    through booking is live. The unique constraint makes the database refuse
    a second live booking for the same slot even if two writers race past the
    application check. Quick service and add-on rows are bookkeeping entries
    and leave it NULL.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        db.UniqueConstraint("slot_key", name="uq_appointments_slot_key"),
        db.CheckConstraint("total_price_cents >= 0", name="ck_appointments_total_nonneg"),
        db.Index("ix_appointments_tenant_date", "tenant_id", "date"),
        db.Index("ix_appointments_professional_slot", "professional_id", "date", "time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False)
    professional_id = db.Column(db.Integer, db.ForeignKey("professionals.id"), nullable=False)

    # Local calendar date / time of day, never instants
    date = db.Column(db.String(10), nullable=False)
    time = db.Column(db.String(5), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STATUS_SCHEDULED, index=True)
    payment_status = db.Column(db.String(24), nullable=False, default=PAYMENT_PENDING)
    payment_method = db.Column(db.String(32), nullable=True)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    slot_key = db.Column(db.String(96), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    client = db.relationship("Client", backref=db.backref("appointments", lazy=True))
    service = db.relationship("Service")
    professional = db.relationship("Professional", backref=db.backref("appointments", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Appointment id={self.id} {self.date} {self.time} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "client_id": self.client_id,
            "service_id": self.service_id,
            "professional_id": self.professional_id,
            "date": self.date,
            "time": self.time,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "total_price_cents": self.total_price_cents,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
