"""
Appointment Ledger: booking, lifecycle transitions, add-on service lines and
quick service (walk-in checkout).

STATE MACHINE:
    scheduled -> confirmed
    scheduled | confirmed -> completed   (caller picks paid or pending)
    scheduled | confirmed -> cancelled   (terminal; price zeroed)

Anything else is an IntegrityError, including every edge out of cancelled.
Appointments are never deleted; cancelling is the soft delete and keeps the
row for audit while zeroing what it contributes to revenue.

CONCURRENCY: create_appointment re-checks the slot inside its write
transaction and the unique slot_key column backs the check up, so two
simultaneous bookings of one slot cannot both succeed.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError as DBIntegrityError

from ..errors import ConflictError, IntegrityError, ValidationError
from ..extensions import db
from ..models import Appointment, Branch, Client, Professional, Service
from ..models.scheduling import (
    PAYMENT_AWAITING,
    PAYMENT_CANCELLED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_SCHEDULED,
)
from ..time_utils import DATE_FORMAT, TIME_FORMAT, local_now, minutes_of_day, parse_date, parse_time, shift_date
from . import catalog_service, notification_service
from .concurrency import atomic, begin_write
from .slot_service import allocate_slots
from .tenant_service import TenantScope


ALLOWED_TRANSITIONS = {
    STATUS_SCHEDULED: {STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_CONFIRMED: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}

COMPLETION_PAYMENT_STATUSES = {PAYMENT_PAID, PAYMENT_PENDING}
OPEN_PAYMENT_STATUSES = {PAYMENT_PENDING, PAYMENT_AWAITING, PAYMENT_PAID}


def slot_key(professional_id: int, branch_id: int | None, date: str, time: str) -> str:
    return f"{professional_id}:{branch_id if branch_id is not None else '*'}:{date}:{time}"


def _require(fields: dict) -> None:
    missing = sorted(name for name, value in fields.items() if value is None or value == "")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _slot_taken(professional_id: int, branch_id: int | None, date: str, time: str) -> Appointment | None:
    query = db.session.query(Appointment).filter(
        Appointment.professional_id == professional_id,
        Appointment.date == date,
        Appointment.time == time,
        Appointment.status != STATUS_CANCELLED,
    )
    if branch_id is None:
        query = query.filter(Appointment.branch_id.is_(None))
    else:
        query = query.filter(Appointment.branch_id == branch_id)
    return query.first()


def list_appointments(
    scope: TenantScope,
    date: str | None = None,
    professional_id: int | None = None,
    status: str | None = None,
    client_id: int | None = None,
) -> list[Appointment]:
    query = scope.query(Appointment)
    if date:
        query = query.filter(Appointment.date == parse_date(date))
    if professional_id is not None:
        query = query.filter(Appointment.professional_id == professional_id)
    if client_id is not None:
        query = query.filter(Appointment.client_id == client_id)
    if status:
        if status not in ALLOWED_TRANSITIONS:
            raise ValidationError(f"Unknown status: {status}")
        query = query.filter(Appointment.status == status)
    return query.order_by(Appointment.date, Appointment.time, Appointment.id).all()


def get_appointment(scope: TenantScope, appointment_id: int) -> Appointment:
    return scope.get(Appointment, appointment_id)


def create_appointment(
    scope: TenantScope,
    client_id: int | None,
    service_id: int | None,
    professional_id: int | None,
    date: str | None,
    time: str | None,
    branch_id: int | None = None,
    notes: str | None = None,
) -> Appointment:
    """
    Book a slot. New rows start scheduled/pending at the service's price.

    Raises ValidationError for missing or malformed fields and ConflictError
    when a non-cancelled appointment already holds (professional, branch,
    date, time). Nothing is inserted on failure. The notification hook runs
    after the commit and cannot undo the booking.
    """
    _require({
        "client_id": client_id,
        "service_id": service_id,
        "professional_id": professional_id,
        "date": date,
        "time": time,
    })
    date = parse_date(date)
    time = parse_time(time)

    appointment = _create_appointment_atomic(scope, client_id, service_id, professional_id, date, time, branch_id, notes)

    current_app.logger.info(
        "Appointment %s booked: professional=%s date=%s time=%s",
        appointment.id, professional_id, date, time,
    )
    notification_service.appointment_created(appointment)
    return appointment


@atomic
def _create_appointment_atomic(scope, client_id, service_id, professional_id, date, time, branch_id, notes):
    begin_write()

    branch_id = scope.resolve_branch(branch_id)
    client = scope.get(Client, client_id)
    service = scope.get(Service, service_id)
    professional = scope.get(Professional, professional_id)

    if not service.is_active:
        raise ValidationError("Service is not active")
    if not professional.is_available:
        raise ValidationError("Professional is not available")

    existing = _slot_taken(professional.id, branch_id, date, time)
    if existing is not None:
        current_app.logger.warning(
            "Slot conflict: professional=%s date=%s time=%s held by appointment %s",
            professional.id, date, time, existing.id,
        )
        raise ConflictError(
            "This time is already booked for the professional",
            details={"professional_id": professional.id, "date": date, "time": time},
        )

    appointment = Appointment(
        tenant_id=scope.tenant_id,
        branch_id=branch_id,
        client_id=client.id,
        service_id=service.id,
        professional_id=professional.id,
        date=date,
        time=time,
        status=STATUS_SCHEDULED,
        payment_status=PAYMENT_PENDING,
        total_price_cents=service.price_cents,
        notes=notes,
        slot_key=slot_key(professional.id, branch_id, date, time),
    )
    db.session.add(appointment)
    try:
        db.session.flush()
    except DBIntegrityError as exc:
        # Another writer claimed the slot between our check and our insert
        raise ConflictError(
            "This time is already booked for the professional",
            details={"professional_id": professional.id, "date": date, "time": time},
        ) from exc
    return appointment


def _transition_locked(appointment: Appointment, new_status: str, payment_status: str | None = None) -> Appointment:
    if new_status not in ALLOWED_TRANSITIONS:
        raise ValidationError(f"Unknown status: {new_status}")

    if new_status not in ALLOWED_TRANSITIONS[appointment.status]:
        raise IntegrityError(
            f"Cannot move appointment from {appointment.status} to {new_status}",
            details={"appointment_id": appointment.id, "from": appointment.status, "to": new_status},
        )

    if new_status == STATUS_COMPLETED:
        if payment_status not in COMPLETION_PAYMENT_STATUSES:
            raise ValidationError("Completing an appointment requires payment_status 'paid' or 'pending'")
        appointment.payment_status = payment_status
    elif new_status == STATUS_CANCELLED:
        appointment.total_price_cents = 0
        appointment.payment_status = PAYMENT_CANCELLED
        appointment.slot_key = None

    previous = appointment.status
    appointment.status = new_status
    db.session.flush()

    current_app.logger.info(
        "Appointment %s: %s -> %s (payment=%s)",
        appointment.id, previous, new_status, appointment.payment_status,
    )
    return appointment


@atomic
def transition_appointment(
    scope: TenantScope,
    appointment_id: int,
    new_status: str,
    payment_status: str | None = None,
) -> Appointment:
    begin_write()
    appointment = scope.get(Appointment, appointment_id, lock=True)
    return _transition_locked(appointment, new_status, payment_status)


def cancel_service_line_locked(scope: TenantScope, appointment_id: int) -> Appointment:
    """Soft-cancel one visit line. The row stays for audit at zero value."""
    appointment = scope.get(Appointment, appointment_id, lock=True)
    return _transition_locked(appointment, STATUS_CANCELLED)


@atomic
def cancel_service_line(scope: TenantScope, appointment_id: int) -> Appointment:
    begin_write()
    return cancel_service_line_locked(scope, appointment_id)


def _load_services(scope: TenantScope, service_ids) -> list[Service]:
    if not service_ids:
        raise ValidationError("At least one service is required")
    if isinstance(service_ids, (str, bytes)) or not isinstance(service_ids, (list, tuple)):
        raise ValidationError("service_ids must be a list")
    return [scope.get(Service, service_id) for service_id in service_ids]


def add_service_lines_locked(scope: TenantScope, anchor_id: int, service_ids) -> list[Appointment]:
    """
    Append extra services to a visit that already happened.

    New rows share the anchor's client, professional, date and branch, and
    are recorded completed/paid at each service's price. They follow the
    anchor back to back: the first extra service starts when the anchor's
    own service ends.
    """
    anchor = scope.get(Appointment, anchor_id, lock=True)
    if anchor.status != STATUS_COMPLETED:
        raise IntegrityError(
            "Service lines can only be added to completed appointments",
            details={"appointment_id": anchor.id, "status": anchor.status},
        )

    services = _load_services(scope, service_ids)
    anchor_service = db.session.get(Service, anchor.service_id)
    items = [(anchor_service.id, anchor_service.duration_minutes)] + [(s.id, s.duration_minutes) for s in services]
    slots = allocate_slots(items, anchor.time)[1:]

    created = []
    for service, slot in zip(services, slots):
        line = Appointment(
            tenant_id=anchor.tenant_id,
            branch_id=anchor.branch_id,
            client_id=anchor.client_id,
            service_id=service.id,
            professional_id=anchor.professional_id,
            date=shift_date(anchor.date, slot.day_offset),
            time=slot.time,
            status=STATUS_COMPLETED,
            payment_status=PAYMENT_PAID,
            payment_method=anchor.payment_method,
            total_price_cents=service.price_cents,
        )
        db.session.add(line)
        created.append(line)

    db.session.flush()
    current_app.logger.info(
        "Added %d service line(s) to appointment %s", len(created), anchor.id,
    )
    return created


@atomic
def add_service_lines(scope: TenantScope, anchor_id: int, service_ids) -> list[Appointment]:
    begin_write()
    return add_service_lines_locked(scope, anchor_id, service_ids)


@atomic
def quick_service(
    scope: TenantScope,
    professional_id: int | None,
    service_ids,
    client_id: int | None = None,
    client_name: str | None = None,
    finish_as_paid: bool = True,
    date: str | None = None,
    anchor_time: str | None = None,
    branch_id: int | None = None,
    payment_method: str | None = None,
) -> list[Appointment]:
    """
    Walk-in checkout: record services that were just performed.

    One completed row per service, chained from the anchor (default: the
    branch's current wall-clock time). Services that start after midnight
    are dated the next day. Without a client_id a walk-in
    placeholder client is created. These rows are bookkeeping, so the
    professional's existing bookings are not checked and no slot is reserved.
    """
    _require({"professional_id": professional_id})
    begin_write()

    branch_id = scope.resolve_branch(branch_id)
    professional = scope.get(Professional, professional_id)
    services = _load_services(scope, service_ids)

    if date is None or anchor_time is None:
        branch = db.session.get(Branch, branch_id) if branch_id is not None else None
        now = local_now(branch.timezone if branch else None)
        date = date or now.strftime(DATE_FORMAT)
        anchor_time = anchor_time or now.strftime(TIME_FORMAT)
    date = parse_date(date)
    anchor_time = parse_time(anchor_time, "anchor_time")

    if client_id is not None:
        client = scope.get(Client, client_id)
    else:
        client = catalog_service.create_walk_in_client(scope, client_name, branch_id)

    payment_status = PAYMENT_PAID if finish_as_paid else PAYMENT_PENDING
    slots = allocate_slots([(s.id, s.duration_minutes) for s in services], anchor_time)

    created = []
    for service, slot in zip(services, slots):
        appointment = Appointment(
            tenant_id=scope.tenant_id,
            branch_id=branch_id,
            client_id=client.id,
            service_id=service.id,
            professional_id=professional.id,
            date=shift_date(date, slot.day_offset),
            time=slot.time,
            status=STATUS_COMPLETED,
            payment_status=payment_status,
            payment_method=payment_method,
            total_price_cents=service.price_cents,
        )
        db.session.add(appointment)
        created.append(appointment)

    db.session.flush()
    current_app.logger.info(
        "Quick service for client %s: %d service(s) from %s, total %d cents, %s",
        client.id, len(created), anchor_time, sum(a.total_price_cents for a in created), payment_status,
    )
    return created


@atomic
def set_payment_status(
    scope: TenantScope,
    appointment_id: int,
    payment_status: str,
    payment_method: str | None = None,
) -> Appointment:
    """
    Record a payment label without changing the visit status.

    Open visits accept pending, awaiting_payment or paid; completed visits
    only pending or paid; cancelled visits are frozen.
    """
    begin_write()
    appointment = scope.get(Appointment, appointment_id, lock=True)

    if appointment.status == STATUS_CANCELLED:
        raise IntegrityError(
            "Cancelled appointments cannot change payment status",
            details={"appointment_id": appointment.id},
        )
    allowed = COMPLETION_PAYMENT_STATUSES if appointment.status == STATUS_COMPLETED else OPEN_PAYMENT_STATUSES
    if payment_status not in allowed:
        raise ValidationError(
            f"payment_status must be one of: {', '.join(sorted(allowed))}",
            details={"status": appointment.status},
        )

    appointment.payment_status = payment_status
    if payment_method is not None:
        appointment.payment_method = payment_method
    db.session.flush()
    return appointment


@atomic
def auto_complete_elapsed(now=None, tenant_id: int | None = None) -> list[int]:
    """
    Complete confirmed appointments of today whose service time has passed.

    "Today" and "now" are read per branch in the branch's timezone (UTC for
    shared rows). awaiting_payment becomes pending, since completed visits
    are either paid or pending. Returns the ids that were completed.
    """
    begin_write()
    default_duration = current_app.config.get("DEFAULT_SERVICE_DURATION_MINUTES", 30)

    query = (
        db.session.query(Appointment, Service.duration_minutes, Branch.timezone)
        .outerjoin(Service, Service.id == Appointment.service_id)
        .outerjoin(Branch, Branch.id == Appointment.branch_id)
        .filter(Appointment.status == STATUS_CONFIRMED)
    )
    if tenant_id is not None:
        query = query.filter(Appointment.tenant_id == tenant_id)

    completed = []
    for appointment, duration, tz_name in query.all():
        local = now or local_now(tz_name)
        if appointment.date != local.strftime(DATE_FORMAT):
            continue
        ends = minutes_of_day(appointment.time) + (duration or default_duration)
        if local.hour * 60 + local.minute < ends:
            continue
        payment_status = PAYMENT_PAID if appointment.payment_status == PAYMENT_PAID else PAYMENT_PENDING
        _transition_locked(appointment, STATUS_COMPLETED, payment_status)
        completed.append(appointment.id)

    current_app.logger.info("Auto-completed %d appointment(s)", len(completed))
    return completed
