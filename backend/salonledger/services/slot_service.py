"""
Slot Allocator: chains services booked together into back-to-back times.

allocate_slots() is pure: no database, no conflict checks. Two callers use
it differently:
- booking flow: available_times() offers anchors that do not overlap
  existing bookings; create_appointment() re-checks inside its transaction.
- quick service / add-on lines: anchored at the wall clock or at the
  original visit, with no conflict check (bookkeeping entries).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time as dt_time
from typing import Iterable

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Appointment, BusinessHours, Professional, Service
from ..models.scheduling import STATUS_CANCELLED
from ..time_utils import format_minutes, minutes_of_day, parse_date, parse_time, weekday_of
from .tenant_service import TenantScope

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class SlotAssignment:
    service_id: int
    time: str
    duration_minutes: int
    # calendar days after the anchor's date
    day_offset: int = 0

    @property
    def ends_at(self) -> str:
        return format_minutes((minutes_of_day(self.time) + self.duration_minutes) % MINUTES_PER_DAY)


def allocate_slots(items: Iterable[tuple[int, int]], anchor: str | dt_time) -> list[SlotAssignment]:
    """
    Gap-free times for services performed one after another.

    items: ordered (service_id, duration_minutes) pairs.
    anchor: "HH:MM" (or datetime.time) of the first service.

    allocate_slots([(1, 30), (2, 20), (3, 15)], "10:00") gives
    10:00, 10:30, 10:50.

    A chain that crosses midnight keeps going on the next day:
    allocate_slots([(1, 30), (2, 20)], "23:45") gives 23:45 and 00:15 with
    day_offset=1. Callers add day_offset to the anchor's date.
    """
    cursor = minutes_of_day(parse_time(anchor, "anchor"))
    slots = []
    for service_id, duration in items:
        if duration is None or duration <= 0:
            raise ValidationError("Service duration must be positive", details={"service_id": service_id})
        day_offset, minute = divmod(cursor, MINUTES_PER_DAY)
        slots.append(SlotAssignment(
            service_id=service_id,
            time=format_minutes(minute),
            duration_minutes=duration,
            day_offset=day_offset,
        ))
        cursor += duration
    return slots


def _overlaps(start: int, end: int, other_start: int, other_end: int) -> bool:
    return start < other_end and other_start < end


def _opening_hours(scope: TenantScope, branch_id: int | None, date: str) -> tuple[int, int] | None:
    """
    (opens, closes) in minutes for the branch on that date.

    Branch-specific hours win over shared ones; with nothing configured the
    day is treated as closed.
    """
    weekday = weekday_of(date)
    rows = (
        db.session.query(BusinessHours)
        .filter(BusinessHours.tenant_id == scope.tenant_id, BusinessHours.weekday == weekday)
        .filter(db.or_(BusinessHours.branch_id == branch_id, BusinessHours.branch_id.is_(None)))
        .all()
    )
    if not rows:
        return None
    hours = sorted(rows, key=lambda h: h.branch_id is None)[0]
    if not hours.is_open:
        return None
    return minutes_of_day(hours.opens_at), minutes_of_day(hours.closes_at)


def available_times(
    scope: TenantScope,
    date: str,
    service_id: int,
    professional_id: int | None = None,
    branch_id: int | None = None,
) -> list[dict]:
    """
    Candidate start times for the booking flow.

    A time is offered when [t, t + duration) stays inside opening hours and
    does not overlap a non-cancelled appointment of the professional in the
    same branch, the key create_appointment uses for conflicts. With no
    professional given, a time is offered if any available professional in
    scope is free; the free professionals are listed with it.
    """
    date = parse_date(date)
    service = scope.get(Service, service_id)
    branch_id = scope.resolve_branch(branch_id)

    if professional_id is not None:
        professionals = [scope.get(Professional, professional_id)]
    else:
        professionals = scope.query(Professional).filter(Professional.is_available.is_(True)).all()
    professionals = [p for p in professionals if p.is_available]
    if not professionals:
        return []

    hours = _opening_hours(scope, branch_id, date)
    if hours is None:
        return []
    opens, closes = hours

    interval = current_app.config.get("SLOT_INTERVAL_MINUTES", 15)
    default_duration = current_app.config.get("DEFAULT_SERVICE_DURATION_MINUTES", 30)

    booked = (
        db.session.query(Appointment, Service.duration_minutes)
        .outerjoin(Service, Service.id == Appointment.service_id)
        .filter(
            Appointment.tenant_id == scope.tenant_id,
            Appointment.date == date,
            Appointment.status != STATUS_CANCELLED,
            Appointment.professional_id.in_([p.id for p in professionals]),
        )
    )
    if branch_id is None:
        booked = booked.filter(Appointment.branch_id.is_(None))
    else:
        booked = booked.filter(Appointment.branch_id == branch_id)

    busy: dict[int, list[tuple[int, int]]] = {p.id: [] for p in professionals}
    for appointment, duration in booked:
        start = minutes_of_day(appointment.time)
        busy[appointment.professional_id].append((start, start + (duration or default_duration)))

    slots = []
    start = opens
    while start + service.duration_minutes <= closes:
        end = start + service.duration_minutes
        free = [
            p for p in professionals
            if not any(_overlaps(start, end, b_start, b_end) for b_start, b_end in busy[p.id])
        ]
        if free:
            slots.append({
                "time": format_minutes(start),
                "professional_ids": [p.id for p in free],
                "professional_names": [p.name for p in free],
            })
        start += interval
    return slots
