# Overview: Branch-scoped catalog records read by the ledgers: clients,
# services, professionals, business hours.

from __future__ import annotations

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import BusinessHours, Client, Professional, Service
from ..time_utils import minutes_of_day, parse_time
from ..validation import enforce_rules_service
from .concurrency import atomic
from .tenant_service import TenantScope

CLIENT_MUTABLE_FIELDS = {"name", "phone", "email", "notes"}
SERVICE_MUTABLE_FIELDS = {"name", "price_cents", "duration_minutes", "is_active"}
PROFESSIONAL_MUTABLE_FIELDS = {"name", "specialty", "is_available"}

WALK_IN_CLIENT_NAME = "Walk-in client"


def _apply_patch(row, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(row, k, v)


def _create(scope: TenantScope, model, patch: dict, allowed: set[str], branch_id: int | None, shared: bool):
    row = model(
        tenant_id=scope.tenant_id,
        branch_id=scope.resolve_branch(branch_id, explicit_shared=shared),
    )
    _apply_patch(row, patch, allowed)
    db.session.add(row)
    db.session.flush()
    return row


# Clients

def list_clients(scope: TenantScope, search: str | None = None, include_walk_ins: bool = True) -> list[Client]:
    query = scope.query(Client)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Client.name.ilike(like), Client.phone.ilike(like)))
    if not include_walk_ins:
        query = query.filter(Client.is_walk_in.is_(False))
    return query.order_by(Client.name).all()


@atomic
def create_client(scope: TenantScope, patch: dict, branch_id: int | None = None, shared: bool = False) -> Client:
    return _create(scope, Client, patch, CLIENT_MUTABLE_FIELDS, branch_id, shared)


def create_walk_in_client(scope: TenantScope, name: str | None, branch_id: int | None) -> Client:
    """Placeholder client for quick service. Runs inside the caller's transaction."""
    client = Client(
        tenant_id=scope.tenant_id,
        branch_id=branch_id,
        name=(name or "").strip() or WALK_IN_CLIENT_NAME,
        is_walk_in=True,
    )
    db.session.add(client)
    db.session.flush()
    return client


def update_client_locked(scope: TenantScope, client_id: int, patch: dict) -> Client:
    client = scope.get(Client, client_id, lock=True)
    _apply_patch(client, patch, CLIENT_MUTABLE_FIELDS)
    if not client.name:
        raise ValidationError("name cannot be blank")
    db.session.flush()
    current_app.logger.info("Client %s updated (%s)", client.id, ", ".join(sorted(patch)))
    return client


# Services

def list_services(scope: TenantScope, active_only: bool = False) -> list[Service]:
    query = scope.query(Service)
    if active_only:
        query = query.filter(Service.is_active.is_(True))
    return query.order_by(Service.name).all()


@atomic
def create_service(scope: TenantScope, patch: dict, branch_id: int | None = None, shared: bool = False) -> Service:
    enforce_rules_service(patch)
    return _create(scope, Service, patch, SERVICE_MUTABLE_FIELDS, branch_id, shared)


@atomic
def update_service(scope: TenantScope, service_id: int, patch: dict) -> Service:
    enforce_rules_service(patch)
    service = scope.get(Service, service_id, lock=True)
    _apply_patch(service, patch, SERVICE_MUTABLE_FIELDS)
    db.session.flush()
    return service


# Professionals

def list_professionals(scope: TenantScope, available_only: bool = False) -> list[Professional]:
    query = scope.query(Professional)
    if available_only:
        query = query.filter(Professional.is_available.is_(True))
    return query.order_by(Professional.name).all()


@atomic
def create_professional(scope: TenantScope, patch: dict, branch_id: int | None = None, shared: bool = False) -> Professional:
    return _create(scope, Professional, patch, PROFESSIONAL_MUTABLE_FIELDS, branch_id, shared)


@atomic
def update_professional(scope: TenantScope, professional_id: int, patch: dict) -> Professional:
    professional = scope.get(Professional, professional_id, lock=True)
    _apply_patch(professional, patch, PROFESSIONAL_MUTABLE_FIELDS)
    db.session.flush()
    return professional


# Business hours

def list_business_hours(scope: TenantScope, branch_id: int | None = None) -> list[BusinessHours]:
    query = scope.query(BusinessHours)
    if branch_id is not None:
        query = query.filter(BusinessHours.branch_id == branch_id)
    return query.order_by(BusinessHours.branch_id, BusinessHours.weekday).all()


@atomic
def set_business_hours(scope: TenantScope, days: list[dict], branch_id: int | None = None) -> list[BusinessHours]:
    """
    Upsert opening hours. days: [{"weekday": 0, "is_open": true,
    "opens_at": "09:00", "closes_at": "18:00"}, ...]
    """
    branch_id = scope.resolve_branch(branch_id)
    saved = []
    for day in days:
        weekday = day.get("weekday")
        if isinstance(weekday, bool) or not isinstance(weekday, int) or not 0 <= weekday <= 6:
            raise ValidationError("weekday must be an integer between 0 (Monday) and 6 (Sunday)")
        opens_at = parse_time(day.get("opens_at", "09:00"), "opens_at")
        closes_at = parse_time(day.get("closes_at", "18:00"), "closes_at")
        is_open = bool(day.get("is_open", True))
        if is_open and minutes_of_day(closes_at) <= minutes_of_day(opens_at):
            raise ValidationError("closes_at must be after opens_at", details={"weekday": weekday})

        row = (
            db.session.query(BusinessHours)
            .filter_by(tenant_id=scope.tenant_id, branch_id=branch_id, weekday=weekday)
            .first()
        )
        if row is None:
            row = BusinessHours(tenant_id=scope.tenant_id, branch_id=branch_id, weekday=weekday)
            db.session.add(row)
        row.is_open = is_open
        row.opens_at = opens_at
        row.closes_at = closes_at
        saved.append(row)

    db.session.flush()
    return saved
