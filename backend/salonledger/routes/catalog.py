# Overview: Catalog routes for clients, services, professionals, business hours and branches.

from flask import Blueprint, g, request

from ..models import Client, Professional, Service
from ..services import catalog_service, tenant_service
from ..services.gate_service import EditClient
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from ..decorators import require_auth
from .gate import gated_response


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "notes"},
    required_on_create={"name"},
)

SERVICE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_cents", "duration_minutes", "is_active"},
    required_on_create={"name", "price_cents", "duration_minutes"},
)

PROFESSIONAL_POLICY = ModelValidationPolicy(
    writable_fields={"name", "specialty", "is_available"},
    required_on_create={"name"},
)


def _split_placement(payload: dict) -> tuple[dict, int | None, bool]:
    """Pull branch placement out of a create payload before column validation."""
    payload = dict(payload)
    branch_id = payload.pop("branch_id", None)
    shared = payload.pop("shared", False)
    if not isinstance(shared, bool):
        raise ValidationError("shared must be a boolean")
    return payload, branch_id, shared


@catalog_bp.get("/branches")
@require_auth
def list_branches_route():
    branches = tenant_service.list_branches(g.scope)
    return {"branches": [b.to_dict() for b in branches]}, 200


# Clients

@catalog_bp.get("/clients")
@require_auth
def list_clients_route():
    clients = catalog_service.list_clients(
        g.scope,
        search=request.args.get("search"),
        include_walk_ins=request.args.get("include_walk_ins", "true") != "false",
    )
    return {"clients": [c.to_dict() for c in clients]}, 200


@catalog_bp.post("/clients")
@require_auth
def create_client_route():
    payload, branch_id, shared = _split_placement(request.get_json(silent=True) or {})
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)
    client = catalog_service.create_client(g.scope, patch, branch_id=branch_id, shared=shared)
    return {"client": client.to_dict()}, 201


@catalog_bp.put("/clients/<int:client_id>")
@require_auth
def update_client_route(client_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=True)
    return gated_response(EditClient(client_id=client_id, changes=patch))


# Services

@catalog_bp.get("/services")
@require_auth
def list_services_route():
    services = catalog_service.list_services(g.scope, active_only=request.args.get("active") == "true")
    return {"services": [s.to_dict() for s in services]}, 200


@catalog_bp.post("/services")
@require_auth
def create_service_route():
    payload, branch_id, shared = _split_placement(request.get_json(silent=True) or {})
    patch = validate_payload(model=Service, payload=payload, policy=SERVICE_POLICY, partial=False)
    service = catalog_service.create_service(g.scope, patch, branch_id=branch_id, shared=shared)
    return {"service": service.to_dict()}, 201


@catalog_bp.put("/services/<int:service_id>")
@require_auth
def update_service_route(service_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Service, payload=payload, policy=SERVICE_POLICY, partial=True)
    service = catalog_service.update_service(g.scope, service_id, patch)
    return {"service": service.to_dict()}, 200


# Professionals

@catalog_bp.get("/professionals")
@require_auth
def list_professionals_route():
    professionals = catalog_service.list_professionals(
        g.scope,
        available_only=request.args.get("available") == "true",
    )
    return {"professionals": [p.to_dict() for p in professionals]}, 200


@catalog_bp.post("/professionals")
@require_auth
def create_professional_route():
    payload, branch_id, shared = _split_placement(request.get_json(silent=True) or {})
    patch = validate_payload(model=Professional, payload=payload, policy=PROFESSIONAL_POLICY, partial=False)
    professional = catalog_service.create_professional(g.scope, patch, branch_id=branch_id, shared=shared)
    return {"professional": professional.to_dict()}, 201


@catalog_bp.put("/professionals/<int:professional_id>")
@require_auth
def update_professional_route(professional_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Professional, payload=payload, policy=PROFESSIONAL_POLICY, partial=True)
    professional = catalog_service.update_professional(g.scope, professional_id, patch)
    return {"professional": professional.to_dict()}, 200


# Business hours

@catalog_bp.get("/business-hours")
@require_auth
def list_business_hours_route():
    hours = catalog_service.list_business_hours(g.scope, branch_id=request.args.get("branch_id", type=int))
    return {"business_hours": [h.to_dict() for h in hours]}, 200


@catalog_bp.put("/business-hours")
@require_auth
def set_business_hours_route():
    data = request.get_json(silent=True) or {}
    days = data.get("days")
    if not isinstance(days, list):
        return {"error": "days must be a list"}, 400
    hours = catalog_service.set_business_hours(g.scope, days, branch_id=data.get("branch_id"))
    return {"business_hours": [h.to_dict() for h in hours]}, 200
