# backend/salonledger/routes/appointments.py
"""
Appointment routes: booking, lifecycle, payment labels, quick service and
availability.

Adding and cancelling service lines go through the admin password gate.
"""
from flask import Blueprint, g, request

from ..models import Appointment
from ..services import appointment_service, slot_service
from ..services.gate_service import AddServiceLine, CancelServiceLine
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from ..decorators import require_auth
from .gate import gated_response


appointments_bp = Blueprint("appointments", __name__, url_prefix="/api/appointments")

APPOINTMENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"client_id", "service_id", "professional_id", "date", "time", "branch_id", "notes"},
    required_on_create={"client_id", "service_id", "professional_id", "date", "time"},
)


def _service_ids(data: dict) -> list:
    service_ids = data.get("service_ids")
    if not isinstance(service_ids, list) or not service_ids:
        raise ValidationError("service_ids must be a non-empty list")
    if any(isinstance(s, bool) or not isinstance(s, int) for s in service_ids):
        raise ValidationError("service_ids must contain integers")
    return service_ids


@appointments_bp.get("")
@require_auth
def list_appointments_route():
    appointments = appointment_service.list_appointments(
        g.scope,
        date=request.args.get("date"),
        professional_id=request.args.get("professional_id", type=int),
        status=request.args.get("status"),
        client_id=request.args.get("client_id", type=int),
    )
    return {"appointments": [a.to_dict() for a in appointments]}, 200


@appointments_bp.get("/<int:appointment_id>")
@require_auth
def get_appointment_route(appointment_id: int):
    appointment = appointment_service.get_appointment(g.scope, appointment_id)
    return {"appointment": appointment.to_dict()}, 200


@appointments_bp.post("")
@require_auth
def create_appointment_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(
        model=Appointment,
        payload=payload,
        policy=APPOINTMENT_CREATE_POLICY,
        partial=False,
    )

    appointment = appointment_service.create_appointment(
        g.scope,
        client_id=patch["client_id"],
        service_id=patch["service_id"],
        professional_id=patch["professional_id"],
        date=patch["date"],
        time=patch["time"],
        branch_id=patch.get("branch_id"),
        notes=patch.get("notes"),
    )
    return {"appointment": appointment.to_dict()}, 201


@appointments_bp.post("/<int:appointment_id>/transition")
@require_auth
def transition_route(appointment_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        return {"error": "status is required"}, 400

    appointment = appointment_service.transition_appointment(
        g.scope,
        appointment_id,
        status,
        payment_status=data.get("payment_status"),
    )
    return {"appointment": appointment.to_dict()}, 200


@appointments_bp.post("/<int:appointment_id>/payment-status")
@require_auth
def payment_status_route(appointment_id: int):
    data = request.get_json(silent=True) or {}
    payment_status = data.get("payment_status")
    if not payment_status:
        return {"error": "payment_status is required"}, 400

    appointment = appointment_service.set_payment_status(
        g.scope,
        appointment_id,
        payment_status,
        payment_method=data.get("payment_method"),
    )
    return {"appointment": appointment.to_dict()}, 200


@appointments_bp.post("/<int:appointment_id>/service-lines")
@require_auth
def add_service_lines_route(appointment_id: int):
    data = request.get_json(silent=True) or {}
    return gated_response(AddServiceLine(appointment_id=appointment_id, service_ids=tuple(_service_ids(data))))


@appointments_bp.post("/<int:appointment_id>/cancel-line")
@require_auth
def cancel_line_route(appointment_id: int):
    return gated_response(CancelServiceLine(appointment_id=appointment_id))


@appointments_bp.post("/quick-service")
@require_auth
def quick_service_route():
    """
    Walk-in checkout.

    Body: {"professional_id": 1, "service_ids": [2, 3], "client_id"?: 4,
    "client_name"?: "...", "finish_as_paid"?: true, "date"?: "YYYY-MM-DD",
    "time"?: "HH:MM", "branch_id"?: 1, "payment_method"?: "cash"}
    """
    data = request.get_json(silent=True) or {}
    finish_as_paid = data.get("finish_as_paid", True)
    if not isinstance(finish_as_paid, bool):
        return {"error": "finish_as_paid must be a boolean"}, 400

    appointments = appointment_service.quick_service(
        g.scope,
        professional_id=data.get("professional_id"),
        service_ids=_service_ids(data),
        client_id=data.get("client_id"),
        client_name=data.get("client_name"),
        finish_as_paid=finish_as_paid,
        date=data.get("date"),
        anchor_time=data.get("time"),
        branch_id=data.get("branch_id"),
        payment_method=data.get("payment_method"),
    )
    return {
        "appointments": [a.to_dict() for a in appointments],
        "total_price_cents": sum(a.total_price_cents for a in appointments),
    }, 201


@appointments_bp.get("/availability")
@require_auth
def availability_route():
    service_id = request.args.get("service_id", type=int)
    if service_id is None:
        return {"error": "service_id is required"}, 400

    times = slot_service.available_times(
        g.scope,
        request.args.get("date"),
        service_id,
        professional_id=request.args.get("professional_id", type=int),
        branch_id=request.args.get("branch_id", type=int),
    )
    return {"date": request.args.get("date"), "service_id": service_id, "times": times}, 200
