# Overview: Admin password management and confirmation of pending sensitive actions.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_owner
from ..services import gate_service


gate_bp = Blueprint("gate", __name__, url_prefix="/api/gate")


def gated_response(action):
    """
    Send a sensitive mutation through the gate.

    200 with the result when it ran, 202 with the pending action when the
    admin password is required first.
    """
    outcome = gate_service.request_action(g.scope, g.session_context.session_id, action)
    return jsonify(outcome.to_dict()), 202 if outcome.password_required else 200


@gate_bp.get("/status")
@require_auth
def status_route():
    pending = gate_service.get_pending(g.scope, g.session_context.session_id)
    return jsonify({
        "has_password": gate_service.has_password(g.scope.tenant_id),
        "pending_action": pending.to_dict() if pending else None,
    }), 200


@gate_bp.put("/password")
@require_auth
@require_owner
def set_password_route():
    data = request.get_json(silent=True) or {}
    password = data.get("password")
    if password != data.get("confirm_password", password):
        return jsonify({"error": "Passwords do not match"}), 400

    gate_service.set_password(g.scope.tenant_id, password, user_id=g.current_user.id)
    return jsonify({"has_password": True}), 200


@gate_bp.delete("/password")
@require_auth
@require_owner
def remove_password_route():
    removed = gate_service.remove_password(g.scope.tenant_id, user_id=g.current_user.id)
    if not removed:
        return jsonify({"error": "No admin password configured"}), 404
    return jsonify({"has_password": False}), 200


@gate_bp.post("/submit")
@require_auth
def submit_route():
    data = request.get_json(silent=True) or {}
    password = data.get("password")
    if not password:
        return jsonify({"error": "password is required"}), 400

    outcome = gate_service.submit(
        g.scope,
        g.session_context.session_id,
        password,
        user_id=g.current_user.id,
    )
    return jsonify(outcome.to_dict()), 200


@gate_bp.delete("/pending")
@require_auth
def discard_route():
    discarded = gate_service.discard(g.session_context.session_id)
    return jsonify({"discarded": discarded}), 200
