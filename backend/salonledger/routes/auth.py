# Overview: Login/logout endpoints issuing bearer session tokens.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service
from ..services.security_service import log_security_event


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate a user of one tenant and open a session.

    Body: {"tenant": "<tenant code>", "username": "...", "password": "..."}
    The returned token goes in the Authorization header as "Bearer <token>".
    """
    data = request.get_json(silent=True) or {}
    tenant_code = data.get("tenant")
    username = data.get("username")
    password = data.get("password")

    if not all([tenant_code, username, password]):
        return jsonify({"error": "tenant, username and password required"}), 400

    user = auth_service.authenticate(tenant_code, username, password)
    if not user:
        log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            action="login",
            reason=f"Invalid credentials for {tenant_code}/{username}",
        )
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(user)

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "tenant_id": session.tenant_id,
        "branch_id": session.branch_id,
        "role": session.role,
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session. Its pending gate action is dropped with it."""
    session_service.revoke_session(g.token, reason="User logout")
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    scope = g.scope
    return jsonify({
        "user": g.current_user.to_dict(),
        "tenant_id": scope.tenant_id,
        "branch_id": scope.branch_id,
        "role": scope.role,
    }), 200
