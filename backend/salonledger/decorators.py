# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service
from .services.security_service import log_security_event


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require authentication and establish the tenancy scope.

    Sets on Flask g:
    - g.current_user: the authenticated User
    - g.session_context: the full SessionContext
    - g.scope: TenantScope built once from the session record

    Returns 401 when the Authorization header is missing or the token is
    invalid, expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context
        g.scope = context.scope
        g.token = token

        return f(*args, **kwargs)

    return decorated_function


def require_owner(f):
    """Tenant owners only. Must be applied after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        scope = getattr(g, "scope", None)
        if scope is None:
            return jsonify({"error": "Authentication required"}), 401

        if not scope.is_owner:
            log_security_event(
                user_id=g.current_user.id,
                event_type="OWNER_REQUIRED",
                success=False,
                action=request.method,
                reason=f"role {scope.role} is not owner",
                tenant_id=scope.tenant_id,
                branch_id=scope.branch_id,
            )
            return jsonify({"error": "Owner role required"}), 403

        return f(*args, **kwargs)

    return decorated_function
