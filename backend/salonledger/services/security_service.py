# Overview: Append-only security audit trail.

from flask import has_request_context, request

from ..extensions import db
from ..models import SecurityEvent


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    tenant_id: int | None = None,
    branch_id: int | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    event_type examples:
    - CROSS_TENANT_ACCESS_DENIED
    - GATE_PASSWORD_ACCEPTED
    - GATE_PASSWORD_REJECTED
    - GATE_PASSWORD_CHANGED
    - LOGIN_FAILED
    - LOGOUT

    Request path and client address are filled in when called inside a
    request.
    """
    ip_address = None
    if has_request_context():
        resource = resource or request.path
        ip_address = request.remote_addr

    event = SecurityEvent(
        user_id=user_id,
        tenant_id=tenant_id,
        branch_id=branch_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
    )
    db.session.add(event)
    if commit:
        db.session.commit()
    return event
