"""
Error taxonomy shared by every service.

Each error carries the HTTP status the API answers with, so routes and the
app-level handler never have to guess. Services raise these; they never
return error codes.

    ValidationError     400  missing/malformed input, never retried
    AuthorizationError  401  wrong gate password, pending action kept
    TenantAccessError   403  write aimed at a branch outside the caller's scope
    NotFoundError       404  missing row, or a row the scope does not admit
    ConflictError       409  slot taken, insufficient stock
    IntegrityError      422  illegal state transition
    TransientError      503  database unavailable or locked, caller may retry
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    error_type = "error"

    def __init__(self, message: str, details: dict | None = None, audit_event: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        # Security event type to persist once the failed transaction is rolled back
        self.audit_event = audit_event

    def to_dict(self) -> dict:
        body = {"error": self.message, "type": self.error_type}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""
    status_code = 400
    error_type = "validation_error"


class ConflictError(LedgerError, ValueError):
    """409-level business rule conflict (slot taken, insufficient stock)."""
    status_code = 409
    error_type = "conflict"


class AuthorizationError(LedgerError):
    status_code = 401
    error_type = "authorization_error"


class TenantAccessError(LedgerError):
    """Raised when a write targets a branch outside the caller's tenant or branch."""
    status_code = 403
    error_type = "tenant_access_denied"


class NotFoundError(LedgerError):
    status_code = 404
    error_type = "not_found"


class IntegrityError(LedgerError):
    """Illegal state transition. Never coerced to a nearby legal state."""
    status_code = 422
    error_type = "integrity_error"


class TransientError(LedgerError):
    status_code = 503
    error_type = "transient_error"

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retry"] = True
        return body
