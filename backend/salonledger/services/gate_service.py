"""
Sensitive Action Gate: a tenant-level secondary password in front of a
fixed set of mutations.

FLOW:
1. A route builds one of the action variants below and calls
   request_action().
2. No admin password configured: the action runs right away.
3. Password configured: the action is stored as the session's single
   pending action (a newer request replaces it) and the caller is told a
   password is required.
4. submit() checks the password. Wrong: AuthorizationError, pending action
   kept. Right: the action runs and the pending row is deleted in the same
   transaction, so it runs exactly once.

Every variant is executed by execute_action(); adding a variant means adding
a dataclass and a branch there.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar

from flask import current_app

from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import AdminCredential, PendingAction
from . import appointment_service, catalog_service, inventory_service
from .auth_service import hash_password, verify_password
from .concurrency import atomic, begin_write
from .security_service import log_security_event
from .tenant_service import TenantScope

MIN_GATE_PASSWORD_LENGTH = 4

ACTION_KINDS: dict[str, type] = {}


def _register(cls):
    ACTION_KINDS[cls.kind] = cls
    return cls


class GateAction:
    kind: ClassVar[str] = ""

    def to_payload(self) -> dict:
        return asdict(self)

    def to_dict(self) -> dict:
        return {"kind": self.kind, **self.to_payload()}

    @classmethod
    def from_payload(cls, payload: dict):
        names = {f.name for f in fields(cls)}
        unknown = set(payload) - names
        missing = names - set(payload)
        if unknown or missing:
            raise ValidationError(
                f"Malformed {cls.kind} action",
                details={"unknown": sorted(unknown), "missing": sorted(missing)},
            )
        return cls(**payload)


@_register
@dataclass(frozen=True)
class EditClient(GateAction):
    kind: ClassVar[str] = "edit_client"
    client_id: int
    changes: dict = field(default_factory=dict)


@_register
@dataclass(frozen=True)
class CancelServiceLine(GateAction):
    kind: ClassVar[str] = "cancel_service_line"
    appointment_id: int


@_register
@dataclass(frozen=True)
class AddServiceLine(GateAction):
    kind: ClassVar[str] = "add_service_line"
    appointment_id: int
    service_ids: tuple = ()

    def to_payload(self) -> dict:
        return {"appointment_id": self.appointment_id, "service_ids": list(self.service_ids)}

    @classmethod
    def from_payload(cls, payload: dict):
        action = super().from_payload(payload)
        return cls(appointment_id=action.appointment_id, service_ids=tuple(action.service_ids or ()))


@_register
@dataclass(frozen=True)
class EditStockProduct(GateAction):
    kind: ClassVar[str] = "edit_stock_product"
    product_id: int
    changes: dict = field(default_factory=dict)


@_register
@dataclass(frozen=True)
class DeleteStockProduct(GateAction):
    kind: ClassVar[str] = "delete_stock_product"
    product_id: int


@_register
@dataclass(frozen=True)
class EditSale(GateAction):
    kind: ClassVar[str] = "edit_sale"
    sale_id: int
    changes: dict = field(default_factory=dict)


@_register
@dataclass(frozen=True)
class DeleteSale(GateAction):
    kind: ClassVar[str] = "delete_sale"
    sale_id: int


def action_from_row(row: PendingAction) -> GateAction:
    cls = ACTION_KINDS.get(row.kind)
    if cls is None:
        raise ValidationError(f"Unknown action kind: {row.kind}")
    return cls.from_payload(json.loads(row.payload))


def _serialize(result: Any):
    if isinstance(result, list):
        return [_serialize(r) for r in result]
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return result


@dataclass
class GateOutcome:
    action: GateAction
    executed: bool = False
    password_required: bool = False
    result: Any = None

    def to_dict(self) -> dict:
        body = {"executed": self.executed, "password_required": self.password_required}
        if self.password_required:
            body["pending_action"] = self.action.to_dict()
        else:
            body["action"] = self.action.to_dict()
        if self.executed:
            body["result"] = _serialize(self.result)
        return body


def execute_action(scope: TenantScope, action: GateAction):
    """Run a gated mutation inside the caller's write transaction."""
    if isinstance(action, EditClient):
        return catalog_service.update_client_locked(scope, action.client_id, action.changes)
    if isinstance(action, CancelServiceLine):
        return appointment_service.cancel_service_line_locked(scope, action.appointment_id)
    if isinstance(action, AddServiceLine):
        return appointment_service.add_service_lines_locked(scope, action.appointment_id, list(action.service_ids))
    if isinstance(action, EditStockProduct):
        return inventory_service.update_product_locked(scope, action.product_id, action.changes)
    if isinstance(action, DeleteStockProduct):
        return inventory_service.delete_product_locked(scope, action.product_id)
    if isinstance(action, EditSale):
        return inventory_service.edit_sale_locked(scope, action.sale_id, action.changes)
    if isinstance(action, DeleteSale):
        return inventory_service.delete_sale_locked(scope, action.sale_id)
    raise ValidationError(f"Unsupported action: {type(action).__name__}")


# Password store

def _credential(tenant_id: int) -> AdminCredential | None:
    return db.session.query(AdminCredential).filter_by(tenant_id=tenant_id).first()


def has_password(tenant_id: int) -> bool:
    credential = _credential(tenant_id)
    return bool(credential and credential.password_hash)


def validate(tenant_id: int, password: str) -> bool:
    credential = _credential(tenant_id)
    if credential is None:
        return False
    return verify_password(password, credential.password_hash)


def set_password(tenant_id: int, password: str, user_id: int | None = None) -> None:
    password_hash = hash_password(password, min_length=MIN_GATE_PASSWORD_LENGTH)
    credential = _credential(tenant_id)
    if credential is None:
        credential = AdminCredential(tenant_id=tenant_id, password_hash=password_hash)
        db.session.add(credential)
    else:
        credential.password_hash = password_hash
    log_security_event(
        user_id=user_id, event_type="GATE_PASSWORD_CHANGED", success=True,
        tenant_id=tenant_id, action="set_password", commit=False,
    )
    db.session.commit()
    current_app.logger.info("Admin password set for tenant %s", tenant_id)


def remove_password(tenant_id: int, user_id: int | None = None) -> bool:
    """
    Remove the tenant's admin password. Pending actions of the tenant are
    dropped too; callers re-request them and they run immediately.
    """
    credential = _credential(tenant_id)
    if credential is None:
        return False
    db.session.delete(credential)
    db.session.query(PendingAction).filter_by(tenant_id=tenant_id).delete()
    log_security_event(
        user_id=user_id, event_type="GATE_PASSWORD_CHANGED", success=True,
        tenant_id=tenant_id, action="remove_password", commit=False,
    )
    db.session.commit()
    current_app.logger.info("Admin password removed for tenant %s", tenant_id)
    return True


# Pending actions

def get_pending(scope: TenantScope, session_id: int) -> GateAction | None:
    row = db.session.query(PendingAction).filter_by(session_id=session_id, tenant_id=scope.tenant_id).first()
    return action_from_row(row) if row else None


@atomic
def _execute_now(scope: TenantScope, action: GateAction):
    begin_write()
    return execute_action(scope, action)


def request_action(scope: TenantScope, session_id: int, action: GateAction) -> GateOutcome:
    if not isinstance(action, GateAction) or action.kind not in ACTION_KINDS:
        raise ValidationError("Unsupported action")

    if not has_password(scope.tenant_id):
        result = _execute_now(scope, action)
        current_app.logger.info("Gated action %s executed without password (tenant %s)", action.kind, scope.tenant_id)
        return GateOutcome(action=action, executed=True, result=result)

    row = db.session.query(PendingAction).filter_by(session_id=session_id).first()
    if row is None:
        row = PendingAction(session_id=session_id, tenant_id=scope.tenant_id)
        db.session.add(row)
    row.kind = action.kind
    row.payload = json.dumps(action.to_payload())
    db.session.commit()

    current_app.logger.info("Gated action %s pending for session %s", action.kind, session_id)
    return GateOutcome(action=action, password_required=True)


@atomic
def _run_pending(scope: TenantScope, session_id: int, user_id: int | None) -> GateOutcome:
    begin_write()
    row = db.session.query(PendingAction).filter_by(session_id=session_id, tenant_id=scope.tenant_id).first()
    if row is None:
        # Confirmed concurrently by another request of the same session
        raise NotFoundError("No pending action")

    action = action_from_row(row)
    result = execute_action(scope, action)
    db.session.delete(row)
    log_security_event(
        user_id=user_id, event_type="GATE_PASSWORD_ACCEPTED", success=True,
        tenant_id=scope.tenant_id, branch_id=scope.branch_id, action=action.kind, commit=False,
    )
    db.session.flush()
    return GateOutcome(action=action, executed=True, result=result)


def submit(scope: TenantScope, session_id: int, password: str, user_id: int | None = None) -> GateOutcome:
    """
    Confirm the session's pending action with the admin password.

    Raises:
        NotFoundError: nothing pending for this session
        AuthorizationError: wrong password; the pending action stays
    """
    action = get_pending(scope, session_id)
    if action is None:
        raise NotFoundError("No pending action")

    if not validate(scope.tenant_id, password):
        log_security_event(
            user_id=user_id, event_type="GATE_PASSWORD_REJECTED", success=False,
            tenant_id=scope.tenant_id, branch_id=scope.branch_id, action=action.kind,
            reason="Incorrect admin password",
        )
        current_app.logger.warning("Admin password rejected for %s (session %s)", action.kind, session_id)
        raise AuthorizationError("Incorrect admin password", details={"pending_action": action.kind})

    outcome = _run_pending(scope, session_id, user_id)
    current_app.logger.info("Gated action %s confirmed (session %s)", action.kind, session_id)
    return outcome


def discard(session_id: int) -> bool:
    deleted = db.session.query(PendingAction).filter_by(session_id=session_id).delete()
    db.session.commit()
    return bool(deleted)
