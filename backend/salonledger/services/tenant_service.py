"""
Tenancy Scope: one value per request, passed to every service call.

WHY: The visibility rule used to be recomputed by each screen. Here it is
computed once in @require_auth from the immutable session record, stored on
g.scope, and handed explicitly to every read and write.

RULES:
1. Every row belongs to exactly one tenant; other tenants never see it.
2. Owners see every branch of their tenant.
3. Everyone else sees rows of their assigned branch plus shared rows
   (branch_id IS NULL). Shared catalog items are visible to every branch on
   purpose.
4. A non-owner without an assigned branch sees shared rows only.

USAGE:
    scope = TenantScope(tenant_id=1, role="staff", branch_id=2)
    products = scope.filter(db.session.query(StockProduct), StockProduct).all()
    product = scope.get(StockProduct, product_id)   # NotFoundError if hidden
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import NotFoundError, TenantAccessError
from ..extensions import db
from ..models import Branch
from ..models.auth import ROLE_OWNER
from .concurrency import lock_for_update


@dataclass(frozen=True)
class TenantScope:
    tenant_id: int
    role: str
    branch_id: int | None = None

    @property
    def is_owner(self) -> bool:
        return self.role == ROLE_OWNER

    def admits(self, row) -> bool:
        """Python-side twin of filter(); used for rows already loaded."""
        if row is None or row.tenant_id != self.tenant_id:
            return False
        if self.is_owner:
            return True
        return row.branch_id is None or row.branch_id == self.branch_id

    def filter(self, query, model):
        query = query.filter(model.tenant_id == self.tenant_id)
        if self.is_owner:
            return query
        if self.branch_id is None:
            return query.filter(model.branch_id.is_(None))
        return query.filter(db.or_(model.branch_id == self.branch_id, model.branch_id.is_(None)))

    def query(self, model):
        return self.filter(db.session.query(model), model)

    def get(self, model, row_id, *, lock: bool = False):
        """
        Scoped primary-key lookup.

        Missing rows and rows outside the scope both raise NotFoundError, so
        callers cannot test for the existence of another branch's data.
        """
        label = model.__name__
        if row_id is None:
            raise NotFoundError(f"{label} not found")

        query = db.session.query(model).filter(model.id == row_id)
        if lock:
            query = lock_for_update(query)
        row = query.first()

        if row is None:
            raise NotFoundError(f"{label} not found")
        if not self.admits(row):
            raise NotFoundError(f"{label} not found", audit_event="CROSS_TENANT_ACCESS_DENIED")
        return row

    def resolve_branch(self, requested: int | None, *, explicit_shared: bool = False) -> int | None:
        """
        Branch id for a new row.

        Owners get what they ask for (NULL = shared). Non-owners default to
        their own branch; they may also create shared rows when they ask for
        it explicitly, never rows of another branch.
        """
        if requested is not None:
            branch = db.session.query(Branch).filter_by(id=requested).first()
            if branch is None or branch.tenant_id != self.tenant_id:
                raise TenantAccessError("Branch not found", audit_event="CROSS_TENANT_ACCESS_DENIED")
            if not self.is_owner and requested != self.branch_id:
                raise TenantAccessError("Branch not found", audit_event="CROSS_TENANT_ACCESS_DENIED")
            return requested

        if self.is_owner or explicit_shared:
            return None
        return self.branch_id


def list_branches(scope: TenantScope) -> list[Branch]:
    query = db.session.query(Branch).filter_by(tenant_id=scope.tenant_id)
    if not scope.is_owner:
        query = query.filter(Branch.id == scope.branch_id)
    return query.order_by(Branch.name).all()
