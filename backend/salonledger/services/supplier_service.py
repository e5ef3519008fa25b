"""
Suppliers and the products bought from them.

Both are branch-scoped like every other ledger row. A supplier product can
point at the StockProduct it restocks; the link never moves stock.

DELETES:
- Deleting a supplier deletes its products. Expenses that referenced either
  keep their amount and description and lose the reference.
- As with stock categories, a supplier whose products reach into a branch
  the caller cannot see is not deleted.
"""

from __future__ import annotations

from flask import current_app

from ..errors import TenantAccessError, ValidationError
from ..extensions import db
from ..models import Expense, StockProduct, Supplier, SupplierProduct
from ..validation import enforce_rules_price
from .concurrency import atomic, begin_write, lock_for_update
from .tenant_service import TenantScope

SUPPLIER_MUTABLE_FIELDS = {"name", "phone", "email", "address", "notes"}
SUPPLIER_PRODUCT_MUTABLE_FIELDS = {
    "name",
    "product_id",
    "purchase_price_cents",
    "sale_price_cents",
    "quantity",
    "notes",
}


def _apply_patch(row, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(row, k, v)


def _check_supplier_product(scope: TenantScope, patch: dict) -> None:
    enforce_rules_price(patch, "purchase_price_cents")
    enforce_rules_price(patch, "sale_price_cents")
    if "quantity" in patch and (patch["quantity"] is None or patch["quantity"] < 0):
        raise ValidationError("quantity must be >= 0")
    if patch.get("product_id") is not None:
        # NotFoundError when the stock product is hidden from the caller
        scope.get(StockProduct, patch["product_id"])


def _detach_expenses(column, row_id: int) -> int:
    return (
        db.session.query(Expense)
        .filter(column == row_id)
        .update({column: None}, synchronize_session="fetch")
    )


# Suppliers

def list_suppliers(scope: TenantScope, search: str | None = None) -> list[Supplier]:
    query = scope.query(Supplier)
    if search:
        query = query.filter(Supplier.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Supplier.name).all()


def get_supplier(scope: TenantScope, supplier_id: int) -> Supplier:
    return scope.get(Supplier, supplier_id)


@atomic
def create_supplier(scope: TenantScope, patch: dict, branch_id: int | None = None, shared: bool = False) -> Supplier:
    supplier = Supplier(
        tenant_id=scope.tenant_id,
        branch_id=scope.resolve_branch(branch_id, explicit_shared=shared),
    )
    _apply_patch(supplier, patch, SUPPLIER_MUTABLE_FIELDS)
    if not supplier.name:
        raise ValidationError("name is required")
    db.session.add(supplier)
    db.session.flush()
    current_app.logger.info("Supplier %s created: %s", supplier.id, supplier.name)
    return supplier


@atomic
def update_supplier(scope: TenantScope, supplier_id: int, patch: dict) -> Supplier:
    supplier = scope.get(Supplier, supplier_id, lock=True)
    _apply_patch(supplier, patch, SUPPLIER_MUTABLE_FIELDS)
    if not supplier.name:
        raise ValidationError("name cannot be blank")
    db.session.flush()
    return supplier


@atomic
def delete_supplier(scope: TenantScope, supplier_id: int) -> dict:
    begin_write()
    supplier = scope.get(Supplier, supplier_id, lock=True)
    products = lock_for_update(
        db.session.query(SupplierProduct).filter(SupplierProduct.supplier_id == supplier.id)
    ).all()

    if any(not scope.admits(p) for p in products):
        raise TenantAccessError(
            "This supplier has products registered by other branches",
            details={"supplier_id": supplier.id},
            audit_event="CROSS_TENANT_ACCESS_DENIED",
        )

    detached = 0
    for product in products:
        detached += _detach_expenses(Expense.supplier_product_id, product.id)
        db.session.delete(product)
    detached += _detach_expenses(Expense.supplier_id, supplier.id)
    db.session.delete(supplier)
    db.session.flush()

    current_app.logger.info(
        "Supplier %s deleted with %d product(s); %d expense reference(s) cleared",
        supplier_id, len(products), detached,
    )
    return {"supplier_id": supplier_id, "deleted_products": len(products), "detached_expenses": detached}


def supplier_totals(scope: TenantScope, supplier_id: int) -> dict:
    """Purchase and resale value of everything bought from one supplier."""
    supplier = scope.get(Supplier, supplier_id)
    products = list_supplier_products(scope, supplier_id=supplier.id)
    return {
        "supplier_id": supplier.id,
        "product_count": len(products),
        "purchase_value_cents": sum(p.purchase_price_cents * p.quantity for p in products),
        "sale_value_cents": sum(p.sale_price_cents * p.quantity for p in products),
    }


# Supplier products

def list_supplier_products(scope: TenantScope, supplier_id: int | None = None) -> list[SupplierProduct]:
    query = scope.query(SupplierProduct)
    if supplier_id is not None:
        query = query.filter(SupplierProduct.supplier_id == supplier_id)
    return query.order_by(SupplierProduct.name).all()


@atomic
def create_supplier_product(
    scope: TenantScope,
    supplier_id: int,
    patch: dict,
    branch_id: int | None = None,
    shared: bool = False,
) -> SupplierProduct:
    supplier = scope.get(Supplier, supplier_id)
    _check_supplier_product(scope, patch)

    product = SupplierProduct(
        tenant_id=scope.tenant_id,
        branch_id=scope.resolve_branch(branch_id, explicit_shared=shared),
        supplier_id=supplier.id,
        purchase_price_cents=0,
        sale_price_cents=0,
        quantity=0,
    )
    _apply_patch(product, patch, SUPPLIER_PRODUCT_MUTABLE_FIELDS)
    if not product.name:
        raise ValidationError("name is required")
    db.session.add(product)
    db.session.flush()
    return product


@atomic
def update_supplier_product(scope: TenantScope, supplier_product_id: int, patch: dict) -> SupplierProduct:
    product = scope.get(SupplierProduct, supplier_product_id, lock=True)
    _check_supplier_product(scope, patch)
    _apply_patch(product, patch, SUPPLIER_PRODUCT_MUTABLE_FIELDS)
    if not product.name:
        raise ValidationError("name cannot be blank")
    db.session.flush()
    return product


@atomic
def delete_supplier_product(scope: TenantScope, supplier_product_id: int) -> dict:
    product = scope.get(SupplierProduct, supplier_product_id, lock=True)
    detached = _detach_expenses(Expense.supplier_product_id, product.id)
    db.session.delete(product)
    db.session.flush()
    return {"supplier_product_id": supplier_product_id, "detached_expenses": detached}
