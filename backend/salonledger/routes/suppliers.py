# Overview: Supplier and supplier-product routes.

from flask import Blueprint, g, request

from ..models import Supplier, SupplierProduct
from ..services import supplier_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from ..decorators import require_auth


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "notes"},
    required_on_create={"name"},
)

SUPPLIER_PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "product_id", "purchase_price_cents", "sale_price_cents", "quantity", "notes"},
    required_on_create={"name"},
)


def _split_placement(payload: dict) -> tuple[dict, int | None, bool]:
    payload = dict(payload)
    branch_id = payload.pop("branch_id", None)
    shared = payload.pop("shared", False)
    if not isinstance(shared, bool):
        raise ValidationError("shared must be a boolean")
    return payload, branch_id, shared


@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    suppliers = supplier_service.list_suppliers(g.scope, search=request.args.get("search"))
    return {"suppliers": [s.to_dict() for s in suppliers]}, 200


@suppliers_bp.post("")
@require_auth
def create_supplier_route():
    payload, branch_id, shared = _split_placement(request.get_json(silent=True) or {})
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    supplier = supplier_service.create_supplier(g.scope, patch, branch_id=branch_id, shared=shared)
    return {"supplier": supplier.to_dict()}, 201


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    supplier = supplier_service.get_supplier(g.scope, supplier_id)
    products = supplier_service.list_supplier_products(g.scope, supplier_id=supplier.id)
    return {
        "supplier": supplier.to_dict(),
        "products": [p.to_dict() for p in products],
        "totals": supplier_service.supplier_totals(g.scope, supplier.id),
    }, 200


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    supplier = supplier_service.update_supplier(g.scope, supplier_id, patch)
    return {"supplier": supplier.to_dict()}, 200


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
def delete_supplier_route(supplier_id: int):
    return supplier_service.delete_supplier(g.scope, supplier_id), 200


# Supplier products

@suppliers_bp.get("/products")
@require_auth
def list_supplier_products_route():
    products = supplier_service.list_supplier_products(
        g.scope,
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return {"products": [p.to_dict() for p in products]}, 200


@suppliers_bp.post("/<int:supplier_id>/products")
@require_auth
def create_supplier_product_route(supplier_id: int):
    payload, branch_id, shared = _split_placement(request.get_json(silent=True) or {})
    patch = validate_payload(model=SupplierProduct, payload=payload, policy=SUPPLIER_PRODUCT_POLICY, partial=False)
    product = supplier_service.create_supplier_product(
        g.scope, supplier_id, patch, branch_id=branch_id, shared=shared,
    )
    return {"product": product.to_dict()}, 201


@suppliers_bp.put("/products/<int:supplier_product_id>")
@require_auth
def update_supplier_product_route(supplier_product_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=SupplierProduct, payload=payload, policy=SUPPLIER_PRODUCT_POLICY, partial=True)
    product = supplier_service.update_supplier_product(g.scope, supplier_product_id, patch)
    return {"product": product.to_dict()}, 200


@suppliers_bp.delete("/products/<int:supplier_product_id>")
@require_auth
def delete_supplier_product_route(supplier_product_id: int):
    return supplier_service.delete_supplier_product(g.scope, supplier_product_id), 200
