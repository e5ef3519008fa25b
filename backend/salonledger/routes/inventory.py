# backend/salonledger/routes/inventory.py
"""
Inventory routes: categories, products and retail sales.

Product edits/deletes and sale edits/deletes go through the admin password
gate. Deleting a category requires {"confirm": true}.
"""
from flask import Blueprint, g, request

from ..models import StockProduct, StockSale
from ..services import inventory_service
from ..services.gate_service import DeleteSale, DeleteStockProduct, EditSale, EditStockProduct
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_stock_product,
    validate_payload,
)
from ..decorators import require_auth
from .gate import gated_response


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"category_id", "name", "description", "price_cents", "quantity"},
    required_on_create={"category_id", "name"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price_cents", "quantity"},
)

SALE_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "quantity",
        "unit_price_cents",
        "payment_status",
        "payment_method",
        "client_id",
        "client_name",
        "notes",
    },
    required_on_create={"product_id", "quantity"},
)

SALE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "payment_status", "payment_method", "notes"},
)


# Categories

@inventory_bp.get("/categories")
@require_auth
def list_categories_route():
    categories = inventory_service.list_categories(g.scope)
    return {"categories": [c.to_dict() for c in categories]}, 200


@inventory_bp.post("/categories")
@require_auth
def create_category_route():
    data = request.get_json(silent=True) or {}
    category = inventory_service.create_category(
        g.scope,
        data.get("name"),
        branch_id=data.get("branch_id"),
        shared=bool(data.get("shared", False)),
    )
    return {"category": category.to_dict()}, 201


@inventory_bp.put("/categories/<int:category_id>")
@require_auth
def rename_category_route(category_id: int):
    data = request.get_json(silent=True) or {}
    category = inventory_service.rename_category(g.scope, category_id, data.get("name"))
    return {"category": category.to_dict()}, 200


@inventory_bp.delete("/categories/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    data = request.get_json(silent=True) or {}
    confirm = data.get("confirm", request.args.get("confirm") == "true")
    result = inventory_service.delete_category(g.scope, category_id, confirm=confirm is True)
    return result, 200


# Products

@inventory_bp.get("/products")
@require_auth
def list_products_route():
    products = inventory_service.list_products(
        g.scope,
        category_id=request.args.get("category_id", type=int),
        in_stock_only=request.args.get("in_stock") == "true",
    )
    return {"products": [p.to_dict() for p in products]}, 200


@inventory_bp.post("/products")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}
    branch_id = payload.pop("branch_id", None)
    shared = bool(payload.pop("shared", False))

    patch = validate_payload(model=StockProduct, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_stock_product(patch)

    product = inventory_service.create_product(g.scope, patch, branch_id=branch_id, shared=shared)
    return {"product": product.to_dict()}, 201


@inventory_bp.put("/products/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=StockProduct, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    return gated_response(EditStockProduct(product_id=product_id, changes=patch))


@inventory_bp.delete("/products/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    return gated_response(DeleteStockProduct(product_id=product_id))


@inventory_bp.post("/products/<int:product_id>/move")
@require_auth
def move_product_route(product_id: int):
    data = request.get_json(silent=True) or {}
    category_id = data.get("category_id")
    if category_id is None:
        return {"error": "category_id is required"}, 400
    product = inventory_service.move_product(g.scope, product_id, category_id)
    return {"product": product.to_dict()}, 200


# Sales

@inventory_bp.get("/sales")
@require_auth
def list_sales_route():
    sales = inventory_service.list_sales(
        g.scope,
        product_id=request.args.get("product_id", type=int),
        payment_status=request.args.get("payment_status"),
    )
    return {"sales": [s.to_dict() for s in sales]}, 200


@inventory_bp.post("/sales")
@require_auth
def record_sale_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=StockSale, payload=payload, policy=SALE_POLICY, partial=False)

    sale = inventory_service.record_sale(
        g.scope,
        product_id=patch["product_id"],
        quantity=patch["quantity"],
        unit_price_cents=patch.get("unit_price_cents"),
        payment_status=patch.get("payment_status") or "pending",
        payment_method=patch.get("payment_method"),
        client_id=patch.get("client_id"),
        client_name=patch.get("client_name"),
        notes=patch.get("notes"),
    )
    return {"sale": sale.to_dict()}, 201


@inventory_bp.put("/sales/<int:sale_id>")
@require_auth
def edit_sale_route(sale_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=StockSale, payload=payload, policy=SALE_UPDATE_POLICY, partial=True)
    return gated_response(EditSale(sale_id=sale_id, changes=patch))


@inventory_bp.delete("/sales/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    return gated_response(DeleteSale(sale_id=sale_id))
