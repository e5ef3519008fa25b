"""
Inventory Ledger: stock categories, products and retail sales.

STOCK INVARIANT: StockProduct.quantity never goes below zero.
- record_sale decrements, delete_sale restores, edit_sale moves stock by
  exactly the quantity delta.
- The read, the comparison and the decrement run in one write transaction
  with the product row locked; a CHECK constraint backs it up.

SALE HISTORY: sales snapshot the product name and unit price. Deleting a
product (directly or through its category) detaches its sales instead of
deleting them.
"""

from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, IntegrityError, NotFoundError, TenantAccessError, ValidationError
from ..extensions import db
from ..models import Client, StockCategory, StockProduct, StockSale, SupplierProduct
from ..models.inventory import SALE_PAYMENT_STATUSES, SALE_PAYMENT_PENDING
from ..validation import enforce_rules_price, enforce_rules_sale_quantity, enforce_rules_stock_product
from .concurrency import atomic, begin_write, lock_for_update
from .tenant_service import TenantScope

PRODUCT_MUTABLE_FIELDS = {"name", "description", "price_cents", "quantity"}
SALE_MUTABLE_FIELDS = {"quantity", "payment_status", "payment_method", "notes"}


def _check_payment_status(payment_status: str) -> str:
    if payment_status not in SALE_PAYMENT_STATUSES:
        raise ValidationError(f"payment_status must be one of: {', '.join(SALE_PAYMENT_STATUSES)}")
    return payment_status


def _get_category(scope: TenantScope, category_id: int, lock: bool = False) -> StockCategory:
    return scope.get(StockCategory, category_id, lock=lock)


def _detach_sales(product: StockProduct) -> int:
    """Keep sale history of a product that is about to be deleted."""
    return (
        db.session.query(StockSale)
        .filter(StockSale.product_id == product.id)
        .update({StockSale.product_id: None}, synchronize_session="fetch")
    )


def _unlink_supplier_products(product: StockProduct) -> None:
    db.session.query(SupplierProduct).filter(SupplierProduct.product_id == product.id).update(
        {SupplierProduct.product_id: None}, synchronize_session="fetch"
    )


# Categories

def list_categories(scope: TenantScope) -> list[StockCategory]:
    return scope.query(StockCategory).order_by(StockCategory.name).all()


@atomic
def create_category(scope: TenantScope, name: str, branch_id: int | None = None, shared: bool = False) -> StockCategory:
    if not name or not name.strip():
        raise ValidationError("name is required")
    category = StockCategory(
        tenant_id=scope.tenant_id,
        branch_id=scope.resolve_branch(branch_id, explicit_shared=shared),
        name=name.strip(),
    )
    db.session.add(category)
    db.session.flush()
    return category


@atomic
def rename_category(scope: TenantScope, category_id: int, name: str) -> StockCategory:
    if not name or not name.strip():
        raise ValidationError("name is required")
    category = _get_category(scope, category_id, lock=True)
    category.name = name.strip()
    db.session.flush()
    return category


@atomic
def delete_category(scope: TenantScope, category_id: int, confirm: bool = False) -> dict:
    """
    Delete a category together with every product in it.

    Destructive, so the caller must pass confirm=True. Sales of the deleted
    products survive with their product_name snapshot and product_id NULL.

    A shared category can hold products of several branches. If any of them
    is outside the caller's scope the delete is refused with
    TenantAccessError and nothing changes; an owner has to do it.
    """
    if confirm is not True:
        raise ValidationError("Deleting a category deletes its products; pass confirm=true")

    begin_write()
    category = _get_category(scope, category_id, lock=True)
    products = lock_for_update(
        db.session.query(StockProduct).filter(StockProduct.category_id == category.id)
    ).all()

    hidden = [p for p in products if not scope.admits(p)]
    if hidden:
        current_app.logger.warning(
            "Category %s delete refused: %d product(s) outside the caller's scope",
            category_id, len(hidden),
        )
        raise TenantAccessError(
            "This category holds products of other branches",
            details={"category_id": category.id},
            audit_event="CROSS_TENANT_ACCESS_DENIED",
        )

    detached = 0
    for product in products:
        detached += _detach_sales(product)
        _unlink_supplier_products(product)
        db.session.delete(product)
    db.session.delete(category)
    db.session.flush()

    current_app.logger.warning(
        "Category %s deleted with %d product(s); %d sale(s) detached",
        category_id, len(products), detached,
    )
    return {"category_id": category_id, "deleted_products": len(products), "detached_sales": detached}


# Products

def list_products(scope: TenantScope, category_id: int | None = None, in_stock_only: bool = False) -> list[StockProduct]:
    query = scope.query(StockProduct)
    if category_id is not None:
        query = query.filter(StockProduct.category_id == category_id)
    if in_stock_only:
        query = query.filter(StockProduct.quantity > 0)
    return query.order_by(StockProduct.name).all()


@atomic
def create_product(scope: TenantScope, patch: dict, branch_id: int | None = None, shared: bool = False) -> StockProduct:
    category = _get_category(scope, patch.get("category_id"))
    enforce_rules_stock_product(patch)
    quantity = patch.get("quantity") or 0

    product = StockProduct(
        tenant_id=scope.tenant_id,
        branch_id=scope.resolve_branch(branch_id, explicit_shared=shared),
        category_id=category.id,
        name=patch["name"],
        description=patch.get("description"),
        price_cents=patch.get("price_cents") or 0,
        quantity=quantity,
    )
    db.session.add(product)
    db.session.flush()
    return product


def update_product_locked(scope: TenantScope, product_id: int, patch: dict) -> StockProduct:
    """
    Edit product fields. A quantity here is a stock count correction and is
    held to the same never-negative rule as sales.
    """
    product = scope.get(StockProduct, product_id, lock=True)
    enforce_rules_price(patch)
    if "quantity" in patch and (patch["quantity"] is None or patch["quantity"] < 0):
        raise IntegrityError("Stock quantity cannot be negative", details={"product_id": product.id})

    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(product, k, v)
    db.session.flush()
    current_app.logger.info("Product %s updated (%s)", product.id, ", ".join(sorted(patch)))
    return product


@atomic
def update_product(scope: TenantScope, product_id: int, patch: dict) -> StockProduct:
    begin_write()
    return update_product_locked(scope, product_id, patch)


def delete_product_locked(scope: TenantScope, product_id: int) -> dict:
    product = scope.get(StockProduct, product_id, lock=True)
    detached = _detach_sales(product)
    _unlink_supplier_products(product)
    db.session.delete(product)
    db.session.flush()
    current_app.logger.info("Product %s deleted; %d sale(s) detached", product_id, detached)
    return {"product_id": product_id, "detached_sales": detached}


@atomic
def delete_product(scope: TenantScope, product_id: int) -> dict:
    begin_write()
    return delete_product_locked(scope, product_id)


@atomic
def move_product(scope: TenantScope, product_id: int, category_id: int) -> StockProduct:
    product = scope.get(StockProduct, product_id, lock=True)
    category = _get_category(scope, category_id)
    product.category_id = category.id
    db.session.flush()
    return product


# Sales

def list_sales(scope: TenantScope, product_id: int | None = None, payment_status: str | None = None) -> list[StockSale]:
    query = scope.query(StockSale)
    if product_id is not None:
        query = query.filter(StockSale.product_id == product_id)
    if payment_status:
        query = query.filter(StockSale.payment_status == _check_payment_status(payment_status))
    return query.order_by(StockSale.sold_at.desc(), StockSale.id.desc()).all()


@atomic
def record_sale(
    scope: TenantScope,
    product_id: int,
    quantity,
    unit_price_cents: int | None = None,
    payment_status: str = SALE_PAYMENT_PENDING,
    payment_method: str | None = None,
    client_id: int | None = None,
    client_name: str | None = None,
    notes: str | None = None,
) -> StockSale:
    """
    Sell quantity units of a product.

    ConflictError when stock is short; nothing changes in that case. The
    unit price defaults to the product's current price and is frozen on the
    sale.
    """
    quantity = enforce_rules_sale_quantity(quantity)
    _check_payment_status(payment_status)
    if unit_price_cents is not None:
        enforce_rules_price({"unit_price_cents": unit_price_cents}, "unit_price_cents")

    begin_write()
    product = scope.get(StockProduct, product_id, lock=True)

    if quantity > product.quantity:
        current_app.logger.warning(
            "Insufficient stock for product %s: requested %d, on hand %d",
            product.id, quantity, product.quantity,
        )
        raise ConflictError(
            "Insufficient stock",
            details={"product_id": product.id, "requested_quantity": quantity, "on_hand": product.quantity},
        )

    client = scope.get(Client, client_id) if client_id is not None else None
    unit_price = product.price_cents if unit_price_cents is None else unit_price_cents

    product.quantity -= quantity
    sale = StockSale(
        tenant_id=scope.tenant_id,
        branch_id=product.branch_id if product.branch_id is not None else scope.branch_id,
        product_id=product.id,
        product_name=product.name,
        client_id=client.id if client else None,
        client_name=client.name if client else client_name,
        quantity=quantity,
        unit_price_cents=unit_price,
        total_price_cents=quantity * unit_price,
        payment_status=payment_status,
        payment_method=payment_method,
        notes=notes,
    )
    db.session.add(sale)
    db.session.flush()

    current_app.logger.info(
        "Sale %s: product %s x%d at %d cents, stock now %d",
        sale.id, product.id, quantity, unit_price, product.quantity,
    )
    return sale


def edit_sale_locked(scope: TenantScope, sale_id: int, changes: dict) -> StockSale:
    """
    Apply sale edits. A quantity change moves product stock by exactly
    new - old: a positive delta needs that much stock on hand, a negative
    delta returns units to stock.
    """
    unknown = set(changes) - SALE_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    sale = scope.get(StockSale, sale_id, lock=True)

    if "payment_status" in changes and changes["payment_status"] is not None:
        sale.payment_status = _check_payment_status(changes["payment_status"])
    if "payment_method" in changes:
        sale.payment_method = changes["payment_method"]
    if "notes" in changes:
        sale.notes = changes["notes"]

    if changes.get("quantity") is not None:
        new_quantity = enforce_rules_sale_quantity(changes["quantity"])
        delta = new_quantity - sale.quantity
        if delta != 0:
            if sale.product_id is None:
                raise IntegrityError(
                    "The product of this sale was deleted; its quantity can no longer change",
                    details={"sale_id": sale.id},
                )
            product = lock_for_update(db.session.query(StockProduct).filter_by(id=sale.product_id)).first()
            if product is None:
                raise NotFoundError("StockProduct not found")
            if delta > 0 and product.quantity < delta:
                raise ConflictError(
                    "Insufficient stock",
                    details={"product_id": product.id, "requested_quantity": delta, "on_hand": product.quantity},
                )
            product.quantity -= delta
            current_app.logger.info(
                "Sale %s quantity %d -> %d, product %s stock now %d",
                sale.id, sale.quantity, new_quantity, product.id, product.quantity,
            )
        sale.quantity = new_quantity
        sale.total_price_cents = sale.unit_price_cents * new_quantity

    db.session.flush()
    return sale


@atomic
def edit_sale(scope: TenantScope, sale_id: int, changes: dict) -> StockSale:
    begin_write()
    return edit_sale_locked(scope, sale_id, changes)


def delete_sale_locked(scope: TenantScope, sale_id: int) -> dict:
    """Remove a sale and put its units back in stock."""
    sale = scope.get(StockSale, sale_id, lock=True)

    restored = 0
    if sale.product_id is not None:
        product = lock_for_update(db.session.query(StockProduct).filter_by(id=sale.product_id)).first()
        if product is not None:
            product.quantity += sale.quantity
            restored = sale.quantity

    db.session.delete(sale)
    db.session.flush()
    current_app.logger.info("Sale %s deleted, %d unit(s) restored", sale_id, restored)
    return {"sale_id": sale_id, "restored_quantity": restored}


@atomic
def delete_sale(scope: TenantScope, sale_id: int) -> dict:
    begin_write()
    return delete_sale_locked(scope, sale_id)
