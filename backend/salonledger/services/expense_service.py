"""
Expense book and the period balance shown next to it.

PERIODS: "day", "week" (Sunday to Saturday), "month" or "all", each taken
around a reference date (default: today in UTC).

BALANCE: paid retail sales minus expenses for the same period. Pending
sales do not count until they are paid. Sales are bucketed by the calendar
date of sold_at, which is stored in UTC.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Expense, StockSale, Supplier, SupplierProduct
from ..models.inventory import SALE_PAYMENT_PAID
from ..time_utils import DATE_FORMAT, parse_date, utcnow
from ..validation import MAX_PRICE_CENTS
from .concurrency import atomic
from .tenant_service import TenantScope

PERIODS = ("day", "week", "month", "all")

EXPENSE_MUTABLE_FIELDS = {
    "description",
    "amount_cents",
    "expense_date",
    "supplier_id",
    "supplier_product_id",
    "receipt_url",
}


def period_bounds(period: str, on: str | None = None) -> tuple[str, str] | None:
    """
    First and last calendar day of the period containing `on`, or None for
    "all".

    period_bounds("week", "2026-03-04") gives ("2026-03-01", "2026-03-07").
    """
    if period not in PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")
    if period == "all":
        return None

    day = datetime.strptime(parse_date(on or utcnow().strftime(DATE_FORMAT), "on"), DATE_FORMAT).date()
    if period == "day":
        start = end = day
    elif period == "week":
        # weekday(): Monday=0 ... Sunday=6
        start = day - timedelta(days=(day.weekday() + 1) % 7)
        end = start + timedelta(days=6)
    else:
        start = day.replace(day=1)
        end = day.replace(day=calendar.monthrange(day.year, day.month)[1])
    return start.strftime(DATE_FORMAT), end.strftime(DATE_FORMAT)


def _check_expense(scope: TenantScope, patch: dict, current: Expense | None = None) -> None:
    if "description" in patch and not (patch["description"] or "").strip():
        raise ValidationError("description cannot be blank")
    if "amount_cents" in patch:
        amount = patch["amount_cents"]
        if amount is None or amount <= 0:
            raise ValidationError("amount_cents must be > 0")
        if amount > MAX_PRICE_CENTS:
            raise ValidationError(f"amount_cents cannot exceed {MAX_PRICE_CENTS}")
    if patch.get("expense_date") is not None:
        patch["expense_date"] = parse_date(patch["expense_date"], "expense_date")

    supplier_id = patch.get("supplier_id", current.supplier_id if current else None)
    product_id = patch.get("supplier_product_id", current.supplier_product_id if current else None)
    if supplier_id is not None:
        scope.get(Supplier, supplier_id)
    if product_id is not None:
        product = scope.get(SupplierProduct, product_id)
        if supplier_id is not None and product.supplier_id != supplier_id:
            raise ValidationError(
                "supplier_product_id does not belong to supplier_id",
                details={"supplier_id": supplier_id, "supplier_product_id": product_id},
            )


def list_expenses(scope: TenantScope, period: str = "all", on: str | None = None) -> list[Expense]:
    query = scope.query(Expense)
    bounds = period_bounds(period, on)
    if bounds is not None:
        query = query.filter(Expense.expense_date >= bounds[0], Expense.expense_date <= bounds[1])
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


@atomic
def create_expense(scope: TenantScope, patch: dict, branch_id: int | None = None, shared: bool = False) -> Expense:
    if not (patch.get("description") or "").strip():
        raise ValidationError("description is required")
    if patch.get("amount_cents") is None:
        raise ValidationError("amount_cents is required")
    _check_expense(scope, patch)

    expense = Expense(
        tenant_id=scope.tenant_id,
        branch_id=scope.resolve_branch(branch_id, explicit_shared=shared),
        expense_date=utcnow().strftime(DATE_FORMAT),
    )
    for k, v in patch.items():
        if k in EXPENSE_MUTABLE_FIELDS and v is not None:
            setattr(expense, k, v)
    db.session.add(expense)
    db.session.flush()
    current_app.logger.info(
        "Expense %s recorded: %d cents on %s", expense.id, expense.amount_cents, expense.expense_date,
    )
    return expense


@atomic
def update_expense(scope: TenantScope, expense_id: int, patch: dict) -> Expense:
    expense = scope.get(Expense, expense_id, lock=True)
    if "expense_date" in patch and patch["expense_date"] is None:
        raise ValidationError("expense_date cannot be null")
    _check_expense(scope, patch, current=expense)
    for k, v in patch.items():
        if k in EXPENSE_MUTABLE_FIELDS:
            setattr(expense, k, v)
    db.session.flush()
    return expense


@atomic
def delete_expense(scope: TenantScope, expense_id: int) -> dict:
    expense = scope.get(Expense, expense_id, lock=True)
    db.session.delete(expense)
    db.session.flush()
    current_app.logger.info("Expense %s deleted", expense_id)
    return {"expense_id": expense_id}


def period_balance(scope: TenantScope, period: str = "month", on: str | None = None) -> dict:
    """Expenses, paid retail sales and their difference for one period."""
    bounds = period_bounds(period, on)
    expenses = list_expenses(scope, period, on)

    sales = scope.query(StockSale).filter(StockSale.payment_status == SALE_PAYMENT_PAID)
    if bounds is not None:
        start = datetime.strptime(bounds[0], DATE_FORMAT)
        end = datetime.strptime(bounds[1], DATE_FORMAT) + timedelta(days=1)
        sales = sales.filter(StockSale.sold_at >= start, StockSale.sold_at < end)

    expenses_total = sum(e.amount_cents for e in expenses)
    sales_total = sum(s.total_price_cents for s in sales.all())
    return {
        "period": period,
        "start": bounds[0] if bounds else None,
        "end": bounds[1] if bounds else None,
        "expense_count": len(expenses),
        "expenses_total_cents": expenses_total,
        "paid_sales_total_cents": sales_total,
        "net_balance_cents": sales_total - expenses_total,
    }
