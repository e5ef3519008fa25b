# Overview: Expense book routes and the period balance.

from flask import Blueprint, g, request

from ..models import Expense
from ..services import expense_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from ..decorators import require_auth


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={
        "description",
        "amount_cents",
        "expense_date",
        "supplier_id",
        "supplier_product_id",
        "receipt_url",
    },
    required_on_create={"description", "amount_cents"},
)


@expenses_bp.get("")
@require_auth
def list_expenses_route():
    expenses = expense_service.list_expenses(
        g.scope,
        period=request.args.get("period", "all"),
        on=request.args.get("on"),
    )
    return {"expenses": [e.to_dict() for e in expenses]}, 200


@expenses_bp.get("/balance")
@require_auth
def period_balance_route():
    balance = expense_service.period_balance(
        g.scope,
        period=request.args.get("period", "month"),
        on=request.args.get("on"),
    )
    return balance, 200


@expenses_bp.post("")
@require_auth
def create_expense_route():
    payload = dict(request.get_json(silent=True) or {})
    branch_id = payload.pop("branch_id", None)
    shared = payload.pop("shared", False)
    if not isinstance(shared, bool):
        raise ValidationError("shared must be a boolean")

    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
    expense = expense_service.create_expense(g.scope, patch, branch_id=branch_id, shared=shared)
    return {"expense": expense.to_dict()}, 201


@expenses_bp.put("/<int:expense_id>")
@require_auth
def update_expense_route(expense_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
    expense = expense_service.update_expense(g.scope, expense_id, patch)
    return {"expense": expense.to_dict()}, 200


@expenses_bp.delete("/<int:expense_id>")
@require_auth
def delete_expense_route(expense_id: int):
    return expense_service.delete_expense(g.scope, expense_id), 200
