# Overview: Request payload checks against model columns plus ledger business rules.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError  # noqa: F401  (re-exported for routes)


# R$ 9.999.999,99
MAX_PRICE_CENTS = 999_999_999

MAX_DURATION_MINUTES = 24 * 60

TRUE_WORDS = {"true", "1", "yes"}
FALSE_WORDS = {"false", "0", "no"}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a route lets the caller write.

    writable_fields is the allowlist; anything else in the body is refused.
    required_on_create only applies to create (partial=False) payloads.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _as_int(key: str, value: Any) -> int:
    # bool is an int subclass; JSON true/false is never a count or a price
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be a whole number")
    if isinstance(value, str):
        text = value.strip()
        digits = text[1:] if text.startswith("-") else text
        if digits.isdigit():
            return int(text)
    raise ValidationError(f"{key} must be an integer")


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
    raise ValidationError(f"{key} must be a boolean")


def _as_text(column, value: Any) -> str:
    # numbers are fine as text (phone digits); lists, objects and bools are not
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError(f"{column.key} must be a string")
    text = str(value).strip()
    if not text and not column.nullable:
        raise ValidationError(f"{column.key} cannot be blank")
    limit = getattr(column.type, "length", None)
    if limit and len(text) > limit:
        raise ValidationError(f"{column.key} exceeds max length {limit}")
    return text


def _coerce(column, value: Any):
    if isinstance(column.type, Boolean):
        return _as_bool(column.key, value)
    if isinstance(column.type, Integer):
        return _as_int(column.key, value)
    if isinstance(column.type, (String, Text)):
        return _as_text(column, value)
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Clean a JSON body before it reaches a service.

    Keys outside the policy are refused, values are coerced to the column
    type (integers stay strict: no decimals, no exponent notation) and
    non-nullable columns reject null and blank text. With partial=False the
    policy's required fields must be present.

    Returns a new dict holding only the cleaned keys.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(name for name in policy.required_on_create if payload.get(name) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce(column, raw)
    return patch


def enforce_rules_price(patch: dict, key: str = "price_cents") -> None:
    price = patch.get(key)
    if price is None:
        return
    if price < 0:
        raise ValidationError(f"{key} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_service(patch: dict) -> None:
    enforce_rules_price(patch)
    if "duration_minutes" in patch:
        duration = patch["duration_minutes"]
        if duration is None or duration <= 0:
            raise ValidationError("duration_minutes must be > 0")
        if duration > MAX_DURATION_MINUTES:
            raise ValidationError(f"duration_minutes cannot exceed {MAX_DURATION_MINUTES}")


def enforce_rules_stock_product(patch: dict) -> None:
    enforce_rules_price(patch)
    if (patch.get("quantity") or 0) < 0:
        raise ValidationError("quantity must be >= 0")


def enforce_rules_sale_quantity(quantity) -> int:
    """Sale quantities are positive integers; bools and decimals are rejected."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")
    return quantity
