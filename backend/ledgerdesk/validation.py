from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from ledgerdesk.time_utils import parse_api_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models.types import Money, to_money
from .models.inventory import MOVEMENT_TYPES, PRODUCT_TYPES


# Maximum money amount: 9,999,999,999.99
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_integer(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_money(key: str, value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, str) and 'e' in value.strip().lower():
        raise ValidationError(f"{key} must be a plain number (scientific notation not allowed)")
    try:
        amount = to_money(value)
    except ValueError:
        raise ValidationError(f"{key} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{key} must be a number")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT}")
    return amount


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Money before Integer: Money wraps Numeric, never Integer
    if isinstance(coltype, Money):
        return _coerce_money(col.key, value)

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return coerce_integer(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes: a bare day or a full ISO-8601 timestamp, stored as naive UTC
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return parse_api_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date or datetime")
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def validate_invoice_items(items: Any) -> list[dict]:
    """
    Validate the item list of a new invoice.

    Each item needs product_id (int), quantity (int > 0) and unit_price (>= 0).
    Items keep the order they were supplied in.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    cleaned = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        missing = sorted({"product_id", "quantity", "unit_price"} - set(item.keys()))
        if missing:
            raise ValidationError(f"items[{index}] missing fields: {', '.join(missing)}")
        unknown = sorted(set(item.keys()) - {"product_id", "quantity", "unit_price"})
        if unknown:
            raise ValidationError(f"items[{index}] field not allowed: {', '.join(unknown)}")

        product_id = coerce_integer(f"items[{index}].product_id", item["product_id"])
        quantity = coerce_integer(f"items[{index}].quantity", item["quantity"])
        unit_price = _coerce_money(f"items[{index}].unit_price", item["unit_price"])

        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")
        if unit_price < 0:
            raise ValidationError(f"items[{index}].unit_price must be >= 0")

        cleaned.append({"product_id": product_id, "quantity": quantity, "unit_price": unit_price})
    return cleaned


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "type" in patch and patch["type"] not in PRODUCT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(PRODUCT_TYPES)}")

    for field in ("sell_price", "buy_price"):
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")

    if patch.get("stock_qty") is not None and patch["stock_qty"] < 0:
        raise ValidationError("stock_qty must be >= 0")


def enforce_rules_movement(patch: dict) -> None:
    # Any movement needs a known type and a non-zero signed quantity
    if patch.get("movement_type") not in MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}")

    if patch.get("quantity") in (None, 0):
        raise ValidationError("quantity must be non-zero")

    if patch.get("unit_cost") is not None and patch["unit_cost"] < 0:
        raise ValidationError("unit_cost must be >= 0")

    # reference_type and reference_id travel together
    if (patch.get("reference_type") is None) != (patch.get("reference_id") is None):
        raise ValidationError("reference_type and reference_id must be given together")
