# backend/ledgerdesk/routes/inventory.py
"""
Inventory ledger routes.

All routes require an acting user (X-User-Id).
- Recording a movement changes stock in the same transaction as the log entry.
- Aggregates read the running stock_qty of active products.
"""
from flask import Blueprint, request, g, current_app
from sqlalchemy.exc import IntegrityError

from ..models import InventoryMovement
from ..services import ledger_service
from ..services.ledger_service import LedgerError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_movement,
)
from ..decorators import require_user


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "quantity",
        "movement_type",
        "reference_type",
        "reference_id",
        "notes",
        "unit_cost",
    },
    required_on_create={"product_id", "quantity", "movement_type"},
)


def _int_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
    return value


@inventory_bp.post("/movements")
@require_user
def record_movement_route():
    """
    Record a stock movement (purchase, adjustment, return, sale, initial).

    quantity is signed: positive = stock in, negative = stock out.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=InventoryMovement,
            payload=payload,
            policy=MOVEMENT_POLICY,
            partial=False,
        )
        enforce_rules_movement(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        movement = ledger_service.record_movement(
            product_id=patch["product_id"],
            quantity=patch["quantity"],
            movement_type=patch["movement_type"],
            created_by=g.current_user.id,
            reference_type=patch.get("reference_type"),
            reference_id=patch.get("reference_id"),
            notes=patch.get("notes"),
            unit_cost=patch.get("unit_cost"),
        )
    except LedgerError as e:
        return {"error": str(e), "details": e.details}, 400
    except IntegrityError as e:
        return {"error": str(e.orig)}, 409
    except Exception:
        current_app.logger.exception("Failed to record inventory movement")
        return {"error": "Internal server error"}, 500

    return {
        "movement": movement.to_dict(),
        "stock_qty": movement.product.stock_qty,
    }, 201


@inventory_bp.get("/movements")
@require_user
def list_movements_route():
    """List movements newest-first. Query: optional product_id, optional limit."""
    try:
        product_id = _int_arg("product_id")
        limit = _int_arg("limit")
    except ValidationError as e:
        return {"error": str(e)}, 400

    if limit is not None and limit <= 0:
        return {"error": "limit must be > 0"}, 400

    movements = ledger_service.list_movements(product_id=product_id, limit=limit)
    return {"movements": [m.to_dict() for m in movements], "count": len(movements)}, 200


@inventory_bp.get("/stock-value")
@require_user
def stock_value_route():
    return {"stock_value": str(ledger_service.get_stock_value())}, 200


@inventory_bp.get("/low-stock")
@require_user
def low_stock_route():
    """Query: optional threshold (defaults to LOW_STOCK_THRESHOLD)."""
    try:
        threshold = _int_arg("threshold")
    except ValidationError as e:
        return {"error": str(e)}, 400

    items = ledger_service.get_low_stock_items(threshold)
    return {
        "items": [{**item, "buy_price": str(item["buy_price"])} for item in items],
        "count": len(items),
    }, 200


@inventory_bp.get("/by-category")
@require_user
def stock_by_category_route():
    rows = ledger_service.get_stock_by_category()
    return {"categories": [{**row, "value": str(row["value"])} for row in rows]}, 200


@inventory_bp.get("/reconcile")
@require_user
def reconcile_route():
    """
    Ledger consistency report.

    Query: optional product_id for a single product; otherwise every product
    whose stock_qty disagrees with the sum of its movements.
    """
    try:
        product_id = _int_arg("product_id")
    except ValidationError as e:
        return {"error": str(e)}, 400

    if product_id is not None:
        row = ledger_service.reconcile_product(product_id)
        if row is None:
            return {"error": "Product not found"}, 404
        return {"reconciliation": row}, 200

    mismatches = ledger_service.reconcile_all()
    return {"consistent": not mismatches, "mismatches": mismatches}, 200
