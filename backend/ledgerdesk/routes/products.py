# backend/ledgerdesk/routes/products.py
"""
Product routes.

Creating, editing and disabling products is admin-only. Direct stock edits
are open to any acting user and are recorded as 'adjustment' movements.
"""
from flask import Blueprint, request, g, current_app
from sqlalchemy.exc import IntegrityError

from ..models import Product
from ..services import products_service
from ..services.products_service import ProductError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_product,
    coerce_integer,
)
from ..decorators import require_user, require_role


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type", "category_id", "sell_price", "buy_price", "currency_id", "stock_qty"},
    required_on_create={"name", "currency_id"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type", "category_id", "sell_price", "buy_price", "currency_id"},
)


@products_bp.get("/")
@require_user
def list_products_route():
    include_disabled = request.args.get("include_disabled", "").lower() in ("1", "true", "yes")
    products = products_service.list_products(include_disabled=include_disabled)
    return {"items": [p.to_dict() for p in products], "count": len(products)}, 200


@products_bp.post("/")
@require_user
@require_role("admin")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=PRODUCT_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = products_service.create_product(patch=patch, created_by=g.current_user.id)
    except ProductError as e:
        return {"error": str(e), "details": e.details}, 400
    except IntegrityError as e:
        return {"error": str(e.orig)}, 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict()}, 201


@products_bp.get("/<int:product_id>")
@require_user
def get_product_route(product_id: int):
    product = products_service.get_product(product_id)
    if not product:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}, 200


@products_bp.put("/<int:product_id>")
@require_user
@require_role("admin")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=PRODUCT_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = products_service.update_product(product_id, patch)
    except ProductError as e:
        return {"error": str(e), "details": e.details}, 400
    except IntegrityError as e:
        return {"error": str(e.orig)}, 409
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    if not product:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}, 200


@products_bp.put("/<int:product_id>/stock")
@require_user
def set_stock_route(product_id: int):
    """
    Direct stock edit.

    Body: stock_qty (new absolute quantity), optional notes.
    Writes one 'adjustment' movement for the difference.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict) or "stock_qty" not in payload:
        return {"error": "stock_qty required"}, 400

    try:
        new_qty = coerce_integer("stock_qty", payload["stock_qty"])
    except ValidationError as e:
        return {"error": str(e)}, 400

    notes = payload.get("notes")
    try:
        product = products_service.set_stock(
            product_id,
            new_qty,
            created_by=g.current_user.id,
            notes=str(notes).strip() if notes else None,
        )
    except IntegrityError as e:
        return {"error": str(e.orig)}, 409
    except Exception:
        current_app.logger.exception("Failed to set product stock")
        return {"error": "Internal server error"}, 500
    if not product:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}, 200


@products_bp.post("/<int:product_id>/disable")
@require_user
@require_role("admin")
def disable_product_route(product_id: int):
    product = products_service.disable_product(product_id)
    if not product:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}, 200


@products_bp.post("/<int:product_id>/enable")
@require_user
@require_role("admin")
def enable_product_route(product_id: int):
    product = products_service.enable_product(product_id)
    if not product:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}, 200
