# backend/ledgerdesk/services/products_service.py
"""
Products Service

STOCK: Products never have stock_qty written directly. Opening stock is an
'initial' movement and a direct stock edit is an 'adjustment' movement for the
difference, so the movement log always explains the running quantity.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product, Currency, ProductCategory
from ..models.inventory import PRODUCT_STATUSES
from ..models.types import to_money
from .ledger_service import apply_movement
from .concurrency import begin_write, lock_for_update, run_with_retry


class ProductError(Exception):
    """Raised for product operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


PRODUCT_MUTABLE_FIELDS = {"name", "type", "category_id", "sell_price", "buy_price", "currency_id"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        if k in ("sell_price", "buy_price"):
            v = to_money(v)
        setattr(p, k, v)


def _check_references(patch: dict, *, partial: bool) -> None:
    if not partial or "currency_id" in patch:
        currency_id = patch.get("currency_id")
        if currency_id is None or db.session.get(Currency, currency_id) is None:
            raise ProductError("Currency not found", details={"currency_id": currency_id})
    category_id = patch.get("category_id")
    if category_id is not None and db.session.get(ProductCategory, category_id) is None:
        raise ProductError("Category not found", details={"category_id": category_id})


def list_products(include_disabled: bool = False) -> list[Product]:
    q = db.session.query(Product)
    if not include_disabled:
        q = q.filter(Product.status == "active")
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def create_product(*, patch: dict, created_by: int) -> Product:
    """
    Create a product from a validated patch dict.

    If patch carries a non-zero stock_qty it becomes an 'initial' movement
    written in the same transaction as the product.
    """
    opening_qty = patch.get("stock_qty") or 0

    def _op():
        begin_write()

        _check_references(patch, partial=False)

        product = Product(stock_qty=0, status="active")
        apply_product_patch(product, patch)
        db.session.add(product)
        db.session.flush()

        if opening_qty:
            apply_movement(
                product_id=product.id,
                quantity=opening_qty,
                movement_type="initial",
                created_by=created_by,
                notes="Opening stock",
                unit_cost=product.buy_price,
            )

        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, patch: dict) -> Product | None:
    """Update descriptive fields. stock_qty and status are ignored here."""
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            return None
        _check_references(patch, partial=True)
        apply_product_patch(product, patch)
        db.session.commit()
        return product

    return run_with_retry(_op)


def set_stock(product_id: int, new_qty: int, *, created_by: int, notes: str | None = None) -> Product | None:
    """
    Direct stock edit: bring stock_qty to new_qty with one 'adjustment' movement.

    No movement is written when the quantity is already new_qty.
    Returns None if the product does not exist.
    """
    def _op():
        begin_write()

        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            return None

        delta = new_qty - product.stock_qty
        if delta:
            apply_movement(
                product_id=product.id,
                quantity=delta,
                movement_type="adjustment",
                created_by=created_by,
                notes=notes or f"Stock set to {new_qty}",
            )

        db.session.commit()
        return product

    return run_with_retry(_op)


def _set_status(product_id: int, status: str) -> Product | None:
    if status not in PRODUCT_STATUSES:
        raise ValueError(f"Invalid product status '{status}'")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            return None
        product.status = status
        db.session.commit()
        return product

    return run_with_retry(_op)


def disable_product(product_id: int) -> Product | None:
    """
    Disable a product (soft delete).

    WHY: Historical invoices and movements keep pointing at the product;
    disabling only removes it from active listings and stock aggregates.
    """
    return _set_status(product_id, "disabled")


def enable_product(product_id: int) -> Product | None:
    return _set_status(product_id, "active")
