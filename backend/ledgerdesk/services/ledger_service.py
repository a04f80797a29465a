# Overview: Inventory movement log and stock ledger; the only writer of Product.stock_qty.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, ProductCategory, InventoryMovement, User
from ..models.inventory import MOVEMENT_TYPES
from ..models.types import to_money
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
LedgerDesk Stock Ledger Invariants (authoritative)

- InventoryMovement is append-only: rows are never updated or deleted.
- Every change to Product.stock_qty is made by apply_movement(), in the same DB
  transaction as the InventoryMovement row that records it.
- Therefore for every product: stock_qty == SUM(inventory_movements.quantity).
- Quantity sign is chosen by the caller: positive = stock in, negative = stock out.
- Stock may go negative; oversell is not blocked.

Reference conventions:
- Invoice sales:     movement_type='sale',   quantity=-item.quantity, reference=('invoice', id)
- Invoice deletion:  movement_type='return', quantity=+item.quantity, reference=('invoice', id)
- Product creation:  movement_type='initial'
- Direct stock edit: movement_type='adjustment' (delta between old and new quantity)
"""


class LedgerError(Exception):
    """Raised for inventory movement errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _validate_movement(quantity, movement_type: str) -> None:
    if movement_type not in MOVEMENT_TYPES:
        raise LedgerError(
            f"Invalid movement_type '{movement_type}'",
            details={"allowed": list(MOVEMENT_TYPES)},
        )
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise LedgerError("quantity must be an integer")
    if quantity == 0:
        raise LedgerError("quantity must be non-zero")


def apply_movement(
    *,
    product_id: int,
    quantity: int,
    movement_type: str,
    created_by: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
    unit_cost=None,
) -> InventoryMovement:
    """Core movement logic without write-lock, retry, or commit.

    Called by record_movement() and by every other service that changes stock
    (invoices, products) so all stock changes land in the same log.
    """
    _validate_movement(quantity, movement_type)

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise LedgerError(f"Product {product_id} not found", details={"product_id": product_id})

    movement = InventoryMovement(
        product_id=product.id,
        quantity=quantity,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        unit_cost=to_money(unit_cost),
        created_by=created_by,
    )
    db.session.add(movement)

    product.stock_qty = (product.stock_qty or 0) + quantity

    db.session.flush()
    return movement


def record_movement(
    *,
    product_id: int,
    quantity: int,
    movement_type: str,
    created_by: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
    unit_cost=None,
) -> InventoryMovement:
    """
    Record one stock movement and apply it to the product's running quantity.

    Both effects commit together or not at all.
    """
    def _op():
        begin_write()

        if db.session.get(User, created_by) is None:
            raise LedgerError(f"User {created_by} not found", details={"created_by": created_by})

        movement = apply_movement(
            product_id=product_id,
            quantity=quantity,
            movement_type=movement_type,
            created_by=created_by,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            unit_cost=unit_cost,
        )

        db.session.commit()
        return movement

    movement = run_with_retry(_op)
    current_app.logger.info(
        "Recorded %s movement %s: product=%s quantity=%+d",
        movement.movement_type, movement.id, movement.product_id, movement.quantity,
    )
    return movement


def list_movements(*, product_id: int | None = None, limit: int | None = None) -> list[InventoryMovement]:
    """
    List movements newest-first.

    Without a product filter the list is capped (MOVEMENT_LIST_LIMIT by default);
    a single product's audit trail is returned in full unless a limit is given.
    """
    q = db.session.query(InventoryMovement)
    if product_id is not None:
        q = q.filter(InventoryMovement.product_id == product_id)
    elif limit is None:
        limit = current_app.config.get("MOVEMENT_LIST_LIMIT", 100)

    q = q.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_stock_value() -> Decimal:
    """Sum of stock_qty * buy_price over active products (missing price counts as 0)."""
    total = (
        db.session.query(
            func.coalesce(func.sum(Product.stock_qty * func.coalesce(Product.buy_price, 0)), 0)
        )
        .filter(Product.status == "active")
        .scalar()
    )
    return to_money(total or 0)


def get_low_stock_items(threshold: int | None = None) -> list[dict]:
    """Active products with stock_qty <= threshold, lowest stock first."""
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)

    rows = (
        db.session.query(Product)
        .filter(Product.status == "active", Product.stock_qty <= threshold)
        .order_by(Product.stock_qty.asc(), Product.id.asc())
        .all()
    )
    return [
        {
            "id": p.id,
            "name": p.name,
            "stock_qty": p.stock_qty,
            "buy_price": to_money(p.buy_price or 0),
        }
        for p in rows
    ]


def get_stock_by_category() -> list[dict]:
    """Item count and stock value per category over active products, highest value first."""
    category = func.coalesce(ProductCategory.name, "Uncategorized")
    value = func.coalesce(func.sum(Product.stock_qty * func.coalesce(Product.buy_price, 0)), 0)

    rows = (
        db.session.query(
            category.label("category"),
            func.count(Product.id).label("items"),
            value.label("value"),
        )
        .select_from(Product)
        .outerjoin(ProductCategory, Product.category_id == ProductCategory.id)
        .filter(Product.status == "active")
        .group_by(category)
        .all()
    )
    result = [
        {"category": row.category, "items": int(row.items), "value": to_money(row.value or 0)}
        for row in rows
    ]
    result.sort(key=lambda r: (-r["value"], r["category"]))
    return result


def reconcile_product(product_id: int) -> dict | None:
    """
    Compare a product's stored stock_qty with the sum of its movements.

    Returns None if the product does not exist.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        return None

    ledger_qty = (
        db.session.query(func.coalesce(func.sum(InventoryMovement.quantity), 0))
        .filter(InventoryMovement.product_id == product_id)
        .scalar()
    )
    ledger_qty = int(ledger_qty or 0)
    return {
        "product_id": product.id,
        "name": product.name,
        "stock_qty": product.stock_qty,
        "ledger_qty": ledger_qty,
        "difference": product.stock_qty - ledger_qty,
        "consistent": product.stock_qty == ledger_qty,
    }


def reconcile_all() -> list[dict]:
    """Reconciliation rows for every product whose stock disagrees with its ledger."""
    sums = dict(
        db.session.query(InventoryMovement.product_id, func.sum(InventoryMovement.quantity))
        .group_by(InventoryMovement.product_id)
        .all()
    )
    mismatches = []
    for product in db.session.query(Product).order_by(Product.id).all():
        ledger_qty = int(sums.get(product.id) or 0)
        if product.stock_qty != ledger_qty:
            mismatches.append({
                "product_id": product.id,
                "name": product.name,
                "stock_qty": product.stock_qty,
                "ledger_qty": ledger_qty,
                "difference": product.stock_qty - ledger_qty,
                "consistent": False,
            })
    return mismatches
