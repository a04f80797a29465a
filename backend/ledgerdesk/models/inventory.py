from __future__ import annotations

from ..extensions import db
from ledgerdesk.time_utils import isoformat_z
from .types import Money, money_str


PRODUCT_TYPES = ("sell", "buy", "both")
PRODUCT_STATUSES = ("active", "disabled")
MOVEMENT_TYPES = ("purchase", "adjustment", "return", "sale", "initial")


class Product(db.Model):
    """
    Product master data plus the running stock quantity.

    STOCK DESIGN DECISION:
    Product.stock_qty is a denormalized running total of InventoryMovement.quantity.
    - It is only ever changed by ledger_service.apply_movement, in the same
      transaction as the movement row that explains the change.
    - It may go negative (overselling is not blocked).

    LIFECYCLE:
    status is 'active' or 'disabled'. Disabled products stay referenced by
    historical invoices and movements; they are excluded from stock aggregates.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category", "category_id"),
        db.CheckConstraint("type IN ('sell', 'buy', 'both')", name="ck_products_type"),
        db.CheckConstraint("status IN ('active', 'disabled')", name="ck_products_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(8), nullable=False, default="both")
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True)

    sell_price = db.Column(Money(), nullable=True)
    buy_price = db.Column(Money(), nullable=True)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=False)

    stock_qty = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("ProductCategory")
    currency = db.relationship("Currency")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock_qty={self.stock_qty}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "sell_price": money_str(self.sell_price),
            "buy_price": money_str(self.buy_price),
            "currency_id": self.currency_id,
            "stock_qty": self.stock_qty,
            "status": self.status,
            "created_at": isoformat_z(self.created_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only record of one signed change to a product's stock.

    INVARIANTS:
    - Never updated or deleted once written.
    - Written in the same DB transaction as the matching Product.stock_qty change.
    - reference_type/reference_id is a loose back-reference (no FK), so a deleted
      invoice keeps its sale and return movements.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_created", "product_id", "created_at"),
        db.Index("ix_inventory_movements_reference", "reference_type", "reference_id"),
        db.CheckConstraint(
            "movement_type IN ('purchase', 'adjustment', 'return', 'sale', 'initial')",
            name="ck_inventory_movements_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # positive = stock in, negative = stock out
    quantity = db.Column(db.Integer, nullable=False)
    movement_type = db.Column(db.String(16), nullable=False, index=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    unit_cost = db.Column(Money(), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product")
    created_by_user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "movement_type": self.movement_type,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "unit_cost": money_str(self.unit_cost),
            "created_by": self.created_by,
            "created_by_username": self.created_by_user.username if self.created_by_user else None,
            "created_at": isoformat_z(self.created_at),
        }
