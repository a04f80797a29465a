from __future__ import annotations

from ..extensions import db
from ledgerdesk.time_utils import isoformat_z, is_past_due
from .types import Money, money_str


INVOICE_STATUSES = ("draft", "sent", "paid", "overdue")

# Statuses an unpaid invoice can be in; overdue is derived from these plus due_date
OPEN_STATUSES = ("draft", "sent")


class Invoice(db.Model):
    """
    Invoice header.

    WHY total_amount is stored: it is the sum of item line totals at write time,
    denormalized so lists and dashboards never need to join items.

    STATUS:
    Stored status is written freely by operators (no transition table).
    'overdue' is normally a derived view: an open invoice whose due_date has passed.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_customer", "customer_id"),
        db.Index("ix_invoices_status", "status"),
        db.Index("ix_invoices_created_at", "created_at"),
        db.CheckConstraint(
            "status IN ('draft', 'sent', 'paid', 'overdue')",
            name="ck_invoices_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INV-20240115-0003")
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="draft")
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=False)
    total_amount = db.Column(Money(), nullable=False, default=0)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    customer = db.relationship("Customer")
    currency = db.relationship("Currency")
    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvoiceItem.id",
    )

    @property
    def is_overdue(self) -> bool:
        if self.status == "overdue":
            return True
        return self.status in OPEN_STATUSES and is_past_due(self.due_date)

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "status": self.status,
            "is_overdue": self.is_overdue,
            "currency_id": self.currency_id,
            "currency_code": self.currency.code if self.currency else None,
            "currency_symbol": self.currency.symbol if self.currency else None,
            "total_amount": money_str(self.total_amount),
            "due_date": isoformat_z(self.due_date),
            "created_at": isoformat_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.Index("ix_invoice_items_invoice", "invoice_id"),
        db.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(Money(), nullable=False)
    # Stored, not recomputed: quantity * unit_price at write time
    line_total = db.Column(Money(), nullable=False)

    invoice = db.relationship("Invoice", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
        }


class InvoiceSequence(db.Model):
    """
    Atomic per-day invoice number counter.

    WHY: Counting today's invoices and adding one is a race (two writers read the
    same count). Incrementing a single row per day serializes allocation on the
    row's write lock, and numbers are never handed out twice even after deletes.
    """
    __tablename__ = "invoice_sequences"

    id = db.Column(db.Integer, primary_key=True)
    date_key = db.Column(db.String(8), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date_key": self.date_key,
            "next_number": self.next_number,
            "updated_at": isoformat_z(self.updated_at),
        }
