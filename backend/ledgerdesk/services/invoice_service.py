"""
Invoice Service - atomic invoice creation, deletion and status changes

WHY: An invoice and the stock it consumes are one fact. Creating an invoice
writes the header, its items, and one 'sale' movement per item in a single
transaction; deleting it writes the compensating 'return' movements and removes
the invoice in a single transaction. Either everything commits or nothing does.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, InvoiceItem, Customer, Currency, Product, User
from ..models.invoices import INVOICE_STATUSES, OPEN_STATUSES
from ..models.types import to_money
from ledgerdesk.time_utils import utcnow, utc_today, start_of_day
from .ledger_service import apply_movement, LedgerError
from .sequence_service import next_invoice_number
from .concurrency import begin_write, lock_for_update, run_with_retry


INVOICE_REFERENCE = "invoice"


class InvoiceError(Exception):
    """Raised for invoice operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class InvoiceLine:
    """One requested line of a new invoice."""
    product_id: int
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


def _coerce_lines(items) -> list[InvoiceLine]:
    lines = []
    for item in items:
        if isinstance(item, InvoiceLine):
            line = item
        else:
            line = InvoiceLine(
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_price=to_money(item["unit_price"]),
            )
        if line.quantity <= 0:
            raise InvoiceError(
                "Item quantity must be positive",
                details={"product_id": line.product_id, "quantity": line.quantity},
            )
        lines.append(line)
    return lines


def calculate_total(lines: list[InvoiceLine]) -> Decimal:
    return to_money(sum((line.line_total for line in lines), Decimal("0")))


def _buy_price(product_id: int):
    # Movements carry cost, never the selling price
    product = db.session.get(Product, product_id)
    return product.buy_price if product is not None else None


def create_invoice(
    *,
    customer_id: int,
    currency_id: int,
    items,
    created_by_user_id: int,
    due_date: datetime | None = None,
    created_at: datetime | None = None,
) -> Invoice:
    """
    Create an invoice with its items and consume stock for each item.

    Steps (one transaction):
    1. total = sum(quantity * unit_price)
    2. allocate today's invoice number (created_at only stamps the header)
    3. insert the header as 'draft'
    4. per item, in order: record a 'sale' movement of -quantity, insert the item
    5. commit

    Any failure rolls back every step and re-raises. Stock may go negative.
    """
    lines = _coerce_lines(items)
    if not lines:
        raise InvoiceError("Invoice must have at least one item")

    total = calculate_total(lines)
    created_at = created_at or utcnow()

    def _op():
        begin_write()

        if db.session.get(Customer, customer_id) is None:
            raise InvoiceError("Customer not found", details={"customer_id": customer_id})
        if db.session.get(Currency, currency_id) is None:
            raise InvoiceError("Currency not found", details={"currency_id": currency_id})
        if db.session.get(User, created_by_user_id) is None:
            raise InvoiceError("User not found", details={"created_by_user_id": created_by_user_id})

        invoice = Invoice(
            invoice_number=next_invoice_number(),
            customer_id=customer_id,
            currency_id=currency_id,
            total_amount=total,
            due_date=due_date,
            status="draft",
            created_at=created_at,
            created_by_user_id=created_by_user_id,
        )
        db.session.add(invoice)
        db.session.flush()

        for line in lines:
            try:
                apply_movement(
                    product_id=line.product_id,
                    quantity=-line.quantity,
                    movement_type="sale",
                    created_by=created_by_user_id,
                    reference_type=INVOICE_REFERENCE,
                    reference_id=invoice.id,
                    notes=f"Invoice {invoice.invoice_number}",
                    unit_cost=_buy_price(line.product_id),
                )
            except LedgerError as exc:
                raise InvoiceError(str(exc), details=exc.details) from exc
            db.session.add(InvoiceItem(
                invoice_id=invoice.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
            ))

        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info(
        "Created invoice %s (%s) total=%s items=%d",
        invoice.invoice_number, invoice.id, invoice.total_amount, len(lines),
    )
    return invoice


def delete_invoice(invoice_id: int, *, deleted_by_user_id: int | None = None) -> bool:
    """
    Delete an invoice and give its stock back.

    Steps (one transaction):
    1. read the invoice's items
    2. per item, record a 'return' movement of +quantity
    3. delete the invoice (items cascade)

    Returns False if the invoice does not exist.
    """
    def _op():
        begin_write()

        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            return None

        actor = deleted_by_user_id or invoice.created_by_user_id
        items = db.session.query(InvoiceItem).filter_by(invoice_id=invoice.id).order_by(InvoiceItem.id).all()

        for item in items:
            try:
                apply_movement(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    movement_type="return",
                    created_by=actor,
                    reference_type=INVOICE_REFERENCE,
                    reference_id=invoice.id,
                    notes=f"Invoice {invoice.invoice_number} deleted",
                    unit_cost=_buy_price(item.product_id),
                )
            except LedgerError as exc:
                raise InvoiceError(str(exc), details=exc.details) from exc

        number = invoice.invoice_number
        db.session.delete(invoice)
        db.session.commit()
        return number

    number = run_with_retry(_op)
    if number is None:
        return False
    current_app.logger.info("Deleted invoice %s (%s), stock restored", number, invoice_id)
    return True


def update_status(invoice_id: int, status: str) -> Invoice | None:
    """
    Set an invoice's stored status.

    Any stored status may be set from any other (operators correct mistakes by
    hand). No stock effect. Returns None if the invoice does not exist.
    """
    if status not in INVOICE_STATUSES:
        raise InvoiceError(
            f"Invalid status '{status}'",
            details={"allowed": list(INVOICE_STATUSES)},
        )

    def _op():
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None:
            return None
        invoice.status = status
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def get_invoice(invoice_id: int) -> Invoice | None:
    return db.session.get(Invoice, invoice_id)


def _overdue_filter(today):
    return db.and_(
        Invoice.status.in_(OPEN_STATUSES),
        Invoice.due_date.isnot(None),
        Invoice.due_date < start_of_day(today),
    )


def list_invoices(*, role: str, status: str | None = None) -> list[Invoice]:
    """
    List invoices newest-first.

    - Attendants never see paid invoices.
    - status='overdue' returns stored-overdue invoices plus open invoices past due.
    """
    if status is not None and status not in INVOICE_STATUSES:
        raise InvoiceError(f"Invalid status '{status}'", details={"allowed": list(INVOICE_STATUSES)})

    if role == "attendant" and status == "paid":
        return []

    q = db.session.query(Invoice)
    if status == "overdue":
        q = q.filter(db.or_(Invoice.status == "overdue", _overdue_filter(utc_today())))
    elif status is not None:
        q = q.filter(Invoice.status == status)

    if role == "attendant":
        q = q.filter(Invoice.status != "paid")

    return q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def get_overdue_summary() -> dict:
    """Count and total of open invoices whose due date has passed."""
    count, total = (
        db.session.query(func.count(Invoice.id), func.coalesce(func.sum(Invoice.total_amount), 0))
        .filter(_overdue_filter(utc_today()))
        .one()
    )
    return {"count": int(count or 0), "total": to_money(total or 0)}
