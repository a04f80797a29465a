# Overview: Invoice number allocation; atomic per-day counters.

from __future__ import annotations

from datetime import date

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Invoice, InvoiceSequence
from ledgerdesk.time_utils import utc_today


INVOICE_PREFIX = "INV"
SEQUENCE_PAD = 4


class SequenceError(Exception):
    """Raised when an invoice number cannot be allocated."""
    pass


def date_key_for(on_date: date) -> str:
    return on_date.strftime("%Y%m%d")


def format_invoice_number(date_key: str, number: int) -> str:
    return f"{INVOICE_PREFIX}-{date_key}-{number:0{SEQUENCE_PAD}d}"


def _count_existing(date_key: str) -> int:
    return int(
        db.session.query(func.count(Invoice.id))
        .filter(Invoice.invoice_number.like(f"{INVOICE_PREFIX}-{date_key}-%"))
        .scalar()
        or 0
    )


def _increment(date_key: str) -> int | None:
    stmt = (
        update(InvoiceSequence)
        .where(InvoiceSequence.date_key == date_key)
        .values(next_number=InvoiceSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(InvoiceSequence.next_number)
        .filter_by(date_key=date_key)
        .scalar()
    )
    return current - 1


def next_invoice_number(on_date: date | None = None) -> str:
    """
    Allocate the next invoice number for a calendar day: INV-YYYYMMDD-NNNN.

    Runs inside the caller's transaction and never commits, so the number is
    only consumed if the invoice that carries it commits too.

    The first allocation of a day seeds the counter from the invoices that
    already carry the day's prefix, so numbering continues after rows written
    before the counter existed.
    """
    date_key = date_key_for(on_date or utc_today())

    next_num = _increment(date_key)
    if next_num is not None:
        return format_invoice_number(date_key, next_num)

    next_num = _count_existing(date_key) + 1
    seq = InvoiceSequence(date_key=date_key, next_number=next_num + 1)
    savepoint = db.session.begin_nested()
    try:
        db.session.add(seq)
        db.session.flush()
        savepoint.commit()
    except IntegrityError:
        # Another writer created today's row first; take the next number from it.
        savepoint.rollback()
        next_num = _increment(date_key)
        if next_num is None:
            raise SequenceError(f"Could not allocate invoice number for {date_key}")

    return format_invoice_number(date_key, next_num)


def peek_next_invoice_number(on_date: date | None = None) -> str:
    """Preview the number the next invoice would receive, without allocating it."""
    date_key = date_key_for(on_date or utc_today())
    seq = db.session.query(InvoiceSequence).filter_by(date_key=date_key).first()
    if seq is not None:
        return format_invoice_number(date_key, seq.next_number)
    return format_invoice_number(date_key, _count_existing(date_key) + 1)
