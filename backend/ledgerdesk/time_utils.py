# Overview: UTC clock and wire-format helpers for invoice dates and ledger timestamps.

from __future__ import annotations

from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    """The calendar day invoice numbers are allocated for."""
    return utcnow().date()


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def is_past_due(due_date: datetime | None, today: date | None = None) -> bool:
    """A due date lapses once its calendar day is before today; the due day itself is not late."""
    if due_date is None:
        return False
    return due_date.date() < (today or utc_today())


def parse_api_datetime(value: str) -> datetime:
    """
    Read a client-supplied datetime into naive UTC.

    A bare day ("2026-03-14", the usual shape of a due date) means midnight UTC.
    Full timestamps may carry an offset or a trailing Z; naive ones are UTC.
    Raises ValueError for blank or malformed input.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty datetime")
    if len(text) == 10:
        return start_of_day(date.fromisoformat(text))
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def isoformat_z(value: datetime | None) -> str | None:
    # Whole seconds, always UTC, always suffixed
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"
