# Overview: Locking, write-lock and retry helpers shared by every stock-changing service.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Lock the product or invoice rows a write unit is about to change.

    SQLite has no row locks and ignores FOR UPDATE; there begin_write()
    serializes writers instead.
    """
    return query.with_for_update()


def begin_write():
    """
    Take the database write lock at the start of a write unit.

    On SQLite this issues BEGIN IMMEDIATE so two writers cannot both read
    the same state before either one writes. Other backends rely on
    lock_for_update.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one write unit (invoice, movement, stock edit) and return its result.

    A busy database (OperationalError) or a product whose version moved under
    us (StaleDataError) rolls the session back and reruns the whole unit,
    up to `attempts` times with doubling pauses. Anything else is rolled back
    and raised to the caller as-is.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt == attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
