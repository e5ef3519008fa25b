# Overview: Transaction helpers for the two write paths that must be indivisible
# (stock check-and-decrement, appointment insert-if-absent).

from __future__ import annotations

from functools import wraps

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the write transaction before the first read of a check-then-write.

    On SQLite this takes the database write lock up front (BEGIN IMMEDIATE),
    so two writers cannot both read the same quantity or the same empty slot.
    Other backends rely on lock_for_update() and unique constraints.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def atomic(func):
    """
    Run a service operation as one transaction.

    Commits on success, rolls back on any exception. Lock timeouts and
    unavailable databases surface as TransientError; nothing is retried here.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            raise TransientError(
                "The database is busy or unavailable, try again",
                details={"cause": exc.__class__.__name__},
            ) from exc
        except Exception:
            db.session.rollback()
            raise
    return wrapper
