"""Helpers for classifying database/SQLAlchemy errors."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

_UNIQUE_VIOLATION_SQLSTATES = {"23505"}
_SERIALIZATION_SQLSTATES = {"40001", "40P01"}


def _sqlstate(exc: SQLAlchemyError) -> str | None:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_unique_violation(exc: SQLAlchemyError) -> bool:
    """Return ``True`` if ``exc`` reports a duplicate primary/unique key."""

    if _sqlstate(exc) in _UNIQUE_VIOLATION_SQLSTATES:
        return True

    orig = getattr(exc, "orig", None)
    if orig is None:
        return False

    message = str(orig).lower()
    return "unique constraint" in message or "duplicate key" in message


def is_write_conflict(exc: SQLAlchemyError) -> bool:
    """Return ``True`` if ``exc`` means another writer got there first.

    Covers duplicate inserts of the same stats row, serialization failures and
    deadlocks reported by PostgreSQL, and SQLite's ``database is locked``.
    """

    if is_unique_violation(exc):
        return True
    if _sqlstate(exc) in _SERIALIZATION_SQLSTATES:
        return True

    orig = getattr(exc, "orig", None)
    if orig is None:
        return False
    return "database is locked" in str(orig).lower()
