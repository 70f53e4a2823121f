"""Error taxonomy of the entity access layer.

Builder contract violations surface as :class:`QueryValidationError` before any
statement reaches the store. Failures reported by the store are classified by
:func:`classify_store_error` into :class:`ConstraintViolationError` or
:class:`QueryError`.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

import aiosqlite

from ticket_bot.utils.formatters import format_criteria

__all__ = [
    "DatabaseError",
    "NotFoundError",
    "ConstraintViolationError",
    "QueryError",
    "QueryValidationError",
    "AmbiguousNameError",
    "classify_store_error",
]

# "UNIQUE constraint failed: tickets.channel_id", "FOREIGN KEY constraint failed", ...
_SQLITE_CONSTRAINT_RE = re.compile(
    r"^(UNIQUE|NOT NULL|CHECK|FOREIGN KEY|PRIMARY KEY) constraint failed(?::\s*(?P<detail>.+))?$"
)

# SQLSTATE class 23 is "integrity constraint violation" in PostgreSQL.
_INTEGRITY_SQLSTATE_CLASS = "23"


class DatabaseError(Exception):
    """Base class for every error raised by the access layer."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class NotFoundError(DatabaseError):
    """A single-row operation matched zero rows."""

    def __init__(self, entity_name: str, criteria: Mapping[str, Any]) -> None:
        self.entity_name = entity_name
        self.criteria = dict(criteria)
        super().__init__(f"{entity_name} not found with {format_criteria(self.criteria)}")


class ConstraintViolationError(DatabaseError):
    """The store rejected a mutation because of a uniqueness/FK/NOT NULL/CHECK rule."""

    def __init__(
        self,
        message: str,
        constraint: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.constraint = constraint


class QueryError(DatabaseError):
    """Any other store-level failure. ``query`` holds the failed statement."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.query = query


class QueryValidationError(DatabaseError, ValueError):
    """A statement could not be built from the supplied arguments."""


class AmbiguousNameError(QueryValidationError):
    """A field or column name has no unambiguous default translation."""

    def __init__(self, name: str, direction: str) -> None:
        super().__init__(
            f"Name {name!r} is ambiguous for the default {direction} transform; "
            "add it to the column override table"
        )
        self.name = name
        self.direction = direction


def _sqlite_constraint(message: str) -> Optional[str]:
    match = _SQLITE_CONSTRAINT_RE.match(message.strip())
    if not match:
        return None
    return match.group("detail") or match.group(1)


def _postgres_constraint(error: BaseException) -> tuple[bool, Optional[str]]:
    """Inspect asyncpg/psycopg style diagnostics for an integrity violation."""
    sqlstate = getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)
    if not isinstance(sqlstate, str) or not sqlstate.startswith(_INTEGRITY_SQLSTATE_CLASS):
        return False, None
    constraint = getattr(error, "constraint_name", None)
    if constraint is None:
        diag = getattr(error, "diag", None)
        constraint = getattr(diag, "constraint_name", None) if diag else None
    return True, constraint


def classify_store_error(
    error: BaseException,
    *,
    table: str,
    operation: str,
    query: Optional[str] = None,
) -> DatabaseError:
    """Wrap a raw store exception into the access-layer taxonomy."""
    if isinstance(error, DatabaseError):
        return error

    if isinstance(error, aiosqlite.IntegrityError):
        return ConstraintViolationError(
            f"Constraint violated during {operation} on {table}: {error}",
            constraint=_sqlite_constraint(str(error)),
            cause=error,
        )

    is_integrity, constraint = _postgres_constraint(error)
    if is_integrity:
        return ConstraintViolationError(
            f"Constraint violated during {operation} on {table}: {error}",
            constraint=constraint,
            cause=error,
        )

    return QueryError(
        f"Failed to {operation} {table}: {error}",
        query=query,
        cause=error,
    )
