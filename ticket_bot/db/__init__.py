"""Database access layer for the ticket bot.

:class:`~ticket_bot.db.queries.BaseQueries` is the table-agnostic engine;
:mod:`ticket_bot.db.repositories` configures it for the ticket tables.
"""

from .errors import (
    AmbiguousNameError,
    ConstraintViolationError,
    DatabaseError,
    NotFoundError,
    QueryError,
    QueryValidationError,
)
from .naming import NamingTransform
from .predicates import EMPTY_PREDICATE, NULL, Predicate
from .queries import BaseQueries, EntityConfig, SortDirection, fields_of
from .store import POSTGRES, SQLITE, Dialect, QueryResult, SqliteStore, Store

__all__ = [
    "AmbiguousNameError",
    "BaseQueries",
    "ConstraintViolationError",
    "DatabaseError",
    "Dialect",
    "EMPTY_PREDICATE",
    "EntityConfig",
    "NULL",
    "NamingTransform",
    "NotFoundError",
    "POSTGRES",
    "Predicate",
    "QueryError",
    "QueryResult",
    "QueryValidationError",
    "SQLITE",
    "SortDirection",
    "SqliteStore",
    "Store",
    "fields_of",
]
