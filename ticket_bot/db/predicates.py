"""WHERE-clause construction from field -> value criteria.

Two matching styles exist:

* identifier-style (:func:`build_identifier`) addresses a single row; every
  entry is used verbatim and an empty mapping is a contract violation;
* filter-style (:func:`build_filter`) matches zero or more rows; entries whose
  value is ``None`` are treated as "not given" and skipped, while the
  :data:`NULL` marker asks for rows whose column IS NULL. With nothing left the
  result is :data:`EMPTY_PREDICATE`, which renders as ``TRUE``.

Conditions form a flat conjunction, placeholders are numbered in the
iteration order of the input starting at ``start``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Tuple, Union

from .errors import QueryValidationError
from .naming import NamingTransform
from .store import POSTGRES, Dialect

__all__ = [
    "NULL",
    "EMPTY_PREDICATE",
    "Criteria",
    "Predicate",
    "criteria_items",
    "build_identifier",
    "build_filter",
]

Criteria = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


class _NullMarker:
    """Explicit "column IS NULL" filter value (``None`` means "no filter")."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NULL"

    def __bool__(self) -> bool:
        return False


NULL = _NullMarker()


@dataclass(frozen=True)
class Predicate:
    """A parameterized boolean condition and its ordered bound values."""

    conditions: Tuple[str, ...] = ()
    values: Tuple[Any, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.conditions

    @property
    def sql(self) -> str:
        if self.is_empty:
            return "TRUE"
        return " AND ".join(self.conditions)

    def __str__(self) -> str:
        return self.sql


EMPTY_PREDICATE = Predicate()


def criteria_items(criteria: Criteria | None) -> List[Tuple[str, Any]]:
    """Return criteria as an ordered list of ``(field, value)`` pairs."""
    if criteria is None:
        return []
    if isinstance(criteria, Mapping):
        return list(criteria.items())
    return [(field, value) for field, value in criteria]


def _build(
    items: List[Tuple[str, Any]],
    naming: NamingTransform,
    dialect: Dialect,
    start: int,
) -> Predicate:
    conditions: List[str] = []
    values: List[Any] = []
    for field, value in items:
        column = naming.to_storage_name(field)
        if value is NULL:
            conditions.append(f"{column} IS NULL")
            continue
        conditions.append(f"{column} = {dialect.placeholder(start + len(values))}")
        values.append(value)
    if not conditions:
        return EMPTY_PREDICATE
    return Predicate(tuple(conditions), tuple(values))


def build_identifier(
    identifier: Criteria,
    naming: NamingTransform,
    dialect: Dialect = POSTGRES,
    start: int = 1,
) -> Predicate:
    """Build the condition addressing exactly one row."""
    items = criteria_items(identifier)
    if not items:
        raise QueryValidationError("Identifier cannot be empty")
    return _build(items, naming, dialect, start)


def build_filter(
    filters: Criteria | None,
    naming: NamingTransform,
    dialect: Dialect = POSTGRES,
    start: int = 1,
) -> Predicate:
    """Build a condition over zero or more rows, skipping absent (``None``) values."""
    items = [(field, value) for field, value in criteria_items(filters) if value is not None]
    return _build(items, naming, dialect, start)
