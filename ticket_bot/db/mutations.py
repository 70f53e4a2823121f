"""INSERT / SET / ON CONFLICT construction from field -> value mappings.

Bound parameters of UPDATE statements are always ordered as the predicate
values followed by the assignment values, and each placeholder number is the
position of its value in that combined array.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple, Union

from .errors import QueryValidationError
from .naming import NamingTransform
from .predicates import NULL, Criteria, Predicate, criteria_items
from .store import POSTGRES, Dialect

__all__ = [
    "Statement",
    "InsertClause",
    "SetClause",
    "build_insert",
    "build_set",
    "insert_statement",
    "update_statement",
    "upsert_statement",
]

FieldOrFields = Union[str, Sequence[str]]


@dataclass(frozen=True)
class Statement:
    """Statement text and the positional values it binds."""

    sql: str
    params: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class InsertClause:
    columns: Tuple[str, ...]
    placeholders: Tuple[str, ...]
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class SetClause:
    assignments: Tuple[str, ...]
    values: Tuple[Any, ...]

    @property
    def sql(self) -> str:
        return ", ".join(self.assignments)


def _bound(value: Any) -> Any:
    # The NULL filter marker writes SQL NULL.
    return None if value is NULL else value


def _as_fields(fields: FieldOrFields) -> Tuple[str, ...]:
    if isinstance(fields, str):
        return (fields,)
    return tuple(fields)


def build_insert(
    data: Criteria,
    naming: NamingTransform,
    dialect: Dialect = POSTGRES,
) -> InsertClause:
    items = criteria_items(data)
    if not items:
        raise QueryValidationError("Create data cannot be empty")
    columns = tuple(naming.to_storage_name(field) for field, _ in items)
    placeholders = tuple(dialect.placeholder(i) for i in range(1, len(items) + 1))
    return InsertClause(columns, placeholders, tuple(_bound(value) for _, value in items))


def build_set(
    updates: Criteria,
    naming: NamingTransform,
    dialect: Dialect = POSTGRES,
    offset: int = 0,
) -> SetClause:
    """Build ``column = placeholder`` assignments numbered after *offset* values."""
    items = criteria_items(updates)
    if not items:
        raise QueryValidationError("Update data cannot be empty")
    assignments = tuple(
        f"{naming.to_storage_name(field)} = {dialect.placeholder(offset + i)}"
        for i, (field, _) in enumerate(items, start=1)
    )
    return SetClause(assignments, tuple(_bound(value) for _, value in items))


def insert_statement(table: str, insert: InsertClause, returning: bool = False) -> Statement:
    sql = (
        f"INSERT INTO {table} ({', '.join(insert.columns)}) "
        f"VALUES ({', '.join(insert.placeholders)})"
    )
    if returning:
        sql += " RETURNING *"
    return Statement(sql, insert.values)


def update_statement(
    table: str,
    assignments: SetClause,
    predicate: Predicate,
    returning: bool = False,
) -> Statement:
    sql = f"UPDATE {table} SET {assignments.sql} WHERE {predicate.sql}"
    if returning:
        sql += " RETURNING *"
    return Statement(sql, (*predicate.values, *assignments.values))


def upsert_statement(
    table: str,
    data: Criteria,
    conflict_target: FieldOrFields,
    naming: NamingTransform,
    dialect: Dialect = POSTGRES,
    update_fields: Optional[FieldOrFields] = None,
) -> Statement:
    """INSERT that updates the existing row when *conflict_target* collides.

    Every inserted column is overwritten with the proposed value unless
    *update_fields* names a subset.
    """
    insert = build_insert(data, naming, dialect)

    target = tuple(naming.to_storage_name(field) for field in _as_fields(conflict_target))
    if not target:
        raise QueryValidationError("Upsert requires at least one conflict target field")

    if update_fields is None:
        update_columns = insert.columns
    else:
        update_columns = tuple(naming.to_storage_name(field) for field in _as_fields(update_fields))
        if not update_columns:
            raise QueryValidationError("Upsert update_fields cannot be empty")
        missing = [column for column in update_columns if column not in insert.columns]
        if missing:
            raise QueryValidationError(
                f"Upsert can only update inserted columns, not: {', '.join(missing)}"
            )

    update_clause = ", ".join(f"{column} = EXCLUDED.{column}" for column in update_columns)
    sql = (
        f"INSERT INTO {table} ({', '.join(insert.columns)}) "
        f"VALUES ({', '.join(insert.placeholders)}) "
        f"ON CONFLICT ({', '.join(target)}) "
        f"DO UPDATE SET {update_clause} RETURNING *"
    )
    return Statement(sql, insert.values)
