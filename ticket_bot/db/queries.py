"""Generic CRUD engine shared by every table of the bot.

A subclass (or a direct instance) pairs an :class:`EntityConfig` with a
:class:`~ticket_bot.db.store.Store`::

    class TicketQueries(BaseQueries[Ticket, TicketIdentifier, TicketFilters, TicketCreate, TicketUpdate]):
        config = EntityConfig(table="tickets", entity_model=Ticket, ...)

    tickets = TicketQueries(SqliteStore())
    ticket = await tickets.get({"ticketId": 7})

Table and column names only ever come from the configuration and the naming
transform; caller values are always bound as positional parameters.
"""

from __future__ import annotations

import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    ClassVar,
    FrozenSet,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel

from ticket_bot.utils.formatters import fmt_ctx
from ticket_bot.utils.validators import validate_non_negative_int, validate_table_name

from .errors import DatabaseError, NotFoundError, QueryError, QueryValidationError, classify_store_error
from .mapper import RowMapper
from .mutations import FieldOrFields, Statement, build_insert, build_set, insert_statement, update_statement, upsert_statement
from .naming import NamingTransform
from .predicates import Criteria, Predicate, build_filter, build_identifier, criteria_items
from .store import Dialect, QueryResult, Store

__all__ = ["EntityConfig", "BaseQueries", "SortDirection", "fields_of"]

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT")
IdentifierT = TypeVar("IdentifierT", bound=Mapping[str, Any])
FiltersT = TypeVar("FiltersT", bound=Mapping[str, Any])
CreateT = TypeVar("CreateT", bound=Mapping[str, Any])
UpdateT = TypeVar("UpdateT", bound=Mapping[str, Any])
ResultT = TypeVar("ResultT")
QueriesT = TypeVar("QueriesT", bound="BaseQueries")


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


def fields_of(shape: type) -> FrozenSet[str]:
    """Return the keys declared by a ``TypedDict`` shape."""
    return frozenset(shape.__required_keys__ | shape.__optional_keys__)  # type: ignore[attr-defined]


@dataclass(frozen=True)
class EntityConfig:
    """Per-entity configuration, fixed for the lifetime of an access object.

    ``*_fields`` restrict the keys accepted for each shape; ``None`` accepts
    any key the naming transform can translate.
    """

    table: str
    entity_name: Optional[str] = None
    column_map: Mapping[str, str] = field(default_factory=dict)
    entity_model: Optional[Type[BaseModel]] = None
    identifier_fields: Optional[FrozenSet[str]] = None
    filter_fields: Optional[FrozenSet[str]] = None
    create_fields: Optional[FrozenSet[str]] = None
    update_fields: Optional[FrozenSet[str]] = None

    def __post_init__(self) -> None:
        try:
            validate_table_name(self.table)
        except ValueError as e:
            raise QueryValidationError(str(e)) from e
        object.__setattr__(self, "column_map", MappingProxyType(dict(self.column_map)))
        for name in ("identifier_fields", "filter_fields", "create_fields", "update_fields"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, frozenset(value))


def _direction(direction: Union[SortDirection, str]) -> str:
    if isinstance(direction, SortDirection):
        return direction.value
    try:
        return SortDirection(str(direction).upper()).value
    except ValueError as e:
        raise QueryValidationError(f"Invalid sort direction: {direction!r}") from e


class BaseQueries(Generic[EntityT, IdentifierT, FiltersT, CreateT, UpdateT]):
    """CRUD, bulk, upsert, raw and transactional access to one table."""

    config: ClassVar[EntityConfig]

    def __init__(self, store: Store, config: Optional[EntityConfig] = None) -> None:
        if config is not None:
            self.config = config  # type: ignore[misc]
        elif getattr(type(self), "config", None) is None:
            raise TypeError(f"{type(self).__name__} needs an EntityConfig")
        self.store = store
        self.table = self.config.table
        self.entity_name = self.config.entity_name or self.config.table
        self.naming = NamingTransform(self.config.column_map)
        self.mapper: RowMapper[EntityT] = RowMapper(self.naming, self.config.entity_model)

    @property
    def dialect(self) -> Dialect:
        return self.store.dialect

    def bind(self: QueriesT, store: Store) -> QueriesT:
        """Return a copy of this access object that runs on *store*."""
        bound = copy.copy(self)
        bound.store = store
        return bound

    # ============================================================================
    # Helpers
    # ============================================================================

    def _checked(
        self,
        criteria: Criteria | None,
        allowed: Optional[FrozenSet[str]],
        shape: str,
    ) -> List[Tuple[str, Any]]:
        items = criteria_items(criteria)
        if allowed is not None:
            unknown = [name for name, _ in items if name not in allowed]
            if unknown:
                raise QueryValidationError(
                    f"Unknown {shape} field(s) for {self.entity_name}: {', '.join(unknown)}"
                )
        return items

    def _identifier(self, identifier: Criteria, start: int = 1) -> Tuple[Predicate, List[Tuple[str, Any]]]:
        items = self._checked(identifier, self.config.identifier_fields, "identifier")
        return build_identifier(items, self.naming, self.dialect, start), items

    def _filter(self, filters: Criteria | None, start: int = 1) -> Predicate:
        items = self._checked(filters, self.config.filter_fields, "filter")
        return build_filter(items, self.naming, self.dialect, start)

    async def _execute(self, operation: str, statement: Statement) -> QueryResult:
        ctx = {"table": self.table, "operation": operation}
        logger.debug("Executing %s sql=%s", fmt_ctx(ctx), statement.sql)
        try:
            return await self.store.execute(statement.sql, statement.params)
        except DatabaseError:
            raise
        except Exception as e:
            error = classify_store_error(e, table=self.table, operation=operation, query=statement.sql)
            logger.exception(
                "Failed to %s %s: %s %s",
                operation,
                self.table,
                e,
                fmt_ctx({**ctx, "error": type(error).__name__}),
                extra=ctx,
            )
            raise error from e

    def _not_found(self, items: List[Tuple[str, Any]]) -> NotFoundError:
        logger.debug("%s not found with %s", self.entity_name, items)
        return NotFoundError(self.entity_name, dict(items))

    # ============================================================================
    # SINGLE ENTITY OPERATIONS (by unique identifiers)
    # ============================================================================

    async def _find_one(self, identifier: IdentifierT) -> Tuple[Optional[EntityT], List[Tuple[str, Any]]]:
        predicate, items = self._identifier(identifier)
        statement = Statement(
            f"SELECT * FROM {self.table} WHERE {predicate.sql} LIMIT 1",
            predicate.values,
        )
        result = await self._execute("find", statement)
        entity = self.mapper.row_to_entity(result.rows[0]) if result.rows else None
        return entity, items

    async def find(self, identifier: IdentifierT) -> Optional[EntityT]:
        """Return the entity addressed by *identifier*, or ``None``."""
        entity, _ = await self._find_one(identifier)
        return entity

    async def get(self, identifier: IdentifierT) -> EntityT:
        """Like :meth:`find` but raises :class:`NotFoundError` instead of returning ``None``."""
        entity, items = await self._find_one(identifier)
        if entity is None:
            raise self._not_found(items)
        return entity

    async def exists(self, identifier: IdentifierT) -> bool:
        predicate, _ = self._identifier(identifier)
        statement = Statement(
            f"SELECT EXISTS(SELECT 1 FROM {self.table} WHERE {predicate.sql})",
            predicate.values,
        )
        result = await self._execute("check existence of", statement)
        return bool(result.scalar())

    async def update(self, identifier: IdentifierT, updates: UpdateT) -> None:
        """Update one row; raises :class:`NotFoundError` when nothing matched."""
        statement, items = self._update_statement(identifier, updates, returning=False)
        result = await self._execute("update", statement)
        if result.rowcount == 0:
            raise self._not_found(items)

    async def update_and_return(self, identifier: IdentifierT, updates: UpdateT) -> EntityT:
        statement, items = self._update_statement(identifier, updates, returning=True)
        result = await self._execute("update", statement)
        if not result.rows:
            raise self._not_found(items)
        return self.mapper.row_to_entity(result.rows[0])

    def _update_statement(
        self,
        identifier: IdentifierT,
        updates: UpdateT,
        returning: bool,
    ) -> Tuple[Statement, List[Tuple[str, Any]]]:
        predicate, items = self._identifier(identifier)
        update_items = self._checked(updates, self.config.update_fields, "update")
        assignments = build_set(update_items, self.naming, self.dialect, offset=len(predicate.values))
        return update_statement(self.table, assignments, predicate, returning=returning), items

    async def delete(self, identifier: IdentifierT) -> None:
        """Delete one row; raises :class:`NotFoundError` when nothing matched."""
        predicate, items = self._identifier(identifier)
        statement = Statement(f"DELETE FROM {self.table} WHERE {predicate.sql}", predicate.values)
        result = await self._execute("delete", statement)
        if result.rowcount == 0:
            raise self._not_found(items)

    # ============================================================================
    # MULTIPLE ENTITY OPERATIONS (by non-unique filters)
    # ============================================================================

    async def find_all(
        self,
        filters: Optional[FiltersT] = None,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order_by: Optional[str] = None,
        direction: Union[SortDirection, str] = SortDirection.ASC,
    ) -> List[EntityT]:
        """Return every entity matching *filters*.

        Clauses are appended in the order WHERE, ORDER BY, LIMIT, OFFSET; the
        LIMIT and OFFSET values take the placeholders after the filter values.
        """
        try:
            limit = validate_non_negative_int(limit, "limit")
            offset = validate_non_negative_int(offset, "offset")
        except ValueError as e:
            raise QueryValidationError(str(e)) from e

        predicate = self._filter(filters)
        dialect = self.dialect
        sql = f"SELECT * FROM {self.table} WHERE {predicate.sql}"
        params = list(predicate.values)

        if order_by is not None:
            sql += f" ORDER BY {self.naming.to_storage_name(order_by)} {_direction(direction)}"

        if limit is not None:
            params.append(limit)
            sql += f" LIMIT {dialect.placeholder(len(params))}"
        elif offset is not None and dialect.offset_requires_limit:
            sql += " LIMIT -1"

        if offset is not None:
            params.append(offset)
            sql += f" OFFSET {dialect.placeholder(len(params))}"

        result = await self._execute("find all", Statement(sql, tuple(params)))
        return self.mapper.rows_to_entities(result.rows)

    async def get_all(
        self,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order_by: Optional[str] = None,
        direction: Union[SortDirection, str] = SortDirection.ASC,
    ) -> List[EntityT]:
        """:meth:`find_all` without filters."""
        return await self.find_all(
            None, limit=limit, offset=offset, order_by=order_by, direction=direction
        )

    async def update_all(self, updates: UpdateT, filters: Optional[FiltersT] = None) -> int:
        """Update every row matching *filters*; no filters updates the whole table."""
        predicate = self._filter(filters)
        update_items = self._checked(updates, self.config.update_fields, "update")
        assignments = build_set(update_items, self.naming, self.dialect, offset=len(predicate.values))
        result = await self._execute("update", update_statement(self.table, assignments, predicate))
        logger.info("Updated %d %s record(s)", result.rowcount, self.table)
        return result.rowcount

    async def delete_all(self, filters: FiltersT) -> int:
        """Delete every row matching *filters*. Empty filters are refused; see :meth:`drop`."""
        predicate = self._filter(filters)
        if predicate.is_empty:
            raise QueryValidationError(
                f"delete_all requires at least one filter. Use drop() to delete all records from {self.table}"
            )
        statement = Statement(f"DELETE FROM {self.table} WHERE {predicate.sql}", predicate.values)
        result = await self._execute("delete from", statement)
        logger.info("Deleted %d %s record(s)", result.rowcount, self.table)
        return result.rowcount

    async def drop(self) -> int:
        """Delete every row of the table and return how many were removed. Irreversible."""
        result = await self._execute("drop", Statement(f"DELETE FROM {self.table}"))
        logger.warning("DROPPED all %d record(s) from %s", result.rowcount, self.table)
        return result.rowcount

    async def truncate(self, *, cascade: bool = False, restart_identity: bool = False) -> None:
        """Empty the table with TRUNCATE where the store supports it.

        SQLite has no TRUNCATE: rows are deleted (foreign keys declared with
        ON DELETE CASCADE cascade regardless of *cascade*) and
        *restart_identity* resets the AUTOINCREMENT counter when the database
        keeps one.
        """
        dialect = self.dialect
        if dialect.supports_truncate:
            sql = f"TRUNCATE TABLE {self.table}"
            if restart_identity:
                sql += " RESTART IDENTITY"
            if cascade:
                sql += " CASCADE"
            await self._execute("truncate", Statement(sql))
        else:
            async with self.transaction() as tx:
                await tx._execute("truncate", Statement(f"DELETE FROM {self.table}"))
                # sqlite_sequence only exists once an AUTOINCREMENT table does.
                if restart_identity and await tx._scalar(
                    "truncate",
                    Statement(
                        "SELECT COUNT(*) FROM sqlite_master "
                        "WHERE type = 'table' AND name = 'sqlite_sequence'"
                    ),
                ):
                    await tx._execute(
                        "truncate",
                        Statement(
                            f"DELETE FROM sqlite_sequence WHERE name = {dialect.placeholder(1)}",
                            (self.table,),
                        ),
                    )
        logger.warning("TRUNCATED table %s", self.table)

    # ============================================================================
    # CREATE OPERATIONS
    # ============================================================================

    def _insert(self, data: CreateT, returning: bool) -> Statement:
        items = self._checked(data, self.config.create_fields, "create")
        return insert_statement(self.table, build_insert(items, self.naming, self.dialect), returning)

    async def create(self, data: CreateT) -> None:
        await self._execute("create", self._insert(data, returning=False))

    async def create_and_return(self, data: CreateT) -> EntityT:
        """Insert a row and return it with store-generated fields filled in."""
        statement = self._insert(data, returning=True)
        result = await self._execute("create", statement)
        if not result.rows:
            raise QueryError(f"Insert into {self.table} returned no row", query=statement.sql)
        return self.mapper.row_to_entity(result.rows[0])

    async def upsert(
        self,
        data: CreateT,
        conflict_target: FieldOrFields,
        update_fields: Optional[FieldOrFields] = None,
    ) -> EntityT:
        """Insert, or update the row colliding on *conflict_target*; returns the resulting row.

        Every inserted field is overwritten on conflict unless *update_fields*
        names a subset.
        """
        items = self._checked(data, self.config.create_fields, "create")
        statement = upsert_statement(
            self.table,
            items,
            conflict_target,
            self.naming,
            self.dialect,
            update_fields=update_fields,
        )
        result = await self._execute("upsert", statement)
        if not result.rows:
            raise QueryError(f"Upsert into {self.table} returned no row", query=statement.sql)
        return self.mapper.row_to_entity(result.rows[0])

    # ============================================================================
    # UTILITY METHODS
    # ============================================================================

    async def count(self, filters: Optional[FiltersT] = None) -> int:
        predicate = self._filter(filters)
        statement = Statement(f"SELECT COUNT(*) FROM {self.table} WHERE {predicate.sql}", predicate.values)
        result = await self._execute("count", statement)
        return int(result.scalar() or 0)

    async def raw(self, statement: str, params: Sequence[Any] = ()) -> List[EntityT]:
        """Execute caller-written SQL and map the returned rows.

        Nothing is validated: the caller owns the statement's correctness and
        must bind every value through *params*.
        """
        result = await self._execute("execute raw query on", Statement(statement, tuple(params)))
        return self.mapper.rows_to_entities(result.rows)

    async def _scalar(self, operation: str, statement: Statement) -> Any:
        return (await self._execute(operation, statement)).scalar()

    # ============================================================================
    # TRANSACTIONS
    # ============================================================================

    @asynccontextmanager
    async def transaction(self: QueriesT) -> AsyncIterator[QueriesT]:
        """Run a block on one dedicated session.

        Yields a copy of this access object bound to the session. A normal
        exit commits and an exception rolls back; the session is released
        either way::

            async with tickets.transaction() as tx:
                number = await tx.next_ticket_number("support")
                await tx.create({...})
                participants = TicketParticipantQueries(tx.store)
        """
        scope = self.store.transaction()
        try:
            session = await scope.__aenter__()
        except Exception as e:
            logger.exception("Failed to begin transaction on %s: %s", self.table, e)
            raise classify_store_error(e, table=self.table, operation="begin transaction on") from e

        try:
            yield self.bind(session)
        except BaseException as exc:
            if not await scope.__aexit__(type(exc), exc, exc.__traceback__):
                raise
        else:
            try:
                await scope.__aexit__(None, None, None)
            except Exception as e:
                logger.exception("Failed to commit transaction on %s: %s", self.table, e)
                raise classify_store_error(e, table=self.table, operation="commit transaction on") from e

    begin = transaction

    async def run_in_transaction(self: QueriesT, work: Callable[[QueriesT], Awaitable[ResultT]]) -> ResultT:
        """Await ``work(tx)`` inside :meth:`transaction` and return its result."""
        async with self.transaction() as tx:
            return await work(tx)
