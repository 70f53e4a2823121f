"""Tests for the scoped transaction API of the CRUD engine."""

from contextlib import asynccontextmanager

import pytest

from ticket_bot.db.errors import QueryError
from ticket_bot.db.queries import BaseQueries, EntityConfig

pytestmark = pytest.mark.asyncio

CONFIG = EntityConfig(table="tickets", entity_name="Ticket")


@pytest.fixture
def tickets(fake_store):
    return BaseQueries(fake_store, CONFIG)


async def test_commit_on_normal_exit(tickets, fake_store):
    async with tickets.transaction() as tx:
        assert tx is not tickets
        assert tx.store is not fake_store
        await tx.create({"channelId": "c"})

    assert fake_store.events == ["begin", "commit"]
    fake_store.execute.assert_awaited_once()


async def test_rollback_and_reraise_on_error(tickets, fake_store):
    with pytest.raises(RuntimeError, match="boom"):
        async with tickets.transaction() as tx:
            await tx.create({"channelId": "c"})
            raise RuntimeError("boom")

    assert fake_store.events == ["begin", "rollback"]


async def test_begin_is_an_alias(tickets, fake_store):
    async with tickets.begin():
        pass
    assert fake_store.events == ["begin", "commit"]


async def test_run_in_transaction_returns_work_result(tickets, fake_store):
    async def work(tx):
        await tx.update_all({"status": "closed"})
        return "done"

    assert await tickets.run_in_transaction(work) == "done"
    assert fake_store.events == ["begin", "commit"]


async def test_run_in_transaction_rolls_back_failed_work(tickets, fake_store):
    async def work(tx):
        raise ValueError("invalid")

    with pytest.raises(ValueError):
        await tickets.run_in_transaction(work)
    assert fake_store.events == ["begin", "rollback"]


async def test_access_objects_share_the_session(tickets, fake_store):
    other = BaseQueries(fake_store, EntityConfig(table="ticket_participants"))

    async with tickets.transaction() as tx:
        participants = other.bind(tx.store)
        await participants.create({"ticketId": 1, "userId": "u"})

    assert participants.store is tx.store
    assert fake_store.events == ["begin", "commit"]


async def test_begin_failure_is_classified(fake_store):
    @asynccontextmanager
    async def broken_transaction():
        raise RuntimeError("database is locked")
        yield  # pragma: no cover

    fake_store.transaction = broken_transaction
    with pytest.raises(QueryError, match="begin transaction"):
        async with BaseQueries(fake_store, CONFIG).transaction():
            pass  # pragma: no cover
