"""Tests for INSERT / UPDATE / upsert statement construction."""

import pytest

from ticket_bot.db.errors import QueryValidationError
from ticket_bot.db.mutations import (
    build_insert,
    build_set,
    insert_statement,
    update_statement,
    upsert_statement,
)
from ticket_bot.db.naming import NamingTransform
from ticket_bot.db.predicates import NULL, build_identifier
from ticket_bot.db.store import SQLITE


@pytest.fixture
def naming():
    return NamingTransform({"number": "ticket_number"})


def test_insert_keeps_field_order(naming):
    insert = build_insert({"channelId": "c1", "number": 4, "status": "open"}, naming)
    assert insert.columns == ("channel_id", "ticket_number", "status")
    assert insert.placeholders == ("$1", "$2", "$3")
    assert insert.values == ("c1", 4, "open")

    statement = insert_statement("tickets", insert, returning=True)
    assert statement.sql == (
        "INSERT INTO tickets (channel_id, ticket_number, status) "
        "VALUES ($1, $2, $3) RETURNING *"
    )
    assert statement.params == ("c1", 4, "open")


def test_empty_insert_is_rejected(naming):
    with pytest.raises(QueryValidationError):
        build_insert({}, naming)


def test_empty_set_is_rejected(naming):
    with pytest.raises(QueryValidationError):
        build_set({}, naming)


def test_update_parameters_follow_predicate_values(naming):
    predicate = build_identifier({"ticketId": 9}, naming)
    assignments = build_set(
        {"status": "closed", "closedBy": "mod"}, naming, offset=len(predicate.values)
    )
    statement = update_statement("tickets", assignments, predicate)

    assert statement.sql == "UPDATE tickets SET status = $2, closed_by = $3 WHERE ticket_id = $1"
    assert statement.params == (9, "closed", "mod")


def test_upsert_updates_every_inserted_column_by_default(naming):
    statement = upsert_statement(
        "ticket_participants",
        {"ticketId": 1, "userId": "u", "addedBy": "m"},
        ("ticketId", "userId"),
        naming,
        SQLITE,
    )
    assert statement.sql == (
        "INSERT INTO ticket_participants (ticket_id, user_id, added_by) VALUES (?1, ?2, ?3) "
        "ON CONFLICT (ticket_id, user_id) DO UPDATE SET "
        "ticket_id = EXCLUDED.ticket_id, user_id = EXCLUDED.user_id, added_by = EXCLUDED.added_by "
        "RETURNING *"
    )
    assert statement.params == (1, "u", "m")


def test_upsert_with_update_subset(naming):
    statement = upsert_statement(
        "ticket_panels",
        {"messageId": "m1", "panelConfig": "{}"},
        "messageId",
        naming,
        update_fields="panelConfig",
    )
    assert "ON CONFLICT (message_id) DO UPDATE SET panel_config = EXCLUDED.panel_config" in statement.sql


@pytest.mark.parametrize(
    "conflict_target, update_fields",
    [((), None), ("messageId", ()), ("messageId", "channelId")],
    ids=["no_target", "empty_update_fields", "update_field_not_inserted"],
)
def test_upsert_contract_violations(naming, conflict_target, update_fields):
    with pytest.raises(QueryValidationError):
        upsert_statement(
            "ticket_panels",
            {"messageId": "m1", "panelConfig": "{}"},
            conflict_target,
            naming,
            update_fields=update_fields,
        )


def test_null_marker_writes_sql_null(naming):
    insert = build_insert({"channelId": "c1", "closeReason": NULL}, naming)
    assignments = build_set({"closeReason": NULL, "status": "open"}, naming)

    assert insert.values == ("c1", None)
    assert assignments.sql == "close_reason = $1, status = $2"
    assert assignments.values == (None, "open")
