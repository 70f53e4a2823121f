"""Tests for WHERE-clause construction."""

import pytest

from ticket_bot.db.errors import AmbiguousNameError, QueryValidationError
from ticket_bot.db.naming import NamingTransform
from ticket_bot.db.predicates import EMPTY_PREDICATE, NULL, build_filter, build_identifier
from ticket_bot.db.store import SQLITE


@pytest.fixture
def naming():
    return NamingTransform({"number": "ticket_number"})


def test_conjunction_in_input_order(naming):
    predicate = build_filter({"a": 1, "b": 2}, naming)
    assert predicate.sql == "a = $1 AND b = $2"
    assert predicate.values == (1, 2)


def test_placeholders_start_at_offset(naming):
    predicate = build_identifier({"ticketId": 5, "number": 3}, naming, start=3)
    assert predicate.sql == "ticket_id = $3 AND ticket_number = $4"
    assert predicate.values == (5, 3)


def test_sqlite_placeholders(naming):
    predicate = build_filter([("status", "open"), ("creatorId", "42")], naming, SQLITE)
    assert predicate.sql == "status = ?1 AND creator_id = ?2"


def test_filter_skips_absent_values(naming):
    predicate = build_filter({"status": None, "creatorId": "42"}, naming)
    assert predicate.sql == "creator_id = $1"
    assert predicate.values == ("42",)


@pytest.mark.parametrize(
    "filters",
    [None, {}, {"status": None}],
    ids=["none", "empty", "all_absent"],
)
def test_filter_without_conditions_is_empty_predicate(naming, filters):
    predicate = build_filter(filters, naming)
    assert predicate is EMPTY_PREDICATE
    assert predicate.is_empty
    assert predicate.sql == "TRUE"
    assert predicate.values == ()


def test_null_marker_binds_no_value(naming):
    predicate = build_filter({"closedAt": NULL, "status": "open"}, naming)
    assert predicate.sql == "closed_at IS NULL AND status = $1"
    assert predicate.values == ("open",)


def test_falsy_values_are_not_absent(naming):
    predicate = build_filter({"archived": False, "number": 0}, naming)
    assert predicate.sql == "archived = $1 AND ticket_number = $2"
    assert predicate.values == (False, 0)


def test_empty_identifier_is_rejected(naming):
    with pytest.raises(QueryValidationError, match="Identifier cannot be empty"):
        build_identifier({}, naming)


def test_ambiguous_field_fails_before_any_statement(naming):
    with pytest.raises(AmbiguousNameError):
        build_filter({"userID": 1}, naming)
