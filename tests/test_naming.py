"""Tests for field/column name translation."""

import pytest

from ticket_bot.db.errors import AmbiguousNameError, QueryValidationError
from ticket_bot.db.naming import NamingTransform, camel_to_snake, snake_to_camel


# region Default transform


@pytest.mark.parametrize(
    "field, column",
    [
        ("id", "id"),
        ("channelId", "channel_id"),
        ("closeReason", "close_reason"),
        ("authorUsername", "author_username"),
    ],
    ids=["single_word", "two_words", "reason", "username"],
)
def test_default_transform_round_trips(field, column):
    naming = NamingTransform()
    assert naming.to_storage_name(field) == column
    assert naming.to_domain_name(column) == field


def test_module_level_helpers():
    assert camel_to_snake("archiveFormat") == "archive_format"
    assert snake_to_camel("archive_format") == "archiveFormat"


@pytest.mark.parametrize(
    "field",
    ["userID", "address2", "channel_id", "ChannelId"],
    ids=["acronym", "digit", "underscore", "leading_capital"],
)
def test_ambiguous_domain_names_are_rejected(field):
    with pytest.raises(AmbiguousNameError) as exc_info:
        NamingTransform().to_storage_name(field)
    assert exc_info.value.name == field
    assert "override" in str(exc_info.value)


@pytest.mark.parametrize(
    "column",
    ["ChannelId", "address_2", "closed__at", "_hidden", "trailing_", "bad-name"],
    ids=["uppercase", "digit", "double_underscore", "leading", "trailing", "invalid"],
)
def test_ambiguous_storage_names_are_rejected(column):
    with pytest.raises(AmbiguousNameError):
        NamingTransform().to_domain_name(column)


def test_empty_field_name_is_rejected():
    with pytest.raises(QueryValidationError):
        NamingTransform().to_storage_name("")


# endregion

# region Overrides


def test_override_wins_over_default_in_both_directions():
    naming = NamingTransform({"number": "ticket_number", "category": "category_key"})
    assert naming.to_storage_name("number") == "ticket_number"
    assert naming.to_domain_name("ticket_number") == "number"
    assert naming.to_storage_name("category") == "category_key"
    assert naming.to_domain_name("category_key") == "category"
    # Names not covered fall back to the default transform.
    assert naming.to_storage_name("creatorId") == "creator_id"


def test_override_resolves_ambiguous_names():
    naming = NamingTransform({"userID": "user_id", "address2": "address2"})
    assert naming.to_storage_name("userID") == "user_id"
    assert naming.to_domain_name("user_id") == "userID"
    assert naming.to_domain_name("address2") == "address2"


def test_override_table_is_read_only():
    naming = NamingTransform({"number": "ticket_number"})
    with pytest.raises(TypeError):
        naming.overrides["number"] = "other"  # type: ignore[index]


def test_duplicate_override_columns_are_rejected():
    with pytest.raises(QueryValidationError):
        NamingTransform({"a": "col", "b": "col"})


def test_invalid_override_column_is_rejected():
    with pytest.raises(QueryValidationError):
        NamingTransform({"number": "ticket number; DROP TABLE tickets"})


# endregion


def test_row_mapping_renames_keys_and_keeps_values():
    naming = NamingTransform({"number": "ticket_number"})
    row = {"ticket_id": 1, "ticket_number": 7, "closed_at": None}
    assert naming.row_to_domain(row) == {"ticketId": 1, "number": 7, "closedAt": None}
    assert naming.domain_to_row(naming.row_to_domain(row)) == row
