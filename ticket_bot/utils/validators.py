"""Validation helpers used across the project."""

from __future__ import annotations

import re
from typing import Final, Optional

# A bare SQL identifier: letters, digits and underscores, not starting with a digit.
IDENTIFIER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Table names may carry a single schema qualifier, e.g. "public.tickets".
TABLE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$"
)


def is_valid_identifier(name: str) -> bool:
    """Checks if a string can be interpolated into SQL as a column name."""
    if not isinstance(name, str):
        return False
    return bool(IDENTIFIER_PATTERN.match(name))


def validate_table_name(name: str) -> str:
    """Validate a (optionally schema-qualified) table name."""
    if not isinstance(name, str) or not TABLE_PATTERN.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


def validate_non_negative_int(value: Optional[int], what: str) -> Optional[int]:
    """Ensure *value* is ``None`` or an integer ≥ 0."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{what} must be a non-negative integer, got {value!r}")
    return value
