"""Bidirectional field/column name translation.

Domain code names fields in camelCase (``channelId``), the store names columns
in snake_case (``channel_id``). Resolution order is always:

1. the explicit override table (domain field -> storage column), exact match;
2. the default convention transform.

Canonicalization rule of the default transform:

* domain -> storage: every uppercase ASCII letter starts a new word; it is
  replaced by ``_`` followed by its lowercase form (``closedBy`` -> ``closed_by``).
* storage -> domain: every ``_`` followed by a lowercase letter is removed and
  the letter uppercased (``closed_by`` -> ``closedBy``).

The rule is not guessed for names where it would not round-trip or where the
intended split is unclear: acronyms (``userID``), digits (``address2``),
underscores in domain names, leading capitals, and storage names holding
uppercase letters, digits or stray underscores. Such names raise
:class:`AmbiguousNameError` unless the override table covers them.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from ticket_bot.utils.validators import is_valid_identifier

from .errors import AmbiguousNameError, QueryValidationError

__all__ = ["NamingTransform", "camel_to_snake", "snake_to_camel"]

_UPPER_RE = re.compile(r"[A-Z]")
_UNDERSCORE_LOWER_RE = re.compile(r"_([a-z])")

_AMBIGUOUS_DOMAIN_RE = re.compile(r"^[A-Z]|[A-Z]{2}|\d|_")
_AMBIGUOUS_STORAGE_RE = re.compile(r"[A-Z]|\d|__|^_|_$")


def camel_to_snake(name: str) -> str:
    return _UPPER_RE.sub(lambda m: "_" + m.group(0).lower(), name)


def snake_to_camel(name: str) -> str:
    return _UNDERSCORE_LOWER_RE.sub(lambda m: m.group(1).upper(), name)


class NamingTransform:
    """Translates names between the domain and storage conventions.

    Instances are immutable after construction and safe to share.
    """

    def __init__(self, overrides: Optional[Mapping[str, str]] = None) -> None:
        table: Dict[str, str] = dict(overrides or {})
        reverse: Dict[str, str] = {}
        for field, column in table.items():
            if not is_valid_identifier(column):
                raise QueryValidationError(
                    f"Override for {field!r} is not a valid column name: {column!r}"
                )
            if column in reverse:
                raise QueryValidationError(
                    f"Fields {reverse[column]!r} and {field!r} both map to column {column!r}"
                )
            reverse[column] = field
        self._overrides = MappingProxyType(table)
        self._reverse = MappingProxyType(reverse)

    @property
    def overrides(self) -> Mapping[str, str]:
        return self._overrides

    def to_storage_name(self, field: str) -> str:
        """Return the column that stores domain *field*."""
        column = self._overrides.get(field)
        if column is not None:
            return column
        if not isinstance(field, str) or not field:
            raise QueryValidationError(f"Field name must be a non-empty string, got {field!r}")
        if _AMBIGUOUS_DOMAIN_RE.search(field):
            raise AmbiguousNameError(field, "domain-to-storage")
        column = camel_to_snake(field)
        if not is_valid_identifier(column):
            raise QueryValidationError(f"Field {field!r} does not map to a valid column name")
        return column

    def to_domain_name(self, column: str) -> str:
        """Return the domain field for storage *column*."""
        field = self._reverse.get(column)
        if field is not None:
            return field
        if not is_valid_identifier(column) or _AMBIGUOUS_STORAGE_RE.search(column):
            raise AmbiguousNameError(column, "storage-to-domain")
        return snake_to_camel(column)

    def row_to_domain(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """Rename every key of a storage row; values are untouched."""
        return {self.to_domain_name(key): value for key, value in row.items()}

    def domain_to_row(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Rename every key of a domain mapping; values are untouched."""
        return {self.to_storage_name(key): value for key, value in data.items()}
