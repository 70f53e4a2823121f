"""Conversion between storage rows and domain entities."""

from __future__ import annotations

from typing import Any, Dict, Generic, Iterable, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel

from .naming import NamingTransform

__all__ = ["RowMapper"]

EntityT = TypeVar("EntityT")


class RowMapper(Generic[EntityT]):
    """Renames row keys through a :class:`NamingTransform`.

    Without an ``entity_model`` the entity is the renamed ``dict`` itself and
    values are passed through untouched. With one, the renamed mapping is
    handed to its ``model_validate`` and values are coerced to the model's
    field types (for example timestamp text to ``datetime``).
    """

    def __init__(
        self,
        naming: NamingTransform,
        entity_model: Optional[Type[BaseModel]] = None,
    ) -> None:
        self.naming = naming
        self.entity_model = entity_model

    def row_to_entity(self, row: Mapping[str, Any]) -> EntityT:
        data = self.naming.row_to_domain(row)
        if self.entity_model is None:
            return data  # type: ignore[return-value]
        return self.entity_model.model_validate(data)  # type: ignore[return-value]

    def rows_to_entities(self, rows: Iterable[Mapping[str, Any]]) -> List[EntityT]:
        return [self.row_to_entity(row) for row in rows]

    def entity_to_row(self, entity: Any) -> Dict[str, Any]:
        """Inverse of :meth:`row_to_entity`."""
        if isinstance(entity, BaseModel):
            data = entity.model_dump(by_alias=True)
        else:
            data = dict(entity)
        return self.naming.domain_to_row(data)
