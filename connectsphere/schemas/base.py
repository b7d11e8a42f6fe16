"""Shared building blocks for records stored in the remote tree."""
from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel


def _coerce_id_set(value: Any) -> frozenset[str]:
    # The store keeps sets as {id: true} maps; arrays and None also show up in legacy records.
    if value is None:
        return frozenset()
    if isinstance(value, dict):
        return frozenset(str(key) for key, flag in value.items() if flag)
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(str(item) for item in value if item)
    raise ValueError("expected a map or list of ids")


IdSet = Annotated[frozenset[str], BeforeValidator(_coerce_id_set)]


class StoreRecord(BaseModel):
    """Base for records read from the store: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ViewModel(BaseModel):
    """Base for projected view models handed to the presentation layer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


__all__ = ["IdSet", "StoreRecord", "ViewModel"]
