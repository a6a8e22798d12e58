"""Store-agnostic filter and ordering expressions for patient queries.

Store adapters compile these expressions into their own query language; the
in-memory evaluation in :func:`matches` is the reference semantics every
adapter has to reproduce.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .patient import SortOrder


class FilterOperator(str, Enum):
    """Comparison applied between a record attribute and a value."""

    CONTAINS = "contains"
    ICONTAINS = "icontains"


@dataclass(slots=True, frozen=True)
class FieldCondition:
    """A single ``field <operator> value`` predicate."""

    field: str
    operator: FilterOperator
    value: str


@dataclass(slots=True, frozen=True)
class AnyOf:
    """Disjunction of conditions; a record matches when any condition does."""

    conditions: tuple[FieldCondition, ...]


@dataclass(slots=True, frozen=True)
class OrderBy:
    """Single-key ordering on a record attribute."""

    field: str
    direction: SortOrder = SortOrder.ASC

    @property
    def descending(self) -> bool:
        return self.direction is SortOrder.DESC


@dataclass(slots=True, frozen=True)
class StoreQuery:
    """Everything a store needs to count and fetch one page of records."""

    where: AnyOf | None
    order: OrderBy
    offset: int
    limit: int


def _condition_matches(condition: FieldCondition, values: Mapping[str, Any]) -> bool:
    actual = values.get(condition.field)
    if actual is None:
        return False
    text = str(actual)
    if condition.operator is FilterOperator.ICONTAINS:
        return condition.value.casefold() in text.casefold()
    return condition.value in text


def matches(where: AnyOf | None, values: Mapping[str, Any]) -> bool:
    """Return ``True`` when ``values`` satisfies ``where``; no filter matches all."""

    if where is None:
        return True
    return any(_condition_matches(condition, values) for condition in where.conditions)


__all__ = [
    "AnyOf",
    "FieldCondition",
    "FilterOperator",
    "OrderBy",
    "StoreQuery",
    "matches",
]
