"""Declarative query descriptions and their translation into conditions."""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

from .conditions import C, Condition, OrderBy
from .errors import QueryValidationError, UnknownOperatorError
from .sanitize import sanitize_string
from .tables import Table


class FilterOperator(str, Enum):
    """Closed set of supported filter operators."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    NOTIN = "notin"

    @classmethod
    def parse(cls, raw: Any) -> FilterOperator:
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            try:
                return cls(raw.strip().lower())
            except ValueError:
                pass
        raise UnknownOperatorError(raw)


class OrderDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, raw: Any) -> OrderDirection:
        if raw is None:
            return cls.ASC
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            try:
                return cls(raw.strip().lower())
            except ValueError:
                pass
        raise QueryValidationError(f"Invalid order direction: {raw!r}.")


@dataclass(frozen=True)
class QueryFilter:
    """One `column <operator> value` predicate."""

    column: str
    operator: FilterOperator | str
    value: Any = None

    @classmethod
    def coerce(cls, raw: QueryFilter | Mapping[str, Any]) -> QueryFilter:
        if isinstance(raw, QueryFilter):
            return raw
        if isinstance(raw, Mapping):
            missing = [key for key in ("column", "operator") if key not in raw]
            if missing:
                raise QueryValidationError(f"Filter is missing keys: {missing}.")
            return cls(column=raw["column"], operator=raw["operator"], value=raw.get("value"))
        raise QueryValidationError(
            f"Filter must be QueryFilter or mapping, got {type(raw).__name__}."
        )


FilterInput = QueryFilter | Mapping[str, Any]

_OPTION_KEYS = frozenset({"limit", "offset", "order_by", "order_direction", "filters"})
_OPTION_ALIASES = {"orderBy": "order_by", "orderDirection": "order_direction"}


@dataclass(frozen=True)
class QueryOptions:
    """Filtering, ordering, and pagination for `select`."""

    limit: Optional[int] = None
    offset: Optional[int] = None
    order_by: Optional[str] = None
    order_direction: OrderDirection | str | None = None
    filters: Sequence[FilterInput] = field(default_factory=tuple)

    @property
    def is_paginated(self) -> bool:
        return self.limit is not None or self.offset is not None

    @classmethod
    def coerce(cls, raw: QueryOptions | Mapping[str, Any] | None) -> QueryOptions:
        """Accept `QueryOptions`, a mapping with the same keys, or `None`."""

        if raw is None:
            return cls()
        if isinstance(raw, QueryOptions):
            return raw
        if isinstance(raw, Mapping):
            values = {_OPTION_ALIASES.get(key, key): value for key, value in raw.items()}
            unknown = sorted(set(values) - _OPTION_KEYS)
            if unknown:
                raise QueryValidationError(f"Unknown query options: {unknown}.")
            return cls(**{key: value for key, value in values.items() if value is not None})
        raise QueryValidationError(
            f"Query options must be QueryOptions or mapping, got {type(raw).__name__}."
        )


def build_conditions(table: Table, filters: Sequence[FilterInput] | None) -> list[Condition]:
    """Validate filters against `table` and translate them into conditions.

    Raises:
        UnknownColumnError: A filter references a column the table lacks.
        UnknownOperatorError: A filter operator is outside the supported set.
        QueryValidationError: A membership filter was given a non-collection.
    """

    conditions: list[Condition] = []
    for raw in filters or ():
        item = QueryFilter.coerce(raw)
        table.column(item.column)
        operator = FilterOperator.parse(item.operator)
        conditions.append(_to_condition(item.column, operator, item.value))
    return conditions


def build_order_by(table: Table, options: QueryOptions) -> list[OrderBy]:
    if options.order_by is None:
        if options.order_direction is not None:
            OrderDirection.parse(options.order_direction)
        return []
    table.column(options.order_by)
    direction = OrderDirection.parse(options.order_direction)
    return [OrderBy(options.order_by, desc=direction is OrderDirection.DESC)]


def validate_window(limit: Optional[int], offset: Optional[int]) -> None:
    for name, value in (("limit", limit), ("offset", offset)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            raise QueryValidationError(f"{name} must be an integer, got {value!r}.")
        if value < 0:
            raise QueryValidationError(f"{name} must be >= 0, got {value}.")


def equality_conditions(table: Table, criteria: Mapping[str, Any]) -> list[Condition]:
    """Build AND-equality conditions for `find_one` style lookups."""

    if not criteria:
        raise QueryValidationError("criteria must not be empty.")
    table.require_columns(list(criteria))
    return [C.eq(key, value) for key, value in criteria.items()]


def _to_condition(column: str, operator: FilterOperator, value: Any) -> Condition:
    if operator is FilterOperator.EQ:
        return C.eq(column, value)
    if operator is FilterOperator.NE:
        return C.ne(column, value)
    if operator is FilterOperator.GT:
        return C.gt(column, value)
    if operator is FilterOperator.GTE:
        return C.ge(column, value)
    if operator is FilterOperator.LT:
        return C.lt(column, value)
    if operator is FilterOperator.LTE:
        return C.le(column, value)
    if operator is FilterOperator.LIKE:
        return C.like(column, _contains_pattern(column, value))
    if operator is FilterOperator.ILIKE:
        return C.ilike(column, _contains_pattern(column, value))
    if operator is FilterOperator.IN:
        return C.in_(column, _membership_values(column, value))
    if operator is FilterOperator.NOTIN:
        return C.not_in(column, _membership_values(column, value))
    raise UnknownOperatorError(operator)


def _contains_pattern(column: str, value: Any) -> str:
    if value is None:
        raise QueryValidationError(f"Pattern filter on {column!r} requires a value.")
    return f"%{sanitize_string(str(value))}%"


def _membership_values(column: str, value: Any) -> list[Any]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Collection):
        raise QueryValidationError(
            f"Membership filter on {column!r} expects a collection, got {type(value).__name__}."
        )
    return list(value)
