"""Validation and statement planning shared by the sync and async clients.

Everything here raises on bad input; converting exceptions into result
envelopes is left to the public client operations.
"""

from __future__ import annotations

from dataclasses import dataclass, is_dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any, Mapping, Optional

from .contracts import DialectPort
from .errors import QueryValidationError
from .options import (
    QueryOptions,
    build_conditions,
    build_order_by,
    equality_conditions,
    validate_window,
)
from .sanitize import sanitize_record
from .statements import Statement, count_statement, select_statement
from .tables import Table
from .types import Record, RowMapping


@dataclass(frozen=True)
class SelectPlan:
    """Page query plus the optional total-count query."""

    page: Statement
    count: Optional[Statement] = None


def resolve_table(table: Any) -> Table:
    """Accept a `Table` descriptor or a dataclass model class."""

    if isinstance(table, Table):
        return table
    if isinstance(table, type) and is_dataclass(table):
        return _table_for_model(table)
    raise TypeError(f"Expected Table or dataclass model, got {type(table).__name__}.")


@lru_cache(maxsize=None)
def _table_for_model(model: type) -> Table:
    return Table.from_model(model)


def plan_select(table: Table, options: QueryOptions | Mapping[str, Any] | None, dialect: DialectPort) -> SelectPlan:
    """Validate options and build the page and count statements."""

    opts = QueryOptions.coerce(options)
    validate_window(opts.limit, opts.offset)
    conditions = build_conditions(table, opts.filters)
    order_by = build_order_by(table, opts)

    page = select_statement(
        table,
        dialect,
        conditions=conditions,
        order_by=order_by,
        limit=opts.limit,
        offset=opts.offset,
    )
    count = count_statement(table, dialect, conditions=conditions) if opts.is_paginated else None
    return SelectPlan(page=page, count=count)


def plan_lookup(table: Table, criteria: Mapping[str, Any], dialect: DialectPort) -> Statement:
    conditions = equality_conditions(table, criteria)
    return select_statement(table, dialect, conditions=conditions, limit=1)


def require_id(table: Table, pk_value: Any) -> Any:
    if pk_value is None:
        raise QueryValidationError(f"{table.name}.{table.pk} value is required.")
    return pk_value


def prepare_insert(table: Table, data: Mapping[str, Any], now: datetime, dialect: DialectPort) -> Record:
    """Validate keys, sanitize strings, and stamp bookkeeping timestamps."""

    _require_mapping(data)
    table.require_columns(list(data))
    values = sanitize_record(data)

    stamp = dialect.adapt_timestamp(now)
    for column in (table.created_at, table.updated_at):
        if column and values.get(column) is None:
            values[column] = stamp
    if table.pk_column.auto and values.get(table.pk) is None:
        values.pop(table.pk, None)
    return values


def prepare_update(table: Table, data: Mapping[str, Any], now: datetime, dialect: DialectPort) -> Record:
    """Drop protected columns, sanitize strings, and refresh `updated_at`."""

    _require_mapping(data)
    changes = {key: value for key, value in data.items() if key not in table.protected_columns}
    table.require_columns(list(changes))
    values = sanitize_record(changes)

    if table.updated_at:
        values[table.updated_at] = dialect.adapt_timestamp(now)
    if not values:
        raise QueryValidationError(f"No updatable columns given for {table.name!r}.")
    return values


def to_record(row: Optional[RowMapping]) -> Optional[Record]:
    return dict(row) if row is not None else None


def _require_mapping(data: Any) -> None:
    if not isinstance(data, Mapping):
        raise QueryValidationError(f"Row data must be a mapping, got {type(data).__name__}.")
