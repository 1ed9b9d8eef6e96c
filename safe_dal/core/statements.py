"""Statement builders shared by `DatabaseClient` and `AsyncDatabaseClient`.

Each builder only produces SQL and parameters; nothing here touches a
connection, so both clients run the exact same statements.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from .conditions import C, Condition, OrderBy
from .contracts import DialectPort
from .errors import QueryValidationError
from .query_builder import ParamBinder, compile_limit_offset, compile_order_by, compile_where
from .tables import Table
from .types import QueryParams

COUNT_ALIAS = "__count"


@dataclass(frozen=True)
class Statement:
    """One SQL statement with its bound parameters."""

    sql: str
    params: QueryParams = None


def select_statement(
    table: Table,
    dialect: DialectPort,
    *,
    conditions: Sequence[Condition] = (),
    order_by: Sequence[OrderBy] = (),
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Statement:
    binder = ParamBinder(dialect)
    sql = f"SELECT * FROM {dialect.q(table.name)}"
    sql += compile_where(conditions, dialect, binder).sql
    sql += compile_order_by(order_by, dialect)
    sql += compile_limit_offset(binder, limit=limit, offset=offset)
    return Statement(sql + ";", binder.params())


def count_statement(
    table: Table,
    dialect: DialectPort,
    *,
    conditions: Sequence[Condition] = (),
) -> Statement:
    """Count rows under the same predicates as the page query."""

    binder = ParamBinder(dialect)
    sql = f"SELECT COUNT(*) AS {dialect.q(COUNT_ALIAS)} FROM {dialect.q(table.name)}"
    sql += compile_where(conditions, dialect, binder).sql
    return Statement(sql + ";", binder.params())


def select_by_pk_statement(table: Table, dialect: DialectPort, pk_value: Any) -> Statement:
    return select_statement(table, dialect, conditions=[C.eq(table.pk, pk_value)], limit=1)


def insert_statement(table: Table, dialect: DialectPort, values: Mapping[str, Any]) -> Statement:
    """Build `INSERT ... [RETURNING *]` for already validated values."""

    table_sql = dialect.q(table.name)
    if not values:
        return Statement(
            f"INSERT INTO {table_sql} {dialect.default_values_sql()}{dialect.returning_clause()};"
        )

    binder = ParamBinder(dialect)
    columns = ", ".join(dialect.q(name) for name in values)
    placeholders = ", ".join(binder.bind(name, value) for name, value in values.items())
    sql = (
        f"INSERT INTO {table_sql} ({columns}) VALUES ({placeholders})"
        f"{dialect.returning_clause()};"
    )
    return Statement(sql, binder.params())


def update_statement(
    table: Table,
    dialect: DialectPort,
    pk_value: Any,
    values: Mapping[str, Any],
) -> Statement:
    """Build `UPDATE ... WHERE pk = :id [RETURNING *]`."""

    if not values:
        raise QueryValidationError("update values must not be empty.")

    binder = ParamBinder(dialect)
    set_clause = ", ".join(
        f"{dialect.q(name)} = {binder.bind(f'set_{name}', value)}"
        for name, value in values.items()
    )
    where = compile_where([C.eq(table.pk, pk_value)], dialect, binder)
    sql = (
        f"UPDATE {dialect.q(table.name)} SET {set_clause}{where.sql}"
        f"{dialect.returning_clause()};"
    )
    return Statement(sql, binder.params())


def delete_statement(table: Table, dialect: DialectPort, pk_value: Any) -> Statement:
    binder = ParamBinder(dialect)
    where = compile_where([C.eq(table.pk, pk_value)], dialect, binder)
    return Statement(f"DELETE FROM {dialect.q(table.name)}{where.sql};", binder.params())


def read_count(row: Optional[Mapping[str, Any]]) -> int:
    if not row:
        return 0
    value = row.get(COUNT_ALIAS)
    if value is None:
        # Some drivers drop the alias on tuple rows; fall back to the first column.
        value = next(iter(row.values()), 0)
    return int(value or 0)
