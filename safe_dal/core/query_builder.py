"""SQL fragment builders for filtering, sorting, and paging.

This module centralizes SQL string compilation from validated conditions. It
keeps the clients focused on orchestration and error conversion while making
SQL generation reusable between the sync and async paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from .conditions import Condition, OrderBy
from .contracts import DialectPort
from .types import NamedParams, PositionalParams, QueryParams


@dataclass(frozen=True)
class CompiledFragment:
    """Represents a compiled SQL fragment with its bound parameters."""

    sql: str
    params: QueryParams


class ParamBinder:
    """Collects bound values in the dialect's parameter style.

    Named styles get deterministic, collision-free keys derived from a
    column hint; positional styles get values appended in order.
    """

    def __init__(self, dialect: DialectPort) -> None:
        self._dialect = dialect
        self._counter = 0
        self._named: NamedParams = {}
        self._positional: PositionalParams = []

    @property
    def dialect(self) -> DialectPort:
        return self._dialect

    @property
    def named(self) -> bool:
        return self._dialect.paramstyle == "named"

    def bind(self, hint: str, value: Any) -> str:
        """Register `value` and return the placeholder to embed in SQL."""

        self._counter += 1
        if self.named:
            safe = "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in hint)
            key = f"{safe}_{self._counter}"
            self._named[key] = value
            return f":{key}"
        self._positional.append(value)
        return self._dialect.placeholder(hint)

    def params(self) -> QueryParams:
        if self.named:
            return dict(self._named) if self._named else None
        return list(self._positional) if self._positional else None


def compile_where(
    conditions: Sequence[Condition] | None,
    dialect: DialectPort,
    binder: Optional[ParamBinder] = None,
) -> CompiledFragment:
    """Compile conditions into a SQL `WHERE` fragment joined with `AND`.

    Args:
        conditions: Validated conditions, or `None`.
        dialect: SQL dialect used for identifier quoting and placeholders.
        binder: Existing binder to append to; a fresh one is used otherwise.

    Returns:
        A compiled SQL fragment and parameters. Empty fragment if no condition.
    """

    if not conditions:
        return CompiledFragment("", None)

    binder = binder or ParamBinder(dialect)
    clauses = [_compile_condition(item, dialect, binder) for item in conditions]
    return CompiledFragment(f" WHERE {' AND '.join(clauses)}", binder.params())


def compile_order_by(order_by: Optional[Sequence[OrderBy]], dialect: DialectPort) -> str:
    """Compile `ORDER BY` clause from ordering inputs."""

    if not order_by:
        return ""

    ordered_cols = ", ".join(
        f"{dialect.q(item.col)} {'DESC' if item.desc else 'ASC'}" for item in order_by
    )
    return f" ORDER BY {ordered_cols}"


def compile_limit_offset(
    binder: ParamBinder,
    *,
    limit: Optional[int],
    offset: Optional[int],
) -> str:
    """Return the pagination clause, binding values through `binder`.

    An offset without a limit is emitted as `LIMIT -1` on SQLite, and as a
    very large limit on other dialects, since neither accepts a bare OFFSET
    in every version.
    """

    sql = ""
    if limit is not None:
        sql += f" LIMIT {binder.bind('limit', limit)}"
    elif offset is not None:
        sql += f" LIMIT {binder.bind('limit', _unbounded_limit(binder))}"
    if offset is not None:
        sql += f" OFFSET {binder.bind('offset', offset)}"
    return sql


def _unbounded_limit(binder: ParamBinder) -> int:
    return -1 if binder.dialect.name == "sqlite" else 2**63 - 1


def _compile_condition(condition: Condition, dialect: DialectPort, binder: ParamBinder) -> str:
    col_sql = dialect.q(condition.col)

    if condition.is_membership:
        values: List[Any] = list(condition.values or [])
        if not values:
            # Empty IN matches nothing; empty NOT IN matches everything.
            return "1=0" if condition.op == "IN" else "1=1"
        placeholders = ", ".join(binder.bind(condition.col, value) for value in values)
        return f"{col_sql} {condition.op} ({placeholders})"

    if condition.value is None and condition.op in ("=", "<>"):
        return f"{col_sql} IS NULL" if condition.op == "=" else f"{col_sql} IS NOT NULL"

    placeholder = binder.bind(condition.col, condition.value)
    if condition.op == "ILIKE":
        return dialect.ilike_sql(col_sql, placeholder)
    return f"{col_sql} {condition.op} {placeholder}"
