"""Async twin of `DatabaseClient` over an `AsyncDatabasePort`."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, TypeVar

from ._async_utils import _maybe_await
from .client import Clock, _normalize_raw_params, _target_name, log_failure, utcnow
from .contracts import AsyncDatabasePort
from .options import QueryOptions
from .planning import (
    plan_lookup,
    plan_select,
    prepare_insert,
    prepare_update,
    require_id,
    resolve_table,
    to_record,
)
from .results import DeleteResult, QueryResult
from .sql_guard import ensure_safe_sql
from .statements import (
    delete_statement,
    insert_statement,
    read_count,
    select_by_pk_statement,
    update_statement,
)
from .tables import Table
from .types import Record

T = TypeVar("T")


class AsyncDatabaseClient:
    """Async CRUD surface with the same envelopes and guarantees as `DatabaseClient`."""

    def __init__(self, db: AsyncDatabasePort, *, clock: Clock = utcnow):
        self.db = db
        self.d = db.dialect
        self._clock = clock

    async def select(
        self,
        table: Table | type,
        options: QueryOptions | Mapping[str, Any] | None = None,
    ) -> QueryResult[list[Record]]:
        try:
            resolved = resolve_table(table)
            plan = plan_select(resolved, options, self.d)
            rows = [dict(row) for row in await self.db.fetchall(plan.page.sql, plan.page.params)]
            count = None
            if plan.count is not None:
                count = read_count(await self.db.fetchone(plan.count.sql, plan.count.params))
            return QueryResult.success(rows, count=count)
        except Exception as exc:
            log_failure("select", _target_name(table), exc)
            return QueryResult.failure(exc)

    async def insert(self, table: Table | type, data: Mapping[str, Any]) -> QueryResult[Record]:
        try:
            resolved = resolve_table(table)
            values = prepare_insert(resolved, data, self._clock(), self.d)
            statement = insert_statement(resolved, self.d, values)
            async with self.db.transaction():
                if self.d.supports_returning:
                    rows = await self.db.fetchall(statement.sql, statement.params)
                    row = rows[0] if rows else None
                else:
                    cursor = await self.db.execute(statement.sql, statement.params)
                    pk_value = values.get(resolved.pk)
                    if pk_value is None:
                        pk_value = self.d.get_lastrowid(cursor)
                    row = await self._fetch_by_pk(resolved, pk_value)
            return QueryResult.success(to_record(row))
        except Exception as exc:
            log_failure("insert", _target_name(table), exc)
            return QueryResult.failure(exc)

    async def update(
        self,
        table: Table | type,
        id: Any,
        data: Mapping[str, Any],
    ) -> QueryResult[Record]:
        try:
            resolved = resolve_table(table)
            pk_value = require_id(resolved, id)
            values = prepare_update(resolved, data, self._clock(), self.d)
            statement = update_statement(resolved, self.d, pk_value, values)
            async with self.db.transaction():
                if self.d.supports_returning:
                    rows = await self.db.fetchall(statement.sql, statement.params)
                    row = rows[0] if rows else None
                else:
                    await self.db.execute(statement.sql, statement.params)
                    row = await self._fetch_by_pk(resolved, pk_value)
            return QueryResult.success(to_record(row))
        except Exception as exc:
            log_failure("update", _target_name(table), exc)
            return QueryResult.failure(exc)

    async def delete(self, table: Table | type, id: Any) -> DeleteResult:
        try:
            resolved = resolve_table(table)
            statement = delete_statement(resolved, self.d, require_id(resolved, id))
            async with self.db.transaction():
                await self.db.execute(statement.sql, statement.params)
            return DeleteResult(success=True, error=None)
        except Exception as exc:
            log_failure("delete", _target_name(table), exc)
            return DeleteResult(success=False, error=exc)

    async def find_by_id(self, table: Table | type, id: Any) -> QueryResult[Record]:
        try:
            resolved = resolve_table(table)
            row = await self._fetch_by_pk(resolved, require_id(resolved, id))
            return QueryResult.success(to_record(row))
        except Exception as exc:
            log_failure("find_by_id", _target_name(table), exc)
            return QueryResult.failure(exc)

    async def find_one(self, table: Table | type, criteria: Mapping[str, Any]) -> QueryResult[Record]:
        try:
            resolved = resolve_table(table)
            statement = plan_lookup(resolved, criteria, self.d)
            row = await self.db.fetchone(statement.sql, statement.params)
            return QueryResult.success(to_record(row))
        except Exception as exc:
            log_failure("find_one", _target_name(table), exc)
            return QueryResult.failure(exc)

    async def raw(
        self,
        query: str,
        params: Sequence[Any] | Mapping[str, Any] | None = None,
    ) -> QueryResult[list[Record]]:
        """Run a literal query after the denylist check (a heuristic, not a boundary)."""

        try:
            sql = ensure_safe_sql(query)
            bound = _normalize_raw_params(params)
            async with self.db.transaction():
                cursor = await self.db.execute(sql, bound)
                rows = await self._drain(cursor)
            return QueryResult.success(rows)
        except Exception as exc:
            log_failure("raw", "raw query", exc)
            return QueryResult.failure(exc)

    async def transaction(
        self,
        callback: Callable[[AsyncDatabaseClient], Awaitable[T] | T],
    ) -> QueryResult[T]:
        """Run `callback(client)` in one commit/rollback transaction."""

        try:
            async with self.db.transaction():
                data = await _maybe_await(callback(self))
            return QueryResult.success(data)
        except Exception as exc:
            log_failure("transaction", "transaction", exc)
            return QueryResult.failure(exc)

    async def _fetch_by_pk(self, table: Table, pk_value: Any) -> Optional[Mapping[str, Any]]:
        if pk_value is None:
            return None
        statement = select_by_pk_statement(table, self.d, pk_value)
        return await self.db.fetchone(statement.sql, statement.params)

    async def _drain(self, cursor: Any) -> list[Record]:
        if getattr(cursor, "description", None) is None:
            return []
        rows = await _maybe_await(cursor.fetchall())
        row_to_mapping = getattr(self.db, "row_to_mapping", None)
        if row_to_mapping is None:
            return [dict(row) for row in rows]
        return [dict(row_to_mapping(cursor, row)) for row in rows]
