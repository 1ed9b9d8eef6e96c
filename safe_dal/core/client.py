"""Sanitizing data access client over a sync `DatabasePort`.

Every public method is an error boundary: it never raises for bad input or
store failures, and instead returns a `QueryResult` / `DeleteResult` whose
`error` field carries the exception. Callers branch on `result.ok`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence, TypeVar

from .contracts import DatabasePort
from .errors import QueryValidationError
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
from .types import QueryParams, Record

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def log_failure(operation: str, target: str, exc: BaseException) -> None:
    """Log one caught failure without query text or parameter values."""

    if isinstance(exc, (QueryValidationError, TypeError)):
        logger.warning("Database %s rejected for %s: %s", operation, target, exc)
    else:
        logger.error(
            "Database %s error for %s: %s",
            operation,
            target,
            type(exc).__name__,
            exc_info=exc,
        )


def _target_name(table: Any) -> str:
    name = getattr(table, "name", None) or getattr(table, "__name__", None)
    return str(name) if name else "<unknown table>"


class DatabaseClient:
    """Generic CRUD surface with filtering, sanitization, and raw-SQL guarding."""

    def __init__(self, db: DatabasePort, *, clock: Clock = utcnow):
        """Create a client.

        Args:
            db: Adapter implementing `DatabasePort` (for example `Database`).
            clock: Source of timestamps for `created_at` / `updated_at`.
        """

        self.db = db
        self.d = db.dialect
        self._clock = clock

    def select(
        self,
        table: Table | type,
        options: QueryOptions | Mapping[str, Any] | None = None,
    ) -> QueryResult[list[Record]]:
        """Return rows matching filters, ordered and paginated.

        When `limit` or `offset` is given, `count` holds the total number of
        rows matching the filters regardless of the page window.
        """

        try:
            resolved = resolve_table(table)
            plan = plan_select(resolved, options, self.d)
            rows = [dict(row) for row in self.db.fetchall(plan.page.sql, plan.page.params)]
            count = None
            if plan.count is not None:
                count = read_count(self.db.fetchone(plan.count.sql, plan.count.params))
            return QueryResult.success(rows, count=count)
        except Exception as exc:
            log_failure("select", _target_name(table), exc)
            return QueryResult.failure(exc)

    def insert(self, table: Table | type, data: Mapping[str, Any]) -> QueryResult[Record]:
        """Insert one sanitized row and return it as stored."""

        try:
            resolved = resolve_table(table)
            values = prepare_insert(resolved, data, self._clock(), self.d)
            statement = insert_statement(resolved, self.d, values)
            with self.db.transaction():
                if self.d.supports_returning:
                    rows = self.db.fetchall(statement.sql, statement.params)
                    row = rows[0] if rows else None
                else:
                    cursor = self.db.execute(statement.sql, statement.params)
                    pk_value = values.get(resolved.pk)
                    if pk_value is None:
                        pk_value = self.d.get_lastrowid(cursor)
                    row = self._fetch_by_pk(resolved, pk_value)
            return QueryResult.success(to_record(row))
        except Exception as exc:
            log_failure("insert", _target_name(table), exc)
            return QueryResult.failure(exc)

    def update(
        self,
        table: Table | type,
        id: Any,
        data: Mapping[str, Any],
    ) -> QueryResult[Record]:
        """Apply sanitized changes to one row and return the updated row.

        The primary key and `created_at` columns are never overwritten, and
        `updated_at` is always refreshed. A missing row yields `data=None`.
        """

        try:
            resolved = resolve_table(table)
            pk_value = require_id(resolved, id)
            values = prepare_update(resolved, data, self._clock(), self.d)
            statement = update_statement(resolved, self.d, pk_value, values)
            with self.db.transaction():
                if self.d.supports_returning:
                    rows = self.db.fetchall(statement.sql, statement.params)
                    row = rows[0] if rows else None
                else:
                    # MySQL counts changed rows, not matched ones; read back by key.
                    self.db.execute(statement.sql, statement.params)
                    row = self._fetch_by_pk(resolved, pk_value)
            return QueryResult.success(to_record(row))
        except Exception as exc:
            log_failure("update", _target_name(table), exc)
            return QueryResult.failure(exc)

    def delete(self, table: Table | type, id: Any) -> DeleteResult:
        """Delete one row by primary key."""

        try:
            resolved = resolve_table(table)
            statement = delete_statement(resolved, self.d, require_id(resolved, id))
            with self.db.transaction():
                self.db.execute(statement.sql, statement.params)
            return DeleteResult(success=True, error=None)
        except Exception as exc:
            log_failure("delete", _target_name(table), exc)
            return DeleteResult(success=False, error=exc)

    def find_by_id(self, table: Table | type, id: Any) -> QueryResult[Record]:
        """Return the row with this primary key, or `data=None` when absent."""

        try:
            resolved = resolve_table(table)
            return QueryResult.success(to_record(self._fetch_by_pk(resolved, require_id(resolved, id))))
        except Exception as exc:
            log_failure("find_by_id", _target_name(table), exc)
            return QueryResult.failure(exc)

    def find_one(self, table: Table | type, criteria: Mapping[str, Any]) -> QueryResult[Record]:
        """Return the first row equal on every criteria column, or `data=None`."""

        try:
            resolved = resolve_table(table)
            statement = plan_lookup(resolved, criteria, self.d)
            return QueryResult.success(to_record(self.db.fetchone(statement.sql, statement.params)))
        except Exception as exc:
            log_failure("find_one", _target_name(table), exc)
            return QueryResult.failure(exc)

    def raw(
        self,
        query: str,
        params: Sequence[Any] | Mapping[str, Any] | None = None,
    ) -> QueryResult[list[Record]]:
        """Run a literal query with bound parameters after the denylist check.

        The denylist is a heuristic, not a security boundary; never build
        `query` from untrusted input.
        """

        try:
            sql = ensure_safe_sql(query)
            bound = _normalize_raw_params(params)
            with self.db.transaction():
                cursor = self.db.execute(sql, bound)
                rows = self._drain(cursor)
            return QueryResult.success(rows)
        except Exception as exc:
            log_failure("raw", "raw query", exc)
            return QueryResult.failure(exc)

    def transaction(self, callback: Callable[[DatabaseClient], T]) -> QueryResult[T]:
        """Run `callback(client)` in one commit/rollback transaction.

        Operations issued through the client inside the callback join the
        transaction. Raise from the callback to roll everything back.
        """

        try:
            with self.db.transaction():
                data = callback(self)
            return QueryResult.success(data)
        except Exception as exc:
            log_failure("transaction", "transaction", exc)
            return QueryResult.failure(exc)

    def _fetch_by_pk(self, table: Table, pk_value: Any) -> Optional[Mapping[str, Any]]:
        if pk_value is None:
            return None
        statement = select_by_pk_statement(table, self.d, pk_value)
        return self.db.fetchone(statement.sql, statement.params)

    def _drain(self, cursor: Any) -> list[Record]:
        if getattr(cursor, "description", None) is None:
            return []
        row_to_mapping = getattr(self.db, "row_to_mapping", None)
        rows = cursor.fetchall()
        if row_to_mapping is None:
            return [dict(row) for row in rows]
        return [dict(row_to_mapping(cursor, row)) for row in rows]


def _normalize_raw_params(params: Sequence[Any] | Mapping[str, Any] | None) -> QueryParams:
    if params is None:
        return None
    if isinstance(params, Mapping):
        return dict(params)
    if isinstance(params, (str, bytes)):
        raise QueryValidationError("Raw query params must be a sequence or mapping.")
    return list(params)
