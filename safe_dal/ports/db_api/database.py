"""DB-API adapter implementation for the core database port."""

from __future__ import annotations

import contextlib
import logging
from contextvars import ContextVar
from typing import Any, Iterator, Mapping

from ...core.types import MaybeRow, QueryParams, RowMapping, Rows
from .dialects import Dialect
from .pool_connector import PoolConnector

logger = logging.getLogger(__name__)


def row_to_mapping(cursor: Any, row: Any) -> RowMapping:
    """Normalize a driver row to a mapping.

    Supports mapping rows directly and tuple/list rows via
    `cursor.description`.
    """

    if isinstance(row, Mapping):
        return row

    if isinstance(row, (tuple, list)):
        desc = getattr(cursor, "description", None)
        if not desc:
            raise TypeError("Cursor has no description; cannot map tuple rows to dict.")
        cols = [d[0] for d in desc]
        return dict(zip(cols, row, strict=True))

    try:
        mapped = dict(row)
    except (TypeError, ValueError):
        mapped = None
    if mapped:
        return mapped
    raise TypeError(f"Unsupported row type: {type(row)}")


class Database:
    """DB-API wrapper that borrows a connection per statement.

    Given a `PoolConnector`, each statement borrows a connection and returns
    it right away. Inside `transaction()` one connection is pinned for the
    current execution context so every statement joins the transaction.
    Given a plain connection, that connection is used for everything.
    """

    def __init__(self, conn: Any | PoolConnector, dialect: Dialect):
        """Create database adapter.

        Args:
            conn: DB-API connection object or `PoolConnector`.
            dialect: Concrete SQL dialect instance.
        """

        self._pool: PoolConnector | None = None
        self._closed = False
        self.conn: Any | None = None
        if isinstance(conn, PoolConnector):
            self._pool = conn
        else:
            self.conn = conn
        self.dialect = dialect
        self._pinned: ContextVar[Any | None] = ContextVar(
            f"safe_dal_pinned_{id(self)}", default=None
        )

    @property
    def in_transaction(self) -> bool:
        return self._pinned.get() is not None

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("database adapter is closed")

    @contextlib.contextmanager
    def connection(self) -> Iterator[Any]:
        """Yield the pinned, dedicated, or freshly borrowed connection."""

        self._ensure_open()
        pinned = self._pinned.get()
        if pinned is not None:
            yield pinned
            return
        if self._pool is None:
            yield self.conn
            return
        with self._pool.connection() as conn:
            yield conn

    def _should_begin_sqlite_transaction(self, conn: Any) -> bool:
        if getattr(self.dialect, "name", "").lower() != "sqlite":
            return False
        if getattr(conn, "isolation_level", None) is not None:
            return False
        return not bool(getattr(conn, "in_transaction", False))

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """Provide commit/rollback transaction scope.

        Nested calls join the outermost transaction; only the outermost
        scope commits or rolls back.
        """

        if self._pinned.get() is not None:
            yield
            return

        with self.connection() as conn:
            token = self._pinned.set(conn)
            try:
                if self._should_begin_sqlite_transaction(conn):
                    conn.execute("BEGIN")
                yield
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                self._pinned.reset(token)

    def execute(self, sql: str, params: QueryParams = None) -> Any:
        """Execute SQL with optional parameters and return the cursor."""

        with self.connection() as conn:
            return self._execute_on(conn, sql, params)

    def _execute_on(self, conn: Any, sql: str, params: QueryParams) -> Any:
        cur = conn.cursor()
        if params is None:
            cur.execute(sql)
        else:
            cur.execute(sql, params)
        return cur

    def row_to_mapping(self, cursor: Any, row: Any) -> RowMapping:
        return row_to_mapping(cursor, row)

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow:
        """Execute query and return one normalized row mapping."""

        with self.connection() as conn:
            cur = self._execute_on(conn, sql, params)
            rows = cur.fetchall()
        if not rows:
            return None
        return row_to_mapping(cur, rows[0])

    def fetchall(self, sql: str, params: QueryParams = None) -> Rows:
        """Execute query and return all rows as normalized mappings."""

        with self.connection() as conn:
            cur = self._execute_on(conn, sql, params)
            rows = cur.fetchall()
        return [row_to_mapping(cur, r) for r in rows]

    def close(self, *, close_pool: bool = False) -> None:
        """Close the dedicated connection, or optionally the pool.

        Args:
            close_pool: Also close the `PoolConnector` when this adapter uses one.
        """

        if self._closed:
            if close_pool and self._pool is not None:
                self._pool.close()
            return
        self._closed = True
        if self._pool is not None:
            if close_pool:
                self._pool.close()
            return
        conn, self.conn = self.conn, None
        close = getattr(conn, "close", None)
        if callable(close):
            close()
        logger.debug("Closed dedicated %s connection", self.dialect.name)

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()
