"""Async DB adapter implementation for the core async database port."""

from __future__ import annotations

import asyncio
import contextlib
from contextvars import ContextVar
from typing import Any, AsyncIterator, Callable

from ...core._async_utils import _maybe_await, _maybe_close
from ...core.types import MaybeRow, QueryParams, RowMapping, Rows
from .database import row_to_mapping
from .dialects import Dialect
from .pool_connector import PoolConnector


class AsyncDatabase:
    """Async database wrapper over async (or sync) DB-API style connections.

    Cursor and connection methods may return awaitables (async drivers) or
    plain values (sync drivers such as `sqlite3`); both are supported. With a
    `PoolConnector`, a connection is borrowed per statement and pinned for
    the duration of `transaction()` within the current task.
    """

    def __init__(self, conn: Any | PoolConnector, dialect: Dialect):
        """Create async database adapter.

        Args:
            conn: Async (or sync) DB connection object or `PoolConnector`.
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
            f"safe_dal_async_pinned_{id(self)}", default=None
        )

    @property
    def in_transaction(self) -> bool:
        return self._pinned.get() is not None

    async def _borrow(self) -> Any:
        pool = self._pool
        assert pool is not None
        try:
            return pool.acquire(timeout=0)
        except TimeoutError:
            pass
        # The worker thread keeps waiting after a cancel; hand its connection back.
        pending = asyncio.ensure_future(asyncio.to_thread(pool.acquire))
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            pending.add_done_callback(_release_when_acquired(pool))
            raise

    @contextlib.asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        """Yield the pinned, dedicated, or freshly borrowed connection."""

        if self._closed:
            raise RuntimeError("database adapter is closed")
        pinned = self._pinned.get()
        if pinned is not None:
            yield pinned
            return
        if self._pool is None:
            yield self.conn
            return
        conn = await self._borrow()
        try:
            yield conn
        finally:
            self._pool.release(conn)

    def _should_begin_sqlite_transaction(self, conn: Any) -> bool:
        if getattr(self.dialect, "name", "").lower() != "sqlite":
            return False
        if getattr(conn, "isolation_level", None) is not None:
            return False
        return not bool(getattr(conn, "in_transaction", False))

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Provide async commit/rollback transaction scope.

        Nested calls join the outermost transaction.
        """

        if self._pinned.get() is not None:
            yield
            return

        async with self.connection() as conn:
            token = self._pinned.set(conn)
            try:
                if self._should_begin_sqlite_transaction(conn):
                    await _maybe_await(conn.execute("BEGIN"))
                try:
                    yield
                except BaseException:
                    await _maybe_await(conn.rollback())
                    raise
                await _maybe_await(conn.commit())
            finally:
                self._pinned.reset(token)

    async def _execute_on(self, conn: Any, sql: str, params: QueryParams) -> Any:
        cur = await _maybe_await(conn.cursor())
        try:
            if params is None:
                await _maybe_await(cur.execute(sql))
            else:
                await _maybe_await(cur.execute(sql, params))
        except BaseException:
            await _maybe_close(cur)
            raise
        return cur

    async def execute(self, sql: str, params: QueryParams = None) -> Any:
        """Execute SQL with optional parameters and return the cursor."""

        async with self.connection() as conn:
            return await self._execute_on(conn, sql, params)

    def row_to_mapping(self, cursor: Any, row: Any) -> RowMapping:
        return row_to_mapping(cursor, row)

    async def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow:
        """Execute query and return one normalized row mapping."""

        rows = await self.fetchall(sql, params)
        return rows[0] if rows else None

    async def fetchall(self, sql: str, params: QueryParams = None) -> Rows:
        """Execute query and return all rows as normalized mappings."""

        async with self.connection() as conn:
            cur = await self._execute_on(conn, sql, params)
            try:
                rows = await _maybe_await(cur.fetchall())
                return [row_to_mapping(cur, r) for r in rows]
            finally:
                await _maybe_close(cur)

    async def aclose(self, *, close_pool: bool = False) -> None:
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
        if conn is not None:
            await _maybe_close(conn)

    async def __aenter__(self) -> AsyncDatabase:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.aclose()


def _release_when_acquired(pool: PoolConnector) -> Callable[[asyncio.Future[Any]], None]:
    def _release(future: asyncio.Future[Any]) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        pool.release(future.result())

    return _release
