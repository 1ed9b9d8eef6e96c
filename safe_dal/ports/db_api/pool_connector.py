"""Thread-safe DB-API connection pool with idle eviction."""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_TRANSACTION_GUARDS = frozenset({"rollback", "raise", "discard"})


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time pool occupancy."""

    max_size: int
    idle: int
    in_use: int
    closed: bool


@dataclass
class _IdleConnection:
    conn: Any
    since: float


class PoolConnector:
    """Bounded pool for DB-API connection objects.

    Connections are created lazily up to `max_size`; `prefill()` opens
    `min_size` of them eagerly. Idle connections older than `idle_timeout`
    seconds are closed instead of being handed out (while at least
    `min_size` stay open). A connection returned with an open transaction is
    rolled back (`transaction_guard="rollback"`), rejected with an error and
    discarded (`"raise"`), or silently discarded (`"discard"`).
    """

    def __init__(
        self,
        connect: Callable[..., Any],
        *connect_args: Any,
        min_size: int = 0,
        max_size: int = 5,
        idle_timeout: float | None = None,
        acquire_timeout: float | None = None,
        transaction_guard: str = "rollback",
        reset_session: bool = True,
        session_reset_hook: Callable[[Any], None] | None = None,
        **connect_kwargs: Any,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1.")
        if min_size < 0 or min_size > max_size:
            raise ValueError("min_size must be between 0 and max_size.")
        if transaction_guard not in _TRANSACTION_GUARDS:
            raise ValueError(
                "transaction_guard must be one of: 'rollback', 'raise', 'discard'."
            )
        if max_size > 1 and _is_private_sqlite_memory(connect, connect_args, connect_kwargs):
            raise ValueError(
                "sqlite private in-memory databases cannot be shared by a pool with "
                "max_size > 1. Use max_size=1 or a shared-cache memory URI."
            )

        self._connect = connect
        self._connect_args = connect_args
        self._connect_kwargs = connect_kwargs
        self._min_size = min_size
        self._max_size = max_size
        self._idle_timeout = idle_timeout
        self._acquire_timeout = acquire_timeout
        self._transaction_guard = transaction_guard
        self._reset_session = reset_session
        self._session_reset_hook = session_reset_hook

        self._idle: list[_IdleConnection] = []
        self._borrowed_ids: set[int] = set()
        self._total = 0
        self._closed = False
        self._condition = threading.Condition()

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def min_size(self) -> int:
        return self._min_size

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> PoolStats:
        with self._condition:
            return PoolStats(
                max_size=self._max_size,
                idle=len(self._idle),
                in_use=len(self._borrowed_ids),
                closed=self._closed,
            )

    def prefill(self) -> int:
        """Open connections until `min_size` exist; return how many were opened."""

        opened = 0
        while True:
            with self._condition:
                self._ensure_open()
                if self._total >= self._min_size:
                    return opened
                self._total += 1
            try:
                conn = self._connect(*self._connect_args, **self._connect_kwargs)
            except BaseException:
                with self._condition:
                    self._total -= 1
                    self._condition.notify()
                raise
            with self._condition:
                self._idle.append(_IdleConnection(conn, time.monotonic()))
                self._condition.notify()
            opened += 1

    def acquire(self, timeout: float | None = None) -> Any:
        """Borrow one connection, waiting up to `timeout` seconds for a slot."""

        if timeout is None:
            timeout = self._acquire_timeout
        deadline = None if timeout is None else time.monotonic() + timeout
        expired: list[Any] = []

        try:
            with self._condition:
                while True:
                    self._ensure_open()
                    expired.extend(self._evict_expired_locked())
                    if self._idle:
                        conn = self._idle.pop().conn
                        self._borrowed_ids.add(id(conn))
                        return conn

                    if self._total < self._max_size:
                        self._total += 1
                        break

                    if deadline is None:
                        self._condition.wait()
                        continue
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise TimeoutError("Timed out waiting for a pooled DB connection.")
                    self._condition.wait(remaining)
        finally:
            for stale in expired:
                self._close_connection(stale)

        try:
            conn = self._connect(*self._connect_args, **self._connect_kwargs)
        except BaseException:
            with self._condition:
                self._total -= 1
                self._condition.notify()
            raise

        with self._condition:
            if self._closed:
                self._total -= 1
                self._condition.notify()
                closed_while_connecting = True
            else:
                self._borrowed_ids.add(id(conn))
                closed_while_connecting = False
        if closed_while_connecting:
            self._close_connection(conn)
            raise RuntimeError("PoolConnector is closed.")
        logger.debug("Opened pooled connection (%d/%d)", self._total, self._max_size)
        return conn

    def release(self, conn: Any) -> None:
        """Return one borrowed connection to the pool."""

        conn_id = id(conn)
        with self._condition:
            if conn_id not in self._borrowed_ids:
                raise ValueError("Connection was not acquired from this pool or already released.")
            self._borrowed_ids.remove(conn_id)

        cleanup_error: Exception | None = None
        discard = False
        try:
            if _in_transaction(conn):
                discard = self._apply_transaction_guard(conn)
            if self._reset_session and not discard:
                self._reset_connection_session(conn)
        except Exception as exc:
            cleanup_error = exc
            discard = True

        with self._condition:
            if self._closed or discard:
                self._total -= 1
                discard = True
            else:
                self._idle.append(_IdleConnection(conn, time.monotonic()))
            self._condition.notify()

        if discard:
            self._close_connection(conn)
        if cleanup_error is not None:
            raise RuntimeError(
                "Failed to clean pooled DB connection before returning it."
            ) from cleanup_error

    @contextlib.contextmanager
    def connection(self, timeout: float | None = None) -> Iterator[Any]:
        """Borrow and auto-release one connection with a context manager."""

        conn = self.acquire(timeout=timeout)
        try:
            yield conn
        finally:
            self.release(conn)

    def close(self) -> None:
        """Close idle connections and refuse further `acquire()` calls.

        Borrowed connections are closed when they are released.
        """

        with self._condition:
            if self._closed:
                return
            self._closed = True
            idle = [item.conn for item in self._idle]
            self._idle.clear()
            self._total -= len(idle)
            self._condition.notify_all()

        for conn in idle:
            self._close_connection(conn)
        logger.info("Connection pool closed (%d idle connections)", len(idle))

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("PoolConnector is closed.")

    def _evict_expired_locked(self) -> list[Any]:
        if self._idle_timeout is None or not self._idle:
            return []
        cutoff = time.monotonic() - self._idle_timeout
        kept: list[_IdleConnection] = []
        expired: list[Any] = []
        # Oldest entries sit at the front of the idle list.
        for item in self._idle:
            if item.since < cutoff and self._total - len(expired) > self._min_size:
                expired.append(item.conn)
            else:
                kept.append(item)
        self._idle = kept
        self._total -= len(expired)
        return expired

    def _close_connection(self, conn: Any) -> None:
        close = getattr(conn, "close", None)
        if callable(close):
            close()

    def _apply_transaction_guard(self, conn: Any) -> bool:
        """Clean up an open transaction; return True to discard the connection."""

        if self._transaction_guard == "discard":
            return True
        if self._transaction_guard == "raise":
            raise RuntimeError(
                "Connection has an active transaction during release(). "
                "Commit/rollback before returning it to pool."
            )
        rollback = getattr(conn, "rollback", None)
        if not callable(rollback):
            raise RuntimeError("Connection has no rollback() for transaction cleanup.")
        rollback()
        return False

    def _reset_connection_session(self, conn: Any) -> None:
        if self._session_reset_hook is not None:
            self._session_reset_hook(conn)
            return

        statements = _default_reset_statements(conn)
        if not statements:
            return

        cur = conn.cursor()
        try:
            for sql in statements:
                cur.execute(sql)
        finally:
            close = getattr(cur, "close", None)
            if callable(close):
                close()

        commit = getattr(conn, "commit", None)
        if callable(commit):
            commit()


def _in_transaction(conn: Any) -> bool:
    in_tx = getattr(conn, "in_transaction", None)
    if isinstance(in_tx, bool):
        return in_tx

    info = getattr(conn, "info", None)
    tx_status = getattr(info, "transaction_status", None)
    if tx_status is not None:
        # psycopg3: 0 = idle.
        return tx_status != 0

    status = getattr(conn, "status", None)
    if status is not None and "psycopg2" in type(conn).__module__.lower():
        # psycopg2: STATUS_READY == 1 means idle.
        return status != 1

    return False


def _default_reset_statements(conn: Any) -> list[str]:
    module_name = type(conn).__module__.lower()
    if "psycopg" in module_name:
        return ["RESET ALL", "UNLISTEN *", "DEALLOCATE ALL"]
    if "mysql" in module_name:
        return [
            "SET SESSION sql_mode = DEFAULT",
            "SET SESSION time_zone = DEFAULT",
        ]
    return []


def _is_private_sqlite_memory(
    connect: Callable[..., Any],
    connect_args: tuple[Any, ...],
    connect_kwargs: dict[str, Any],
) -> bool:
    module_name = getattr(connect, "__module__", "") or ""
    if not module_name.startswith(("sqlite3", "_sqlite3")):
        return False
    database = connect_args[0] if connect_args else connect_kwargs.get("database")
    if database == ":memory:":
        return True
    if not isinstance(database, str) or not connect_kwargs.get("uri"):
        return False
    lowered = database.lower()
    return "mode=memory" in lowered and "cache=shared" not in lowered
