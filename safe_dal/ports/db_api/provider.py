"""Process-wide connection pool lifecycle built from `DatabaseSettings`."""

from __future__ import annotations

import functools
import importlib
import logging
import sqlite3
import threading
from typing import Any, Callable

from ...config import DatabaseSettings, get_settings
from ...core.client import DatabaseClient
from ...core.client_async import AsyncDatabaseClient
from .async_database import AsyncDatabase
from .database import Database
from .dialects import Dialect, dialect_for
from .pool_connector import PoolConnector

logger = logging.getLogger(__name__)

_DRIVER_MODULES = {
    "postgres": ("psycopg", "psycopg2"),
    "mysql": ("pymysql",),
}


class ConnectionProvider:
    """Own one `PoolConnector` and hand out adapters and clients bound to it.

    Call `init()` once at startup and `shutdown()` at exit (or use the
    provider as a context manager). Adapters created by `database()` and
    `async_database()` share the pool.
    """

    def __init__(
        self,
        settings: DatabaseSettings | None = None,
        *,
        connect: Callable[[], Any] | None = None,
        dialect: Dialect | None = None,
        session_reset_hook: Callable[[Any], None] | None = None,
    ):
        """Create a provider.

        Args:
            settings: Connection settings. Defaults to `get_settings()`.
            connect: Zero-argument connection factory overriding the driver
                selected by `settings.driver`.
            dialect: Dialect overriding the one selected by `settings.driver`.
            session_reset_hook: Called with each connection returned to the
                pool in place of the built-in session reset.
        """

        self.settings = settings or get_settings()
        self.dialect = dialect or dialect_for(self.settings.driver)
        self._connect = connect
        self._session_reset_hook = session_reset_hook
        self._pool: PoolConnector | None = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._pool is not None and not self._pool.closed

    @property
    def pool(self) -> PoolConnector:
        if self._pool is None or self._pool.closed:
            raise RuntimeError("ConnectionProvider is not initialized; call init() first.")
        return self._pool

    def init(self) -> PoolConnector:
        """Create the pool and open `pool_min` connections. Idempotent."""

        with self._lock:
            if self.initialized:
                assert self._pool is not None
                return self._pool
            connect = self._connect or driver_connect(self.settings)
            min_size, max_size = self._pool_bounds()
            pool = PoolConnector(
                connect,
                min_size=min_size,
                max_size=max_size,
                idle_timeout=self.settings.idle_timeout,
                acquire_timeout=self.settings.acquire_timeout,
                transaction_guard=self.settings.pool_transaction_guard,
                reset_session=self.settings.pool_reset_session,
                session_reset_hook=self._session_reset_hook,
            )
            pool.prefill()
            self._pool = pool
        logger.info(
            "Connection pool ready for %s (min=%d, max=%d)",
            self.dialect.name,
            min_size,
            max_size,
        )
        return pool

    def health_check(self) -> bool:
        """Run `SELECT 1` through the pool; never raises."""

        try:
            with self.pool.connection() as conn:
                cur = conn.cursor()
                try:
                    cur.execute("SELECT 1")
                    cur.fetchall()
                finally:
                    cur.close()
        except Exception:
            logger.error("Database health check failed", exc_info=True)
            return False
        logger.debug("Database health check succeeded")
        return True

    def shutdown(self) -> None:
        """Close the pool. Errors are logged, not raised."""

        with self._lock:
            pool, self._pool = self._pool, None
        if pool is None:
            return
        try:
            pool.close()
        except Exception:
            logger.error("Error closing database pool", exc_info=True)
            return
        logger.info("Database pool closed gracefully")

    def database(self) -> Database:
        return Database(self.pool, self.dialect)

    def async_database(self) -> AsyncDatabase:
        return AsyncDatabase(self.pool, self.dialect)

    def client(self) -> DatabaseClient:
        return DatabaseClient(self.database())

    def async_client(self) -> AsyncDatabaseClient:
        return AsyncDatabaseClient(self.async_database())

    def _pool_bounds(self) -> tuple[int, int]:
        min_size, max_size = self.settings.pool_min, self.settings.pool_max
        if self.settings.driver == "sqlite" and _is_private_memory(self.settings.sqlite_path):
            # Each connection to ":memory:" opens a separate empty database.
            return min(min_size, 1), 1
        return min_size, max_size

    def __enter__(self) -> ConnectionProvider:
        self.init()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.shutdown()


def driver_connect(settings: DatabaseSettings) -> Callable[[], Any]:
    """Return a zero-argument connection factory for `settings.driver`."""

    if settings.driver == "sqlite":
        return functools.partial(
            sqlite3.connect,
            settings.sqlite_path,
            timeout=settings.connect_timeout,
            isolation_level=None,
            check_same_thread=False,
            uri=settings.sqlite_path.startswith("file:"),
        )

    module = _load_driver(settings.driver)
    if settings.driver == "postgres":
        options: dict[str, Any] = {"connect_timeout": int(settings.connect_timeout)}
        if settings.ssl:
            options["sslmode"] = "require"
        return functools.partial(module.connect, settings.dsn(), **options)

    params = settings.network_params()
    options = {"connect_timeout": int(settings.connect_timeout)}
    if settings.ssl:
        options["ssl"] = {"check_hostname": False}
    return functools.partial(module.connect, **params, **options)


def _load_driver(driver: str) -> Any:
    names = _DRIVER_MODULES[driver]
    for module_name in names:
        try:
            return importlib.import_module(module_name)
        except ImportError:
            continue
    raise RuntimeError(
        f"No driver installed for {driver!r}; install one of: {', '.join(names)}."
    )


def _is_private_memory(path: str) -> bool:
    lowered = path.lower()
    if lowered == ":memory:" or lowered == "":
        return True
    return "mode=memory" in lowered and "cache=shared" not in lowered
