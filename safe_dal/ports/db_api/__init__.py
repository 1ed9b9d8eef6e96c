"""DB-API adapter, pool, provider, and dialect exports."""

from .async_database import AsyncDatabase
from .database import Database
from .dialects import Dialect, MySQLDialect, PostgresDialect, SQLiteDialect, dialect_for
from .pool_connector import PoolConnector, PoolStats
from .provider import ConnectionProvider

__all__ = [
    "AsyncDatabase",
    "ConnectionProvider",
    "Database",
    "Dialect",
    "MySQLDialect",
    "PoolConnector",
    "PoolStats",
    "PostgresDialect",
    "SQLiteDialect",
    "dialect_for",
]
