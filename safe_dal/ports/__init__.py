"""Public port exports for concrete adapter implementations."""

from .db_api import (
    AsyncDatabase,
    ConnectionProvider,
    Database,
    Dialect,
    MySQLDialect,
    PoolConnector,
    PostgresDialect,
    SQLiteDialect,
    dialect_for,
)

__all__ = [
    "AsyncDatabase",
    "ConnectionProvider",
    "Database",
    "Dialect",
    "MySQLDialect",
    "PoolConnector",
    "PostgresDialect",
    "SQLiteDialect",
    "dialect_for",
]
