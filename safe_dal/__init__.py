"""Sanitizing, schema-agnostic data access over DB-API drivers."""

from .config import DatabaseSettings, get_settings
from .core import (
    AsyncDatabaseClient,
    C,
    Column,
    Condition,
    DataAccessError,
    DatabaseClient,
    DeleteResult,
    FilterOperator,
    InvalidEmailError,
    OrderBy,
    OrderDirection,
    QueryFilter,
    QueryOptions,
    QueryResult,
    QueryValidationError,
    Table,
    UnknownColumnError,
    UnknownOperatorError,
    UnsafeQueryError,
    contains_suspicious_sql,
    create_table_sql,
    ensure_safe_sql,
    sanitize_email,
    sanitize_record,
    sanitize_string,
)
from .ports import (
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
    "AsyncDatabaseClient",
    "C",
    "Column",
    "Condition",
    "ConnectionProvider",
    "DataAccessError",
    "Database",
    "DatabaseClient",
    "DatabaseSettings",
    "DeleteResult",
    "Dialect",
    "FilterOperator",
    "InvalidEmailError",
    "MySQLDialect",
    "OrderBy",
    "OrderDirection",
    "PoolConnector",
    "PostgresDialect",
    "QueryFilter",
    "QueryOptions",
    "QueryResult",
    "QueryValidationError",
    "SQLiteDialect",
    "Table",
    "UnknownColumnError",
    "UnknownOperatorError",
    "UnsafeQueryError",
    "contains_suspicious_sql",
    "create_table_sql",
    "dialect_for",
    "ensure_safe_sql",
    "get_settings",
    "sanitize_email",
    "sanitize_record",
    "sanitize_string",
]
