"""Public core API for query description, sanitization, and the data clients."""

from .client import DatabaseClient
from .client_async import AsyncDatabaseClient
from .conditions import C, Condition, OrderBy
from .errors import (
    DataAccessError,
    InvalidEmailError,
    QueryValidationError,
    UnknownColumnError,
    UnknownOperatorError,
    UnsafeQueryError,
)
from .options import FilterOperator, OrderDirection, QueryFilter, QueryOptions
from .results import DeleteResult, QueryResult
from .sanitize import MAX_EMAIL_LENGTH, sanitize_email, sanitize_record, sanitize_string
from .schema import create_table_sql
from .sql_guard import SUSPICIOUS_PATTERNS, contains_suspicious_sql, ensure_safe_sql
from .tables import Column, Table

__all__ = [
    "AsyncDatabaseClient",
    "C",
    "Column",
    "Condition",
    "DataAccessError",
    "DatabaseClient",
    "DeleteResult",
    "FilterOperator",
    "InvalidEmailError",
    "MAX_EMAIL_LENGTH",
    "OrderBy",
    "OrderDirection",
    "QueryFilter",
    "QueryOptions",
    "QueryResult",
    "QueryValidationError",
    "SUSPICIOUS_PATTERNS",
    "Table",
    "UnknownColumnError",
    "UnknownOperatorError",
    "UnsafeQueryError",
    "contains_suspicious_sql",
    "create_table_sql",
    "ensure_safe_sql",
    "sanitize_email",
    "sanitize_record",
    "sanitize_string",
]
