"""Exception hierarchy raised inside the data access layer.

Public client operations never let these escape: they are converted into the
`error` field of a result envelope at the operation boundary.
"""

from __future__ import annotations


class DataAccessError(Exception):
    """Base class for errors raised by safe_dal itself."""


class QueryValidationError(DataAccessError, ValueError):
    """Raised when a query description is rejected before reaching the store."""


class UnknownColumnError(QueryValidationError):
    """Raised when a column name does not exist on the table descriptor."""

    def __init__(self, table: str, column: str):
        super().__init__(f"Invalid column: {column!r} is not a column of {table!r}.")
        self.table = table
        self.column = column


class UnknownOperatorError(QueryValidationError):
    """Raised when a filter operator is outside the supported set."""

    def __init__(self, operator: object):
        super().__init__(f"Invalid operator: {operator!r}.")
        self.operator = operator


class UnsafeQueryError(QueryValidationError):
    """Raised when a raw SQL string matches the suspicious-pattern denylist."""


class InvalidEmailError(QueryValidationError):
    """Raised when an email-like field does not have a valid address shape."""
