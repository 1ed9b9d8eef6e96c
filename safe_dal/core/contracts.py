"""Core port contracts implemented by the DB-API adapters."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, AbstractContextManager
from datetime import datetime
from typing import Any, List, Optional, Protocol

from .types import MaybeRow, QueryParams, RowMapping


class DialectPort(Protocol):
    """Dialect behavior required by query compilation and the clients."""

    name: str
    paramstyle: str
    supports_returning: bool

    def q(self, ident: str) -> str: ...

    def placeholder(self, key: str) -> str: ...

    def auto_pk_sql(self, pk_name: str) -> str: ...

    def returning_clause(self) -> str: ...

    def default_values_sql(self) -> str: ...

    def ilike_sql(self, col_sql: str, placeholder: str) -> str: ...

    def adapt_timestamp(self, value: datetime) -> Any: ...

    def get_lastrowid(self, cursor: Any) -> Optional[int]: ...


class DatabasePort(Protocol):
    """Database adapter behavior required by `DatabaseClient`."""

    dialect: DialectPort

    def transaction(self) -> AbstractContextManager[None]: ...

    def execute(self, sql: str, params: QueryParams = None) -> Any: ...

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow: ...

    def fetchall(self, sql: str, params: QueryParams = None) -> List[RowMapping]: ...


class AsyncDatabasePort(Protocol):
    """Async database adapter behavior required by `AsyncDatabaseClient`."""

    dialect: DialectPort

    def transaction(self) -> AbstractAsyncContextManager[None]: ...

    async def execute(self, sql: str, params: QueryParams = None) -> Any: ...

    async def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow: ...

    async def fetchall(self, sql: str, params: QueryParams = None) -> List[RowMapping]: ...
