"""Concrete SQL dialect implementations for DB-API adapters."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


class Dialect:
    """Base dialect that defines SQL quoting and placeholder behavior."""

    name: str = "generic"
    paramstyle: str = "named"
    quote_char: str = '"'
    supports_returning: bool = False

    def q(self, ident: str) -> str:
        """Quote SQL identifier, doubling any embedded quote character."""

        escaped = ident.replace(self.quote_char, self.quote_char * 2)
        return f"{self.quote_char}{escaped}{self.quote_char}"

    def placeholder(self, key: str) -> str:
        """Return parameter placeholder for current param style."""

        if self.paramstyle == "named":
            return f":{key}"
        if self.paramstyle == "qmark":
            return "?"
        if self.paramstyle == "format":
            return "%s"
        raise ValueError(f"Unsupported paramstyle: {self.paramstyle}")

    def auto_pk_sql(self, pk_name: str) -> str:
        """Return SQL fragment for auto-increment primary key column."""

        return f"{self.q(pk_name)} INTEGER PRIMARY KEY"

    def returning_clause(self) -> str:
        """Return `RETURNING *` when the dialect supports it."""

        if self.supports_returning:
            return " RETURNING *"
        return ""

    def default_values_sql(self) -> str:
        """Return the `INSERT` tail that fills every column with its default."""

        return "DEFAULT VALUES"

    def ilike_sql(self, col_sql: str, placeholder: str) -> str:
        """Return a case-insensitive pattern match predicate."""

        return f"LOWER({col_sql}) LIKE LOWER({placeholder})"

    def adapt_timestamp(self, value: datetime) -> Any:
        """Convert a timestamp into a value the driver can bind."""

        return value

    def get_lastrowid(self, cursor: Any) -> Optional[int]:
        """Extract `lastrowid` from DB-API cursor when available."""

        return getattr(cursor, "lastrowid", None)


class SQLiteDialect(Dialect):
    """SQLite dialect (`:name` parameters, supports `RETURNING`)."""

    name = "sqlite"
    paramstyle = "named"
    quote_char = '"'
    supports_returning = True

    def adapt_timestamp(self, value: datetime) -> Any:
        # sqlite3's implicit datetime adapter is deprecated; store ISO-8601 text.
        return value.isoformat(sep=" ")


class PostgresDialect(Dialect):
    """PostgreSQL dialect (`%s` positional parameters, native `ILIKE`)."""

    name = "postgres"
    paramstyle = "format"
    quote_char = '"'
    supports_returning = True

    def auto_pk_sql(self, pk_name: str) -> str:
        return f"{self.q(pk_name)} SERIAL PRIMARY KEY"

    def ilike_sql(self, col_sql: str, placeholder: str) -> str:
        return f"{col_sql} ILIKE {placeholder}"


class MySQLDialect(Dialect):
    """MySQL dialect (`%s` positional parameters, no `RETURNING`)."""

    name = "mysql"
    paramstyle = "format"
    quote_char = "`"
    supports_returning = False

    def auto_pk_sql(self, pk_name: str) -> str:
        return f"{self.q(pk_name)} INT AUTO_INCREMENT PRIMARY KEY"

    def default_values_sql(self) -> str:
        return "() VALUES ()"

    def adapt_timestamp(self, value: datetime) -> Any:
        # DATETIME columns reject offsets; store naive UTC.
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


def dialect_for(name: str) -> Dialect:
    """Return a dialect instance by driver name."""

    normalized = name.strip().lower()
    if normalized in ("sqlite", "sqlite3"):
        return SQLiteDialect()
    if normalized in ("postgres", "postgresql", "psycopg", "psycopg2"):
        return PostgresDialect()
    if normalized in ("mysql", "pymysql"):
        return MySQLDialect()
    raise ValueError(f"Unsupported database driver: {name!r}")
