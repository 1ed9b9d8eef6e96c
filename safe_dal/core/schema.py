"""DDL helpers for table descriptors."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, get_args, get_origin

from .contracts import DialectPort
from .tables import Column, Table


def create_table_sql(table: Table, dialect: DialectPort, *, if_not_exists: bool = True) -> str:
    """Build a `CREATE TABLE` statement for a table descriptor."""

    definitions = [column_sql(column, table, dialect) for column in table.columns]
    prefix = "CREATE TABLE IF NOT EXISTS" if if_not_exists else "CREATE TABLE"
    return f"{prefix} {dialect.q(table.name)} (\n  " + ",\n  ".join(definitions) + "\n);"


def column_sql(column: Column, table: Table, dialect: DialectPort) -> str:
    """Build one column definition SQL fragment."""

    is_pk = column.primary_key or column.name == table.pk
    if is_pk and column.auto:
        return dialect.auto_pk_sql(column.name)

    parts = [dialect.q(column.name), column.sql_type]
    parts.append("NULL" if column.nullable and not is_pk else "NOT NULL")
    if is_pk:
        parts.append("PRIMARY KEY")
    return " ".join(parts)


def resolve_sql_type(annotation: Any) -> str:
    """Map a Python annotation to a SQL scalar type."""

    if isinstance(annotation, str):
        lowered = annotation.lower()
        for token, sql_type in (
            ("bool", "BOOLEAN"),
            ("datetime", "TIMESTAMP"),
            ("date", "DATE"),
            ("time", "TIME"),
            ("decimal", "NUMERIC"),
            ("bytes", "BLOB"),
            ("int", "INTEGER"),
            ("float", "REAL"),
        ):
            if token in lowered:
                return sql_type
        return "TEXT"

    base_type = _unwrap_optional(annotation)
    if base_type is bool:
        return "BOOLEAN"
    if base_type is datetime:
        return "TIMESTAMP"
    if base_type is date:
        return "DATE"
    if base_type is time:
        return "TIME"
    if base_type is Decimal:
        return "NUMERIC"
    if base_type in {bytes, bytearray, memoryview}:
        return "BLOB"
    if base_type is int:
        return "INTEGER"
    if base_type is float:
        return "REAL"
    return "TEXT"


def _unwrap_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation

    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if len(args) == 1:
        return args[0]
    return annotation
