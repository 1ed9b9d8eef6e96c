"""Compiled predicate primitives used by the SQL fragment builders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence


@dataclass(frozen=True)
class Condition:
    """Represents one SQL predicate on a single column.

    Attributes:
        col: Raw column name (validated against the table before compiling).
        op: SQL operator (for example `=`, `IN`, `NOT IN`, `ILIKE`).
        value: Scalar value for binary operators.
        values: Sequence value for `IN` / `NOT IN`.
    """

    col: str
    op: str
    value: Any = None
    values: Optional[Sequence[Any]] = None

    @property
    def is_membership(self) -> bool:
        return self.op in ("IN", "NOT IN")


class C:
    """Condition factory methods, one per supported SQL operator."""

    @staticmethod
    def eq(col: str, val: Any) -> Condition:
        """Build `col = value` condition."""

        return Condition(col=col, op="=", value=val)

    @staticmethod
    def ne(col: str, val: Any) -> Condition:
        """Build `col <> value` condition."""

        return Condition(col=col, op="<>", value=val)

    @staticmethod
    def lt(col: str, val: Any) -> Condition:
        return Condition(col=col, op="<", value=val)

    @staticmethod
    def le(col: str, val: Any) -> Condition:
        return Condition(col=col, op="<=", value=val)

    @staticmethod
    def gt(col: str, val: Any) -> Condition:
        return Condition(col=col, op=">", value=val)

    @staticmethod
    def ge(col: str, val: Any) -> Condition:
        return Condition(col=col, op=">=", value=val)

    @staticmethod
    def like(col: str, pattern: str) -> Condition:
        """Build `col LIKE pattern` condition."""

        return Condition(col=col, op="LIKE", value=pattern)

    @staticmethod
    def ilike(col: str, pattern: str) -> Condition:
        """Build a case-insensitive like condition (dialect decides the SQL)."""

        return Condition(col=col, op="ILIKE", value=pattern)

    @staticmethod
    def in_(col: str, values: Sequence[Any]) -> Condition:
        """Build `col IN (...)` condition."""

        return Condition(col=col, op="IN", values=list(values))

    @staticmethod
    def not_in(col: str, values: Sequence[Any]) -> Condition:
        """Build `col NOT IN (...)` condition."""

        return Condition(col=col, op="NOT IN", values=list(values))


@dataclass(frozen=True)
class OrderBy:
    """Represents one ordering expression."""

    col: str
    desc: bool = False
