"""Typed table descriptors used to validate column references at call time."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Iterator, Optional, Sequence, Type

from .errors import UnknownColumnError


@dataclass(frozen=True)
class Column:
    """One column of a table descriptor.

    Attributes:
        name: Column name as stored in the database.
        sql_type: SQL type used when generating DDL.
        nullable: Whether DDL allows NULL.
        primary_key: Whether this column is the row identifier.
        auto: Whether the store generates the value (auto-increment key).
    """

    name: str
    sql_type: str = "TEXT"
    nullable: bool = True
    primary_key: bool = False
    auto: bool = False


@dataclass(frozen=True)
class Table:
    """Schema handle mapping column names to `Column` objects.

    `created_at` and `updated_at` name the bookkeeping timestamp columns.
    A snake_case name also matches its camelCase spelling (`createdAt`), and
    a name the table does not declare in either form is dropped.
    """

    name: str
    columns: tuple[Column, ...]
    pk: str = "id"
    created_at: Optional[str] = "created_at"
    updated_at: Optional[str] = "updated_at"
    _by_name: dict[str, Column] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Table name must be non-empty.")
        columns = tuple(self.columns)
        if not columns:
            raise ValueError(f"Table {self.name!r} must declare at least one column.")
        object.__setattr__(self, "columns", columns)

        by_name: dict[str, Column] = {}
        for column in columns:
            if column.name in by_name:
                raise ValueError(
                    f"Duplicate column {column.name!r} on table {self.name!r}."
                )
            by_name[column.name] = column
        if self.pk not in by_name:
            raise ValueError(
                f"Primary key column {self.pk!r} is not declared on {self.name!r}."
            )
        object.__setattr__(self, "_by_name", by_name)

        object.__setattr__(self, "created_at", _declared_spelling(self.created_at, by_name))
        object.__setattr__(self, "updated_at", _declared_spelling(self.updated_at, by_name))

    @classmethod
    def define(
        cls,
        name: str,
        *columns: Column | str,
        pk: str = "id",
        created_at: Optional[str] = "created_at",
        updated_at: Optional[str] = "updated_at",
    ) -> Table:
        """Build a table from `Column` objects or bare column names.

        A bare name equal to `pk` becomes an auto-generated integer key.
        """

        normalized = tuple(
            column
            if isinstance(column, Column)
            else (
                Column(column, "INTEGER", nullable=False, primary_key=True, auto=True)
                if column == pk
                else Column(column)
            )
            for column in columns
        )
        return cls(
            name=name,
            columns=normalized,
            pk=pk,
            created_at=created_at,
            updated_at=updated_at,
        )

    @classmethod
    def from_model(cls, model: Type[Any]) -> Table:
        """Build a descriptor from a dataclass model.

        The primary key is the field declared with `metadata={"pk": True}`
        (add `"auto": True` for store-generated keys). The table name is
        `__table__` when set, otherwise the lowercased class name.
        """

        if not is_dataclass(model) or not isinstance(model, type):
            raise TypeError(f"{getattr(model, '__name__', model)!r} must be a dataclass.")

        from .schema import resolve_sql_type

        model_columns: list[Column] = []
        pks: list[str] = []
        for item in fields(model):
            is_pk = bool(item.metadata.get("pk"))
            if is_pk:
                pks.append(item.name)
            model_columns.append(
                Column(
                    name=item.name,
                    sql_type=item.metadata.get("sql_type") or resolve_sql_type(item.type),
                    nullable=not is_pk and item.metadata.get("nullable", True),
                    primary_key=is_pk,
                    auto=is_pk and bool(item.metadata.get("auto")),
                )
            )
        if len(pks) != 1:
            raise ValueError(
                f"{model.__name__} must declare exactly one field with metadata={{'pk': True}}."
            )

        raw_name = getattr(model, "__table__", None)
        name = raw_name if isinstance(raw_name, str) and raw_name else model.__name__.lower()
        return cls(
            name=name,
            columns=tuple(model_columns),
            pk=pks[0],
            created_at=getattr(model, "__created_at__", "created_at"),
            updated_at=getattr(model, "__updated_at__", "updated_at"),
        )

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    @property
    def pk_column(self) -> Column:
        return self._by_name[self.pk]

    @property
    def protected_columns(self) -> frozenset[str]:
        """Columns an update may never overwrite."""

        names = {self.pk}
        if self.created_at:
            names.add(self.created_at)
        return frozenset(names)

    def has_column(self, name: str) -> bool:
        return name in self._by_name

    def column(self, name: str) -> Column:
        """Return the named column or raise `UnknownColumnError`."""

        if not isinstance(name, str):
            raise UnknownColumnError(self.name, repr(name))
        found = self._by_name.get(name)
        if found is None:
            raise UnknownColumnError(self.name, name)
        return found

    def require_columns(self, names: Sequence[str]) -> None:
        for name in names:
            self.column(name)

    def __iter__(self) -> Iterator[Column]:
        return iter(self.columns)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._by_name


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _declared_spelling(name: Optional[str], by_name: dict[str, Column]) -> Optional[str]:
    if not name:
        return None
    for candidate in (name, _camel_case(name)):
        if candidate in by_name:
            return candidate
    return None
