"""Result envelopes returned by every public client operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    """Outcome of a read or write.

    On success `error` is `None` and `data` holds the rows, the row, or
    `None` for a lookup that matched nothing. On failure `data` is `None`
    and `error` holds the exception. `count` is only set by paginated
    selects and carries the total number of matching rows.
    """

    data: Optional[T] = None
    error: Optional[BaseException] = None
    count: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Optional[T], *, count: Optional[int] = None) -> QueryResult[T]:
        return cls(data=data, error=None, count=count)

    @classmethod
    def failure(cls, error: BaseException) -> QueryResult[T]:
        return cls(data=None, error=error)


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a delete."""

    success: bool
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.success and self.error is None
