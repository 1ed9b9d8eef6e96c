"""Internal helpers for driving sync-or-async DB-API objects from coroutines."""

from __future__ import annotations

import inspect
from typing import Any


async def _maybe_await(value: Any) -> Any:
    """Await awaitables and return plain values unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


async def _maybe_close(obj: Any) -> None:
    """Call `obj.close()` when present, awaiting it for async drivers."""
    close = getattr(obj, "close", None)
    if callable(close):
        await _maybe_await(close())
