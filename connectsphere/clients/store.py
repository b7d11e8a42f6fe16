"""Contract of the hosted realtime store the client synchronizes against.

The store is a JSON tree addressed by slash-separated paths. Subscriptions
deliver full replacement snapshots; writes are fire-and-confirm coroutines.
Query evaluation is shared between backends so ordering and windowing behave
identically in tests and in production.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol

Unsubscribe = Callable[[], None]
ValueCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]

KEY_ORDER = "$key"


class StoreReadError(RuntimeError):
    """Raised or delivered when the store refuses or fails a read."""


class StoreWriteError(RuntimeError):
    """Raised when a write, update or upload is rejected by the store."""


@dataclass(frozen=True)
class Query:
    """Server-side ordering and windowing.

    ``limit_to_last`` keeps the records with the greatest ``order_by`` values.
    ``end_at`` bounds the window inclusively; with ``end_at_key`` records that
    tie on the ordered value are bounded by key as well.
    """

    order_by: str = KEY_ORDER
    limit_to_last: int | None = None
    end_at: Any = None
    end_at_key: str | None = None
    equal_to: Any = None
    has_equal_to: bool = False

    @classmethod
    def matching(cls, order_by: str, value: Any) -> "Query":
        return cls(order_by=order_by, equal_to=value, has_equal_to=True)


@dataclass(frozen=True)
class Increment:
    """Server-side numeric increment usable as a value inside ``update``."""

    delta: int = 1


def split_path(path: str) -> list[str]:
    return [part for part in path.strip("/").split("/") if part]


def _order_rank(value: Any) -> tuple[int, Any]:
    # null < false < true < numbers < strings < objects
    if value is None:
        return (0, 0)
    if value is False:
        return (1, 0)
    if value is True:
        return (2, 0)
    if isinstance(value, (int, float)):
        return (3, value)
    if isinstance(value, str):
        return (4, value)
    return (5, 0)


def _child_value(record: Any, order_by: str, key: str) -> Any:
    if order_by == KEY_ORDER:
        return key
    current = record
    for part in split_path(order_by):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def apply_query(value: Any, query: Query | None) -> Any:
    """Filter, order and window a collection value according to ``query``."""

    if query is None or not isinstance(value, dict):
        return value

    rows = [(key, child, _child_value(child, query.order_by, key)) for key, child in value.items()]
    if query.has_equal_to:
        rows = [row for row in rows if row[2] == query.equal_to]
    if query.end_at is not None:
        bound = _order_rank(query.end_at)
        if query.end_at_key is None:
            rows = [row for row in rows if _order_rank(row[2]) <= bound]
        else:
            rows = [row for row in rows if (_order_rank(row[2]), row[0]) <= (bound, query.end_at_key)]
    rows.sort(key=lambda row: (_order_rank(row[2]), row[0]))
    if query.limit_to_last is not None:
        rows = rows[-query.limit_to_last:] if query.limit_to_last > 0 else []
    if not rows:
        return None
    return {key: child for key, child, _ in rows}


class RemoteStore(Protocol):
    """Minimal realtime-store surface the sync layer depends on."""

    def subscribe(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
        query: Query | None = None,
    ) -> Unsubscribe:
        """Deliver the value at ``path`` now and on every change until unsubscribed."""
        ...

    async def get(self, path: str, query: Query | None = None) -> Any:
        """Read the value at ``path`` once; ``None`` when nothing is stored."""
        ...

    async def set(self, path: str, value: Any) -> None:
        ...

    async def update(self, values: dict[str, Any]) -> None:
        """Apply several path writes atomically; ``None`` deletes a path."""
        ...

    async def remove(self, path: str) -> None:
        ...

    def push_id(self) -> str:
        """Return a fresh insertion-ordered key."""
        ...

    async def upload_binary(self, data: bytes, destination_hint: str, content_type: str) -> str:
        """Upload bytes and return a stable URL."""
        ...


__all__ = [
    "KEY_ORDER",
    "ErrorCallback",
    "Increment",
    "Query",
    "RemoteStore",
    "StoreReadError",
    "StoreWriteError",
    "Unsubscribe",
    "ValueCallback",
    "apply_query",
    "split_path",
]
