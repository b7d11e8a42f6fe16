"""In-process realtime store used for local development and tests.

Holds the whole JSON tree in memory, evaluates queries with the same rules as
the hosted backend and fans every committed write out to the subscribers whose
path overlaps the written path. Delivery is synchronous, in commit order.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from .push_ids import generate_push_id
from .store import (
    ErrorCallback,
    Increment,
    Query,
    StoreReadError,
    StoreWriteError,
    Unsubscribe,
    ValueCallback,
    apply_query,
    split_path,
)

logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class _Listener:
    parts: list[str]
    query: Query | None
    on_value: ValueCallback
    on_error: ErrorCallback | None
    active: bool = True
    last: Any = field(default=_UNSET)


def _overlaps(a: list[str], b: list[str]) -> bool:
    size = min(len(a), len(b))
    return a[:size] == b[:size]


def _starts_with(parts: list[str], prefix: list[str]) -> bool:
    return parts[: len(prefix)] == prefix


class InMemoryStore:
    """Dictionary-backed implementation of :class:`~connectsphere.clients.store.RemoteStore`."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._root: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._listeners: list[_Listener] = []
        self._failing_reads: dict[tuple[str, ...], Exception] = {}
        self._failing_writes: dict[tuple[str, ...], Exception] = {}
        self.blobs: dict[str, bytes] = {}
        self.write_log: list[dict[str, Any]] = []

    # Reads -----------------------------------------------------------------

    def _read(self, parts: list[str]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    def _read_failure(self, parts: list[str]) -> Exception | None:
        for prefix, error in self._failing_reads.items():
            if _starts_with(parts, list(prefix)):
                return error
        return None

    def subscribe(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
        query: Query | None = None,
    ) -> Unsubscribe:
        listener = _Listener(parts=split_path(path), query=query, on_value=on_value, on_error=on_error)
        failure = self._read_failure(listener.parts)
        if failure is not None:
            listener.active = False
            if on_error is not None:
                on_error(failure)
            return lambda: None

        self._listeners.append(listener)
        self._deliver(listener)

        def _unsubscribe() -> None:
            listener.active = False
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def get(self, path: str, query: Query | None = None) -> Any:
        parts = split_path(path)
        failure = self._read_failure(parts)
        if failure is not None:
            raise StoreReadError(str(failure)) from failure
        return apply_query(self._read(parts), query)

    def _deliver(self, listener: _Listener) -> None:
        if not listener.active:
            return
        value = apply_query(self._read(listener.parts), listener.query)
        if listener.last is not _UNSET and listener.last == value:
            return
        listener.last = copy.deepcopy(value)
        listener.on_value(value)

    def _notify(self, written: list[list[str]]) -> None:
        for listener in list(self._listeners):
            if any(_overlaps(listener.parts, parts) for parts in written):
                self._deliver(listener)

    # Writes ----------------------------------------------------------------

    def _check_writable(self, parts: list[str]) -> None:
        for prefix, error in self._failing_writes.items():
            if _starts_with(parts, list(prefix)):
                raise StoreWriteError(str(error)) from error

    def _resolve(self, parts: list[str], value: Any) -> Any:
        if isinstance(value, Increment):
            current = self._read(parts)
            base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
            return base + value.delta
        if isinstance(value, dict):
            return {key: self._resolve(parts + [key], child) for key, child in value.items()}
        return copy.deepcopy(value)

    def _write(self, parts: list[str], value: Any) -> None:
        if not parts:
            self._root = value if isinstance(value, dict) else {}
            return
        if value is None or value == {}:
            self._delete(parts)
            return
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    def _delete(self, parts: list[str]) -> None:
        trail: list[tuple[dict[str, Any], str]] = []
        node: Any = self._root
        for part in parts[:-1]:
            if not isinstance(node, dict) or part not in node:
                return
            trail.append((node, part))
            node = node[part]
        if isinstance(node, dict):
            node.pop(parts[-1], None)
        # the tree never keeps empty branches
        for parent, key in reversed(trail):
            if parent[key] == {}:
                del parent[key]
            else:
                break

    async def set(self, path: str, value: Any) -> None:
        await self.update({path: value})

    async def update(self, values: dict[str, Any]) -> None:
        if not values:
            return
        targets = [(split_path(path), value) for path, value in values.items()]
        for parts, _ in targets:
            self._check_writable(parts)
        resolved = [(parts, self._resolve(parts, value)) for parts, value in targets]
        for parts, value in resolved:
            self._write(parts, value)
        self.write_log.append(dict(values))
        logger.debug("Committed update touching %d path(s)", len(resolved))
        self._notify([parts for parts, _ in resolved])

    async def remove(self, path: str) -> None:
        await self.update({path: None})

    def push_id(self) -> str:
        return generate_push_id()

    async def upload_binary(self, data: bytes, destination_hint: str, content_type: str) -> str:
        self._check_writable(split_path(destination_hint))
        key = f"{destination_hint.strip('/')}/{generate_push_id()}"
        self.blobs[key] = bytes(data)
        return f"memory://{key}"

    # Fault injection -------------------------------------------------------

    def fail_reads(self, path: str, error: Exception | None = None) -> None:
        """Make reads under ``path`` fail; active subscribers receive the error and are dropped."""

        parts = split_path(path)
        failure = error or StoreReadError(f"permission denied: {path}")
        self._failing_reads[tuple(parts)] = failure
        for listener in list(self._listeners):
            if listener.active and _starts_with(listener.parts, parts):
                listener.active = False
                self._listeners.remove(listener)
                if listener.on_error is not None:
                    listener.on_error(failure)

    def fail_writes(self, path: str, error: Exception | None = None) -> None:
        self._failing_writes[tuple(split_path(path))] = error or StoreWriteError(f"write rejected: {path}")

    def restore(self) -> None:
        self._failing_reads.clear()
        self._failing_writes.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def snapshot(self, path: str = "") -> Any:
        return self._read(split_path(path))


__all__ = ["InMemoryStore"]
