"""Session-scoped live subscriptions to remote collections and records.

Every subscription belongs to a :class:`SubscriptionRegistry`. The registry
owns a generation counter: closing the session bumps the generation and tears
down every subscription synchronously, and any callback that still fires for
an older generation is dropped instead of being applied to the new viewer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from ..clients.store import Query, RemoteStore, Unsubscribe, split_path

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class StaleSessionError(RuntimeError):
    """Raised when an async chain resumes after its session has ended."""


def parse_with(model: type[ModelT]) -> Callable[[str, Any], ModelT | None]:
    """Build a parser that validates ``value`` as ``model`` using the store key as id."""

    def _parse(key: str, value: Any) -> ModelT | None:
        if not isinstance(value, dict):
            return None
        return model.model_validate({**value, "id": key})

    return _parse


@dataclass(frozen=True)
class SessionToken:
    """Cancellation token captured when an async operation starts."""

    registry: "SubscriptionRegistry"
    generation: int

    @property
    def is_current(self) -> bool:
        return self.registry.generation == self.generation

    def ensure_current(self) -> None:
        if not self.is_current:
            raise StaleSessionError("The session changed while the operation was in flight")


class _Subscription:
    def __init__(
        self,
        registry: "SubscriptionRegistry",
        path: str,
        query: Query | None,
        on_change: Callable[[Any], None] | None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._registry = registry
        self.path = path
        self.query = query
        self.generation = registry.generation
        self.loaded = False
        self._closed = False
        self._on_change = on_change
        self._on_error = on_error
        self._unsubscribe: Unsubscribe | None = None

    def _start(self, store: RemoteStore) -> None:
        unsubscribe = store.subscribe(self.path, self._handle_value, self._handle_error, self.query)
        if self._closed:
            # closed from inside the initial delivery
            unsubscribe()
            return
        self._unsubscribe = unsubscribe

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_stale(self) -> bool:
        return self._closed or self.generation != self._registry.generation

    def _handle_value(self, raw: Any) -> None:
        if self.is_stale:
            logger.debug("Dropping late snapshot for %s (generation %d)", self.path, self.generation)
            return
        self._apply(raw)
        self.loaded = True
        if self._on_change is not None:
            self._on_change(self)

    def _handle_error(self, exc: Exception) -> None:
        if self.is_stale:
            return
        logger.warning("Subscription to %s failed: %s", self.path, exc)
        self.close()
        if self._on_error is not None:
            self._on_error(exc)

    def _apply(self, raw: Any) -> None:
        raise NotImplementedError

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._registry._release(self)


class RemoteCollectionSubscription(_Subscription, Generic[ModelT]):
    """Live, fully replaced copy of a keyed collection."""

    def __init__(
        self,
        registry: "SubscriptionRegistry",
        path: str,
        parse: Callable[[str, Any], ModelT | None],
        *,
        query: Query | None = None,
        on_change: Callable[["RemoteCollectionSubscription[ModelT]"], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        super().__init__(registry, path, query, on_change, on_error)
        self._parse = parse
        self.items: dict[str, ModelT] = {}
        self.raw_count = 0

    def _apply(self, raw: Any) -> None:
        items: dict[str, ModelT] = {}
        self.raw_count = len(raw) if isinstance(raw, dict) else 0
        if isinstance(raw, dict):
            for key, value in raw.items():
                try:
                    parsed = self._parse(str(key), value)
                except ValidationError as exc:
                    logger.warning("Skipping malformed record %s/%s: %s", self.path, key, exc.errors()[:1])
                    continue
                if parsed is not None:
                    items[str(key)] = parsed
        self.items = items

    def values(self) -> list[ModelT]:
        return list(self.items.values())


class RemoteRecordSubscription(_Subscription, Generic[ModelT]):
    """Live copy of one record; ``value`` is None while the record does not exist."""

    def __init__(
        self,
        registry: "SubscriptionRegistry",
        path: str,
        parse: Callable[[str, Any], ModelT | None],
        *,
        on_change: Callable[["RemoteRecordSubscription[ModelT]"], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        super().__init__(registry, path, None, on_change, on_error)
        self._parse = parse
        parts = split_path(path)
        self.key = parts[-1] if parts else ""
        self.value: ModelT | None = None

    def _apply(self, raw: Any) -> None:
        if raw is None:
            self.value = None
            return
        try:
            self.value = self._parse(self.key, raw)
        except ValidationError as exc:
            logger.warning("Record %s is malformed: %s", self.path, exc.errors()[:1])
            self.value = None


class SubscriptionRegistry:
    """Arena of subscriptions opened for one viewer session."""

    def __init__(self, store: RemoteStore) -> None:
        self.store = store
        self.generation = 0
        self._subscriptions: list[_Subscription] = []

    def token(self) -> SessionToken:
        return SessionToken(self, self.generation)

    def open_collection(
        self,
        path: str,
        parse: Callable[[str, Any], ModelT | None],
        *,
        query: Query | None = None,
        on_change: Callable[[RemoteCollectionSubscription[ModelT]], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> RemoteCollectionSubscription[ModelT]:
        subscription: RemoteCollectionSubscription[ModelT] = RemoteCollectionSubscription(
            self, path, parse, query=query, on_change=on_change, on_error=on_error
        )
        self._subscriptions.append(subscription)
        subscription._start(self.store)
        return subscription

    def open_record(
        self,
        path: str,
        parse: Callable[[str, Any], ModelT | None],
        *,
        on_change: Callable[[RemoteRecordSubscription[ModelT]], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> RemoteRecordSubscription[ModelT]:
        subscription: RemoteRecordSubscription[ModelT] = RemoteRecordSubscription(
            self, path, parse, on_change=on_change, on_error=on_error
        )
        self._subscriptions.append(subscription)
        subscription._start(self.store)
        return subscription

    def close_all(self) -> None:
        """End the current generation and tear every subscription down."""

        self.generation += 1
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.close()
        logger.debug("Closed %d subscription(s); generation is now %d", len(subscriptions), self.generation)

    @property
    def active_count(self) -> int:
        return len(self._subscriptions)

    def _release(self, subscription: _Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)


__all__ = [
    "RemoteCollectionSubscription",
    "RemoteRecordSubscription",
    "SessionToken",
    "StaleSessionError",
    "SubscriptionRegistry",
    "parse_with",
]
