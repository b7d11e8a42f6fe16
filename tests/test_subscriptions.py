"""Tests for session-scoped subscriptions and the generation guard."""
from __future__ import annotations

from typing import Any

import pytest

from connectsphere.clients import InMemoryStore
from connectsphere.schemas import Post, UserProfile
from connectsphere.services.subscriptions import StaleSessionError, SubscriptionRegistry, parse_with


class _ManualStore(InMemoryStore):
    """Store whose deliveries are queued so tests can fire them late."""

    def __init__(self) -> None:
        super().__init__()
        self.callbacks: list[Any] = []

    def subscribe(self, path, on_value, on_error=None, query=None):  # type: ignore[override]
        self.callbacks.append(on_value)
        return lambda: None


@pytest.mark.asyncio
async def test_collection_is_fully_replaced_and_skips_malformed_records() -> None:
    store = InMemoryStore({"posts": {"p1": {"userId": "a", "timestamp": 1}}})
    registry = SubscriptionRegistry(store)
    changes: list[int] = []
    subscription = registry.open_collection("posts", parse_with(Post), on_change=lambda sub: changes.append(len(sub.items)))

    assert subscription.loaded
    assert list(subscription.items) == ["p1"]

    await store.set("posts/p2", {"timestamp": 2})  # missing userId
    await store.set("posts/p3", {"userId": "b", "timestamp": 3})
    assert sorted(subscription.items) == ["p1", "p3"]
    assert subscription.raw_count == 3

    await store.remove("posts")
    assert subscription.items == {}
    assert changes[-1] == 0


def test_record_subscription_reports_missing_records_as_none() -> None:
    store = InMemoryStore()
    registry = SubscriptionRegistry(store)
    record = registry.open_record("users/u1", parse_with(UserProfile))
    assert record.loaded and record.value is None and record.key == "u1"


def test_close_all_bumps_generation_and_drops_late_snapshots() -> None:
    store = _ManualStore()
    registry = SubscriptionRegistry(store)
    subscription = registry.open_collection("posts", parse_with(Post))
    token = registry.token()

    registry.close_all()
    store.callbacks[0]({"p1": {"userId": "a"}})

    assert registry.generation == 1
    assert registry.active_count == 0
    assert subscription.items == {}
    assert not subscription.loaded
    assert not token.is_current
    with pytest.raises(StaleSessionError):
        token.ensure_current()


def test_closing_one_subscription_unsubscribes_from_store() -> None:
    store = InMemoryStore()
    registry = SubscriptionRegistry(store)
    first = registry.open_collection("posts", parse_with(Post))
    registry.open_collection("users", parse_with(UserProfile))

    first.close()

    assert registry.active_count == 1
    assert store.listener_count == 1


def test_read_errors_close_the_subscription_and_reach_the_error_hook() -> None:
    store = InMemoryStore()
    registry = SubscriptionRegistry(store)
    errors: list[Exception] = []
    subscription = registry.open_record("users/u1", parse_with(UserProfile), on_error=errors.append)

    store.fail_reads("users")

    assert len(errors) == 1
    assert subscription.closed
    assert registry.active_count == 0
