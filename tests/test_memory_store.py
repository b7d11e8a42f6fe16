"""Unit tests for the in-memory realtime store."""
from __future__ import annotations

from typing import Any

import pytest

from connectsphere.clients import Increment, InMemoryStore, Query, StoreReadError, StoreWriteError, apply_query
from connectsphere.clients.push_ids import generate_push_id


def _posts(count: int) -> dict[str, Any]:
    return {f"p{index:02d}": {"userId": "u", "timestamp": index} for index in range(count)}


def test_limit_to_last_keeps_greatest_values_in_ascending_order() -> None:
    window = apply_query(_posts(10), Query(order_by="timestamp", limit_to_last=3))
    assert list(window) == ["p07", "p08", "p09"]


def test_end_at_with_key_bounds_ties_inclusively() -> None:
    value = {
        "a": {"timestamp": 5},
        "b": {"timestamp": 5},
        "c": {"timestamp": 5},
        "d": {"timestamp": 6},
    }
    window = apply_query(value, Query(order_by="timestamp", end_at=5, end_at_key="b", limit_to_last=10))
    assert list(window) == ["a", "b"]


def test_equal_to_filters_and_empty_result_is_none() -> None:
    value = {"u1": {"handle": "ana"}, "u2": {"handle": "bob"}}
    assert list(apply_query(value, Query.matching("handle", "bob"))) == ["u2"]
    assert apply_query(value, Query.matching("handle", "zed")) is None


def test_push_ids_are_ordered_within_one_millisecond() -> None:
    ids = [generate_push_id(now_ms=1_700_000_000_000) for _ in range(50)]
    assert len(set(ids)) == 50
    assert ids == sorted(ids)
    assert all(len(value) == 20 for value in ids)


@pytest.mark.asyncio
async def test_update_is_atomic_and_resolves_increments() -> None:
    store = InMemoryStore({"posts": {"p1": {"comments": 2}}})
    await store.update({"posts/p1/comments": Increment(1), "comments/p1/c1": {"content": "hi"}})

    assert store.snapshot("posts/p1/comments") == 3
    assert store.snapshot("comments/p1/c1") == {"content": "hi"}


@pytest.mark.asyncio
async def test_subscribers_receive_full_snapshots_for_overlapping_writes() -> None:
    store = InMemoryStore()
    seen: list[Any] = []
    unsubscribe = store.subscribe("posts", seen.append)

    await store.set("posts/p1", {"timestamp": 1})
    await store.set("users/u1", {"name": "Ana"})
    await store.remove("posts/p1")
    unsubscribe()
    await store.set("posts/p2", {"timestamp": 2})

    assert seen == [None, {"p1": {"timestamp": 1}}, None]


@pytest.mark.asyncio
async def test_removing_last_child_prunes_empty_branches() -> None:
    store = InMemoryStore({"a": {"b": {"c": 1}}, "keep": 1})
    await store.remove("a/b/c")
    assert store.snapshot() == {"keep": 1}


@pytest.mark.asyncio
async def test_injected_failures() -> None:
    store = InMemoryStore({"users": {"u1": {"name": "Ana"}}})
    errors: list[Exception] = []
    store.subscribe("users/u1", lambda value: None, errors.append)

    store.fail_reads("users/u1")
    assert len(errors) == 1 and isinstance(errors[0], StoreReadError)
    assert store.listener_count == 0
    with pytest.raises(StoreReadError):
        await store.get("users/u1")

    store.fail_writes("posts")
    with pytest.raises(StoreWriteError):
        await store.set("posts/p1", {"timestamp": 1})
    assert store.snapshot("posts") is None

    store.restore()
    assert await store.get("users/u1") == {"name": "Ana"}
