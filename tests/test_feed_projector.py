"""Tests for feed projection, pagination and head/tail merging."""
from __future__ import annotations

from typing import Any

import pytest

from connectsphere.clients import InMemoryAuth, InMemoryStore, Query
from connectsphere.config import Settings
from connectsphere.schemas import Post, Viewer
from connectsphere.services.feed_service import FeedProjector, project_bookmarks, project_feed
from connectsphere.services.subscriptions import SubscriptionRegistry
from connectsphere.services.sync_client import SyncClient

VIEWER = Viewer(id="viewer")


def _post(index: int, *, owner: str = "author", privacy: str = "public", timestamp: int | None = None) -> dict[str, Any]:
    return {"userId": owner, "content": f"post {index}", "privacy": privacy, "timestamp": index if timestamp is None else timestamp}


def _attach(store: InMemoryStore, page_size: int, viewer: Viewer = VIEWER) -> tuple[FeedProjector, SubscriptionRegistry]:
    registry = SubscriptionRegistry(store)
    projector = FeedProjector(store, viewer, page_size=page_size)
    projector.attach(registry)
    return projector, registry


def _ids(projector: FeedProjector) -> list[str]:
    return [post.id for post in projector.items]


def test_project_feed_dedupes_filters_and_orders_by_timestamp_then_id() -> None:
    posts = [
        Post(id="b", user_id="author", timestamp=5),
        Post(id="a", user_id="author", timestamp=5),
        Post(id="c", user_id="author", timestamp=7),
        Post(id="a", user_id="author", timestamp=5, content="edited"),
        Post(id="hidden", user_id="author", timestamp=9, privacy="private"),
    ]
    projected = project_feed(VIEWER, posts)

    assert [post.id for post in projected] == ["c", "b", "a"]
    assert projected[-1].content == "edited"


@pytest.mark.asyncio
async def test_thirty_public_posts_paginate_into_twenty_five_then_five() -> None:
    store = InMemoryStore({"posts": {f"p{index:02d}": _post(index) for index in range(30)}})
    projector, _ = _attach(store, page_size=25)

    first = projector.page
    assert len(first.items) == 25
    assert first.has_more is True

    second = await projector.load_more()
    assert len(second.items) == 30
    assert {post.id for post in second.items} - {post.id for post in first.items} == {f"p{index:02d}" for index in range(5)}
    assert second.has_more is False


@pytest.mark.asyncio
async def test_pagination_over_tied_timestamps_never_duplicates() -> None:
    store = InMemoryStore({"posts": {f"p{index}": _post(index, timestamp=100) for index in range(7)}})
    projector, _ = _attach(store, page_size=3)

    await projector.load_more()
    await projector.load_more()

    ids = _ids(projector)
    assert ids == ["p6", "p5", "p4", "p3", "p2", "p1", "p0"]
    assert len(ids) == len(set(ids))
    assert projector.has_more is False


@pytest.mark.asyncio
async def test_load_more_auto_continues_past_filtered_pages() -> None:
    posts = {}
    for index in range(20):
        private = 10 <= index <= 16
        posts[f"p{index:02d}"] = _post(index, owner="stranger" if private else "author", privacy="private" if private else "public")
    store = InMemoryStore({"posts": posts})
    projector, _ = _attach(store, page_size=3)

    page = await projector.load_more()

    assert [post.id for post in page.items] == ["p19", "p18", "p17", "p09", "p08", "p07", "p06", "p05"]
    assert page.has_more is True


@pytest.mark.asyncio
async def test_head_window_merge_keeps_pushed_out_posts_and_drops_deleted_ones() -> None:
    store = InMemoryStore({"posts": {f"p{index}": _post(index) for index in range(1, 6)}})
    projector, _ = _attach(store, page_size=3)
    await projector.load_more()
    assert _ids(projector) == ["p5", "p4", "p3", "p2", "p1"]

    await store.set("posts/p6", _post(6))
    assert _ids(projector) == ["p6", "p5", "p4", "p3", "p2", "p1"]

    await store.remove("posts/p5")
    assert _ids(projector) == ["p6", "p4", "p3", "p2", "p1"]


@pytest.mark.asyncio
async def test_empty_head_clears_the_tail() -> None:
    store = InMemoryStore({"posts": {f"p{index}": _post(index) for index in range(1, 5)}})
    projector, _ = _attach(store, page_size=2)
    await projector.load_more()
    assert len(projector.items) == 4

    await store.remove("posts")
    assert projector.items == []
    assert projector.has_more is False


@pytest.mark.asyncio
async def test_viewer_change_recomputes_visibility() -> None:
    store = InMemoryStore({"posts": {"p1": _post(1, privacy="friends"), "p2": _post(2)}})
    projector, _ = _attach(store, page_size=5)
    assert _ids(projector) == ["p2"]

    projector.set_viewer(Viewer(id="viewer", friends=frozenset({"author"})))
    assert _ids(projector) == ["p2", "p1"]

    projector.set_viewer(Viewer(id="viewer", blocked=frozenset({"author"})))
    assert projector.items == []


class _SessionEndingStore(InMemoryStore):
    registry: SubscriptionRegistry | None = None

    async def get(self, path: str, query: Query | None = None) -> Any:
        value = await super().get(path, query)
        if self.registry is not None:
            self.registry.close_all()
        return value


@pytest.mark.asyncio
async def test_pages_fetched_for_an_ended_session_are_discarded() -> None:
    store = _SessionEndingStore({"posts": {f"p{index}": _post(index) for index in range(1, 8)}})
    projector, registry = _attach(store, page_size=3)
    store.registry = registry

    page = await projector.load_more()

    assert [post.id for post in page.items] == ["p7", "p6", "p5"]


def test_bookmarks_reuse_the_feed_pipeline() -> None:
    viewer = Viewer(id="viewer", bookmarks=frozenset({"a", "gone"}))
    posts = [Post(id="a", user_id="x", timestamp=1), Post(id="b", user_id="x", timestamp=2)]
    assert [post.id for post in project_bookmarks(viewer, posts)] == ["a"]


@pytest.mark.asyncio
async def test_deleted_and_edited_tail_posts_follow_the_live_collection() -> None:
    store = InMemoryStore(
        {
            "users": {"viewer": {"name": "Viewer", "handle": "viewer"}},
            "posts": {f"p{index:02d}": _post(index) for index in range(30)},
        }
    )
    client = SyncClient(store, InMemoryAuth("viewer"), Settings(FEED_PAGE_SIZE=25))
    client.start()
    session = client.viewer_session
    assert session is not None
    await session.load_more_feed()
    assert len(session.feed.items) == 30

    await store.remove("posts/p00")
    await store.set("posts/p01/content", "edited")
    await store.set("posts/p02/privacy", "private")

    ids = [post.id for post in session.feed.items]
    assert "p00" not in ids
    assert "p02" not in ids
    assert len(ids) == 28
    assert next(post for post in session.feed.items if post.id == "p01").content == "edited"


@pytest.mark.asyncio
async def test_reconcile_only_recomputes_when_a_tail_post_changed() -> None:
    store = InMemoryStore({"posts": {f"p{index}": _post(index) for index in range(1, 5)}})
    changes: list[int] = []
    projector = FeedProjector(store, VIEWER, page_size=2, on_change=lambda _: changes.append(1))
    projector.attach(SubscriptionRegistry(store))
    await projector.load_more()
    live = {f"p{index}": Post(id=f"p{index}", user_id="author", content=f"post {index}", privacy="public", timestamp=index) for index in range(1, 5)}
    before = len(changes)

    projector.reconcile(live)
    assert len(changes) == before

    del live["p1"]
    projector.reconcile(live)
    assert _ids(projector) == ["p4", "p3", "p2"]
    assert len(changes) == before + 1
