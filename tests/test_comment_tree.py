"""Tests for comment tree assembly and the refetching comment builder."""
from __future__ import annotations

import pytest

from connectsphere.clients import InMemoryStore
from connectsphere.schemas import Comment, Viewer
from connectsphere.services.comment_service import (
    CommentNotFoundError,
    CommentsDisabledError,
    CommentTreeBuilder,
    build_comment_tree,
)
from connectsphere.services.post_service import PostNotFoundError

VIEWER = Viewer(id="viewer")


def _seed(**post_fields: object) -> InMemoryStore:
    return InMemoryStore(
        {
            "posts": {"p1": {"userId": "owner", "content": "hello", "timestamp": 1, "comments": 1, **post_fields}},
            "comments": {"p1": {"c1": {"postId": "p1", "userId": "alice", "content": "first", "timestamp": 10}}},
        }
    )


def test_reply_to_a_reply_is_flattened_under_its_top_level_comment() -> None:
    records = [
        Comment(id="c1", user_id="a", timestamp=1),
        Comment(id="c2", user_id="b", parent_comment_id="c1", timestamp=2),
        Comment(id="c3", user_id="c", parent_comment_id="c2", timestamp=3),
        Comment(id="orphan", user_id="d", parent_comment_id="missing", timestamp=4),
    ]

    tree = build_comment_tree(records)

    assert [node.comment.id for node in tree] == ["c1"]
    assert [reply.id for reply in tree[0].replies] == ["c2", "c3"]
    assert tree[0].replies_loaded is True


def test_top_level_is_newest_first_and_cycles_are_dropped() -> None:
    records = [
        Comment(id="old", user_id="a", timestamp=1),
        Comment(id="new", user_id="a", timestamp=5),
        Comment(id="x", user_id="b", parent_comment_id="y", timestamp=2),
        Comment(id="y", user_id="b", parent_comment_id="x", timestamp=3),
    ]

    tree = build_comment_tree(records)

    assert [node.comment.id for node in tree] == ["new", "old"]
    assert all(node.replies == [] for node in tree)
    assert all(node.replies_loaded is False for node in tree)


@pytest.mark.asyncio
async def test_add_comment_increments_count_and_refetches() -> None:
    store = _seed()
    builder = CommentTreeBuilder(store, "p1", page_size=5)
    await builder.load()

    comment_id = await builder.add_comment(VIEWER, "nice")

    assert await store.get("posts/p1/comments") == 2
    assert [node.comment.id for node in builder.tree.items] == [comment_id, "c1"]
    notifications = await store.get("notifications/owner")
    assert [record["type"] for record in notifications.values()] == ["comment"]


@pytest.mark.asyncio
async def test_replying_to_a_reply_records_the_answered_comment() -> None:
    store = _seed()
    builder = CommentTreeBuilder(store, "p1", page_size=5)
    await builder.load()

    first = await builder.add_reply(VIEWER, "c1", "agreed")
    second = await builder.add_reply(Viewer(id="alice"), first, "thanks")

    stored = await store.get(f"replies/c1/{second}")
    assert stored["parentCommentId"] == "c1"
    assert stored["replyToCommentId"] == first
    assert await store.get("comments/p1/c1/replyCount") == 2
    assert await store.get("posts/p1/comments") == 3

    node = builder.tree.items[0]
    assert node.comment.reply_count == 2
    assert [reply.id for reply in node.replies] == [first, second]


@pytest.mark.asyncio
async def test_load_more_grows_the_window() -> None:
    store = InMemoryStore(
        {
            "posts": {"p1": {"userId": "owner", "timestamp": 1}},
            "comments": {"p1": {f"c{index}": {"userId": "a", "timestamp": index} for index in range(5)}},
        }
    )
    builder = CommentTreeBuilder(store, "p1", page_size=2)

    first = await builder.load()
    assert [node.comment.id for node in first.items] == ["c4", "c3"]
    assert first.has_more is True

    await builder.load_more()
    more = await builder.load_more()
    assert [node.comment.id for node in more.items] == ["c4", "c3", "c2", "c1", "c0"]
    assert more.has_more is False


@pytest.mark.asyncio
async def test_disabled_comments_reject_new_comments() -> None:
    store = _seed(commentsDisabled=True)
    builder = CommentTreeBuilder(store, "p1")
    await builder.load()

    with pytest.raises(CommentsDisabledError):
        await builder.add_comment(VIEWER, "hello?")
    assert await store.get("posts/p1/comments") == 1


@pytest.mark.asyncio
async def test_missing_targets_raise() -> None:
    builder = CommentTreeBuilder(_seed(), "p1")
    await builder.load()
    with pytest.raises(CommentNotFoundError):
        await builder.add_reply(VIEWER, "nope", "hi")

    missing = CommentTreeBuilder(InMemoryStore(), "ghost")
    with pytest.raises(PostNotFoundError):
        await missing.add_comment(VIEWER, "hi")


@pytest.mark.asyncio
async def test_only_the_author_edits_and_delete_adjusts_counts() -> None:
    store = _seed()
    builder = CommentTreeBuilder(store, "p1")
    await builder.load()
    await builder.add_reply(VIEWER, "c1", "reply")

    with pytest.raises(PermissionError):
        await builder.edit_comment(VIEWER, "c1", "hijacked")

    await builder.edit_comment(Viewer(id="alice"), "c1", "edited")
    assert builder.tree.items[0].comment.content == "edited"

    await builder.delete_comment(Viewer(id="alice"), "c1")
    assert builder.tree.items == []
    assert await store.get("replies/c1") is None
    assert await store.get("posts/p1/comments") == 0


@pytest.mark.asyncio
async def test_closed_builder_ignores_late_results() -> None:
    store = _seed()
    builder = CommentTreeBuilder(store, "p1")
    builder.close()

    tree = await builder.load()

    assert builder.closed is True
    assert builder.loaded is False
    assert tree.items == []
