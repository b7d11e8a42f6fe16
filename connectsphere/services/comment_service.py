"""Two-level comment trees with refetch-on-mutation consistency."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from ..clients.store import Increment, Query, RemoteStore
from ..schemas import Comment, CommentNode, CommentTree, NotificationKind, ReactionKind, Viewer
from .notification_service import notification_update
from .post_service import load_post
from .subscriptions import SessionToken, parse_with

logger = logging.getLogger(__name__)

_parse_comment = parse_with(Comment)


class CommentsDisabledError(RuntimeError):
    """Raised when commenting on a post whose owner turned comments off."""


class CommentNotFoundError(LookupError):
    """Raised when a mutation targets a comment the tree does not know."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _chronological(comment: Comment) -> tuple[int, str]:
    return (comment.timestamp, comment.id)


def comments_path(post_id: str) -> str:
    return f"comments/{post_id}"


def replies_path(top_level_id: str) -> str:
    return f"replies/{top_level_id}"


def build_comment_tree(records: Iterable[Comment]) -> list[CommentNode]:
    """Assemble a flat list into top-level comments with their flattened replies.

    A reply to a reply is attached to its top-level ancestor. Replies whose
    ancestry cannot be resolved to a top-level comment are dropped.
    """

    by_id = {record.id: record for record in records}
    top_level = [comment for comment in by_id.values() if comment.is_top_level]
    replies: dict[str, list[Comment]] = {comment.id: [] for comment in top_level}

    for comment in by_id.values():
        if comment.is_top_level:
            continue
        seen = {comment.id}
        ancestor = by_id.get(comment.parent_comment_id or "")
        while ancestor is not None and not ancestor.is_top_level and ancestor.id not in seen:
            seen.add(ancestor.id)
            ancestor = by_id.get(ancestor.parent_comment_id or "")
        if ancestor is None or not ancestor.is_top_level:
            logger.debug("Dropping orphaned reply %s", comment.id)
            continue
        replies[ancestor.id].append(comment)

    top_level.sort(key=_chronological, reverse=True)
    return [
        CommentNode(
            comment=comment,
            replies=sorted(replies[comment.id], key=_chronological),
            replies_loaded=bool(replies[comment.id]),
        )
        for comment in top_level
    ]


def _parse_many(raw: Any) -> list[Comment]:
    comments: list[Comment] = []
    if not isinstance(raw, dict):
        return comments
    for key, value in raw.items():
        try:
            comment = _parse_comment(str(key), value)
        except ValidationError:
            logger.warning("Skipping malformed comment %s", key)
            continue
        if comment is not None:
            comments.append(comment)
    return comments


class CommentTreeBuilder:
    """Lazily loaded comment tree for one post.

    Top-level comments are fetched newest-first a page at a time; replies are
    fetched per top-level comment on demand. Mutations never patch local state:
    each one writes atomically and re-fetches the level it touched so the
    denormalized counters always come from the store.
    """

    def __init__(
        self,
        store: RemoteStore,
        post_id: str,
        *,
        page_size: int = 20,
        token: SessionToken | None = None,
        on_change: Callable[["CommentTreeBuilder"], None] | None = None,
    ) -> None:
        self._store = store
        self.post_id = post_id
        self.page_size = page_size
        self._token = token
        self._on_change = on_change
        self._window = page_size
        self._top: list[Comment] = []
        self._replies: dict[str, list[Comment]] = {}
        self._has_more = False
        self._top_seq = 0
        self._reply_seq: dict[str, int] = {}
        self._closed = False
        self.loaded = False

    # State -----------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def _is_live(self) -> bool:
        return not self._closed and (self._token is None or self._token.is_current)

    @property
    def tree(self) -> CommentTree:
        items = [
            CommentNode(
                comment=comment,
                replies=list(self._replies.get(comment.id, [])),
                replies_loaded=comment.id in self._replies,
            )
            for comment in self._top
        ]
        return CommentTree(post_id=self.post_id, items=items, has_more=self._has_more)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    def _find(self, comment_id: str) -> Comment | None:
        for comment in self._top:
            if comment.id == comment_id:
                return comment
        for replies in self._replies.values():
            for reply in replies:
                if reply.id == comment_id:
                    return reply
        return None

    def _record_path(self, comment: Comment) -> str:
        if comment.is_top_level:
            return f"{comments_path(self.post_id)}/{comment.id}"
        return f"{replies_path(comment.parent_comment_id or '')}/{comment.id}"

    # Fetching --------------------------------------------------------------

    async def _fetch_top_level(self) -> None:
        self._top_seq += 1
        seq = self._top_seq
        raw = await self._store.get(
            comments_path(self.post_id),
            Query(order_by="timestamp", limit_to_last=self._window + 1),
        )
        if seq != self._top_seq or not self._is_live():
            logger.debug("Discarding superseded comment page for post %s", self.post_id)
            return
        comments = sorted(_parse_many(raw), key=_chronological, reverse=True)
        raw_count = len(raw) if isinstance(raw, dict) else 0
        self._has_more = raw_count > self._window
        self.loaded = True
        self._top = [comment for comment in comments if comment.is_top_level][: self._window]
        self._changed()

    async def _fetch_replies(self, top_level_id: str) -> None:
        seq = self._reply_seq.get(top_level_id, 0) + 1
        self._reply_seq[top_level_id] = seq
        raw = await self._store.get(replies_path(top_level_id), Query(order_by="timestamp"))
        if seq != self._reply_seq.get(top_level_id) or not self._is_live():
            logger.debug("Discarding superseded replies for comment %s", top_level_id)
            return
        self._replies[top_level_id] = sorted(_parse_many(raw), key=_chronological)
        self._changed()

    async def load(self) -> CommentTree:
        self._window = self.page_size
        await self._fetch_top_level()
        return self.tree

    async def load_more(self) -> CommentTree:
        if self._has_more:
            self._window += self.page_size
            await self._fetch_top_level()
        return self.tree

    async def expand_replies(self, top_level_id: str) -> list[Comment]:
        await self._fetch_replies(top_level_id)
        return list(self._replies.get(top_level_id, []))

    # Mutations -------------------------------------------------------------

    def _ensure_current(self) -> None:
        if self._token is not None:
            self._token.ensure_current()

    async def add_comment(self, viewer: Viewer, content: str) -> str:
        post = await load_post(self._store, self.post_id)
        if post.comments_disabled:
            raise CommentsDisabledError("Comments are turned off for this post")
        self._ensure_current()

        comment_id = self._store.push_id()
        now = _now_ms()
        updates: dict[str, Any] = {
            f"{comments_path(self.post_id)}/{comment_id}": {
                "postId": self.post_id,
                "userId": viewer.id,
                "content": content,
                "timestamp": now,
            },
            f"posts/{self.post_id}/comments": Increment(1),
        }
        if post.user_id != viewer.id:
            updates.update(notification_update(self._store, post.user_id, viewer.id, NotificationKind.COMMENT, post_id=self.post_id, now_ms=now))
        await self._store.update(updates)

        self._window += 1
        await self._fetch_top_level()
        return comment_id

    async def add_reply(self, viewer: Viewer, target_id: str, content: str) -> str:
        target = self._find(target_id)
        if target is None:
            raise CommentNotFoundError(f"Comment {target_id} is not loaded")
        post = await load_post(self._store, self.post_id)
        if post.comments_disabled:
            raise CommentsDisabledError("Comments are turned off for this post")
        self._ensure_current()

        top_level_id = target.id if target.is_top_level else (target.parent_comment_id or "")
        reply_to = None if target.is_top_level else target.id
        reply_id = self._store.push_id()
        now = _now_ms()
        record: dict[str, Any] = {
            "postId": self.post_id,
            "userId": viewer.id,
            "content": content,
            "parentCommentId": top_level_id,
            "timestamp": now,
        }
        if reply_to is not None:
            record["replyToCommentId"] = reply_to
        updates: dict[str, Any] = {
            f"{replies_path(top_level_id)}/{reply_id}": record,
            f"{comments_path(self.post_id)}/{top_level_id}/replyCount": Increment(1),
            f"posts/{self.post_id}/comments": Increment(1),
        }
        if target.user_id != viewer.id:
            updates.update(notification_update(self._store, target.user_id, viewer.id, NotificationKind.COMMENT, post_id=self.post_id, now_ms=now))
        await self._store.update(updates)

        # the reply count lives on the top-level record
        await self._fetch_replies(top_level_id)
        await self._fetch_top_level()
        return reply_id

    async def edit_comment(self, viewer: Viewer, comment_id: str, content: str) -> None:
        comment = self._find(comment_id)
        if comment is None:
            raise CommentNotFoundError(f"Comment {comment_id} is not loaded")
        if comment.user_id != viewer.id:
            raise PermissionError("Only the author can edit a comment")
        self._ensure_current()
        await self._store.set(f"{self._record_path(comment)}/content", content)
        await self._refetch_level(comment)

    async def delete_comment(self, viewer: Viewer, comment_id: str) -> None:
        comment = self._find(comment_id)
        if comment is None:
            raise CommentNotFoundError(f"Comment {comment_id} is not loaded")
        if comment.user_id != viewer.id and not viewer.is_admin:
            raise PermissionError("Only the author can delete a comment")
        self._ensure_current()

        updates: dict[str, Any] = {self._record_path(comment): None}
        if comment.is_top_level:
            removed = 1 + comment.reply_count
            updates[replies_path(comment.id)] = None
            self._replies.pop(comment.id, None)
            self._window = max(self.page_size, self._window - 1)
        else:
            removed = 1
            updates[f"{comments_path(self.post_id)}/{comment.parent_comment_id}/replyCount"] = Increment(-1)
        updates[f"posts/{self.post_id}/comments"] = Increment(-removed)
        await self._store.update(updates)

        if not comment.is_top_level:
            await self._fetch_replies(comment.parent_comment_id or "")
        await self._fetch_top_level()

    async def toggle_reaction(self, viewer: Viewer, comment_id: str, kind: ReactionKind = ReactionKind.LIKE) -> None:
        comment = self._find(comment_id)
        if comment is None:
            raise CommentNotFoundError(f"Comment {comment_id} is not loaded")
        self._ensure_current()
        active = viewer.id in comment.reactions.get(kind.value, frozenset())
        await self._store.set(
            f"{self._record_path(comment)}/reactions/{kind.value}/{viewer.id}",
            None if active else True,
        )
        await self._refetch_level(comment)

    async def _refetch_level(self, comment: Comment) -> None:
        if comment.is_top_level:
            await self._fetch_top_level()
        else:
            await self._fetch_replies(comment.parent_comment_id or "")

    def close(self) -> None:
        self._closed = True
        self._top_seq += 1
        self._reply_seq.clear()


__all__ = [
    "CommentNotFoundError",
    "CommentTreeBuilder",
    "CommentsDisabledError",
    "build_comment_tree",
    "comments_path",
    "replies_path",
]
