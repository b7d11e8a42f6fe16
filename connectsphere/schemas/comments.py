"""Schemas for post comments and the two-level comment tree."""
from __future__ import annotations

from pydantic import Field

from .base import IdSet, StoreRecord, ViewModel


class Comment(StoreRecord):
    """Comment record.

    Top-level comments live at ``comments/{post_id}/{id}``; replies live at
    ``replies/{top_level_id}/{id}`` and always point ``parent_comment_id`` at
    the top-level comment. ``reply_to_comment_id`` remembers the reply that was
    actually answered when a reply-to-a-reply got flattened.
    """

    id: str
    post_id: str = ""
    user_id: str
    content: str = ""
    parent_comment_id: str | None = None
    reply_to_comment_id: str | None = None
    reply_count: int = 0
    reactions: dict[str, IdSet] = Field(default_factory=dict)
    timestamp: int = 0

    @property
    def is_top_level(self) -> bool:
        return not self.parent_comment_id


class CommentNode(ViewModel):
    comment: Comment
    replies: list[Comment] = Field(default_factory=list)
    replies_loaded: bool = False


class CommentTree(ViewModel):
    post_id: str
    items: list[CommentNode] = Field(default_factory=list)
    has_more: bool = False


class CommentCreate(ViewModel):
    content: str = Field(..., min_length=1, max_length=2000)


__all__ = ["Comment", "CommentNode", "CommentTree", "CommentCreate"]
