"""Write-side helpers for posts, reactions and bookmarks."""
from __future__ import annotations

import logging
import re
import time
from typing import Any, Iterable

from ..clients.media_upload import media_kind_for
from ..clients.store import Query, RemoteStore
from ..schemas import MediaAttachment, NotificationKind, Post, PostCreate, ReactionKind, Viewer
from .feed_service import POSTS_PATH
from .notification_service import notification_update
from .subscriptions import SessionToken, parse_with

logger = logging.getLogger(__name__)

_parse_post = parse_with(Post)
_MENTION_PATTERN = re.compile(r"(?<![\w@])@([A-Za-z0-9_]{3,30})")


class PostNotFoundError(LookupError):
    """Raised when a post id does not resolve to a stored record."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def extract_mentions(content: str) -> list[str]:
    seen: list[str] = []
    for match in _MENTION_PATTERN.finditer(content or ""):
        handle = match.group(1).lower()
        if handle not in seen:
            seen.append(handle)
    return seen


async def load_post(store: RemoteStore, post_id: str) -> Post:
    raw = await store.get(f"{POSTS_PATH}/{post_id}")
    post = _parse_post(post_id, raw) if raw is not None else None
    if post is None:
        raise PostNotFoundError(f"Post {post_id} not found")
    return post


def _require_owner(viewer: Viewer, post: Post) -> None:
    if post.user_id != viewer.id and not viewer.is_admin:
        raise PermissionError("Only the author can change this post")


async def _mention_updates(store: RemoteStore, viewer: Viewer, post_id: str, content: str, now: int) -> dict[str, Any]:
    updates: dict[str, Any] = {}
    for handle in extract_mentions(content):
        matches = await store.get("users", Query.matching("handle", handle))
        if not isinstance(matches, dict):
            continue
        for user_id in matches:
            if user_id == viewer.id or user_id in viewer.blocked:
                continue
            updates.update(notification_update(store, user_id, viewer.id, NotificationKind.MENTION, post_id=post_id, now_ms=now))
    return updates


async def create_post(
    store: RemoteStore,
    token: SessionToken,
    viewer: Viewer,
    payload: PostCreate,
    uploads: Iterable[tuple[bytes, str]] = (),
) -> str:
    """Upload attachments, then write the post and any mention notifications in one update."""

    media = list(payload.media)
    for data, content_type in uploads:
        kind = media_kind_for(content_type)
        url = await store.upload_binary(data, f"{POSTS_PATH}/{viewer.id}", content_type)
        media.append(MediaAttachment(url=url, kind=kind))
    token.ensure_current()

    if not payload.content.strip() and not media:
        raise ValueError("A post needs text or media")

    post_id = store.push_id()
    now = _now_ms()
    record: dict[str, Any] = {
        "userId": viewer.id,
        "content": payload.content,
        "privacy": payload.privacy.value,
        "timestamp": now,
        "comments": 0,
    }
    if media:
        record["media"] = [attachment.model_dump(mode="json") for attachment in media]
    if payload.tag:
        record["tag"] = payload.tag

    updates: dict[str, Any] = {f"{POSTS_PATH}/{post_id}": record}
    updates.update(await _mention_updates(store, viewer, post_id, payload.content, now))
    token.ensure_current()
    await store.update(updates)
    logger.info("Created post %s for %s", post_id, viewer.id)
    return post_id


async def edit_post(store: RemoteStore, viewer: Viewer, post_id: str, content: str) -> None:
    post = await load_post(store, post_id)
    _require_owner(viewer, post)
    await store.set(f"{POSTS_PATH}/{post_id}/content", content)


async def delete_post(store: RemoteStore, viewer: Viewer, post_id: str) -> None:
    """Remove the post together with its comments and their reply lists."""

    post = await load_post(store, post_id)
    _require_owner(viewer, post)
    comments = await store.get(f"comments/{post_id}")
    updates: dict[str, Any] = {f"{POSTS_PATH}/{post_id}": None, f"comments/{post_id}": None}
    if isinstance(comments, dict):
        for comment_id in comments:
            updates[f"replies/{comment_id}"] = None
    await store.update(updates)


async def toggle_reaction(
    store: RemoteStore,
    viewer: Viewer,
    post_id: str,
    kind: ReactionKind = ReactionKind.LIKE,
) -> str | None:
    """Set, switch or clear the viewer's reaction; returns the reaction now held."""

    post = await load_post(store, post_id)
    current = post.reaction_of(viewer.id)
    updates: dict[str, Any] = {}
    if current is not None:
        updates[f"{POSTS_PATH}/{post_id}/reactions/{current}/{viewer.id}"] = None
    result: str | None = None
    if current != kind.value:
        updates[f"{POSTS_PATH}/{post_id}/reactions/{kind.value}/{viewer.id}"] = True
        result = kind.value
        if current is None and post.user_id != viewer.id:
            updates.update(notification_update(store, post.user_id, viewer.id, NotificationKind.LIKE, post_id=post_id))
    await store.update(updates)
    return result


async def toggle_bookmark(store: RemoteStore, viewer: Viewer, post_id: str) -> bool:
    saved = post_id not in viewer.bookmarks
    await store.set(f"users/{viewer.id}/bookmarks/{post_id}", True if saved else None)
    return saved


async def set_comments_disabled(store: RemoteStore, viewer: Viewer, post_id: str, disabled: bool) -> None:
    post = await load_post(store, post_id)
    _require_owner(viewer, post)
    await store.set(f"{POSTS_PATH}/{post_id}/commentsDisabled", disabled or None)


__all__ = [
    "PostNotFoundError",
    "create_post",
    "delete_post",
    "edit_post",
    "extract_mentions",
    "load_post",
    "set_comments_disabled",
    "toggle_bookmark",
    "toggle_reaction",
]
