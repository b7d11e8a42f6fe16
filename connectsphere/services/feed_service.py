"""Projection of the raw post stream into the viewer's paginated feed."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from ..clients.store import Query, RemoteStore
from ..schemas import FeedPage, Post, Viewer
from .privacy import is_post_visible
from .subscriptions import RemoteCollectionSubscription, SessionToken, SubscriptionRegistry, parse_with

logger = logging.getLogger(__name__)

POSTS_PATH = "posts"

_parse_post = parse_with(Post)


def _sort_key(post: Post) -> tuple[int, str]:
    return (post.timestamp, post.id)


def project_feed(viewer: Viewer, posts: Iterable[Post]) -> list[Post]:
    """Visible posts, unique by id, newest first with ties broken by id descending.

    When an id appears more than once the last occurrence wins.
    """

    unique: dict[str, Post] = {}
    for post in posts:
        unique[post.id] = post
    visible = [post for post in unique.values() if is_post_visible(viewer, post)]
    visible.sort(key=_sort_key, reverse=True)
    return visible


def project_profile_posts(viewer: Viewer, posts: Iterable[Post], owner_id: str) -> list[Post]:
    return project_feed(viewer, (post for post in posts if post.user_id == owner_id))


def project_bookmarks(viewer: Viewer, posts: Iterable[Post]) -> list[Post]:
    return project_feed(viewer, (post for post in posts if post.id in viewer.bookmarks))


def _parse_page(raw: Any) -> dict[str, Post]:
    records: dict[str, Post] = {}
    if not isinstance(raw, dict):
        return records
    for key, value in raw.items():
        try:
            post = _parse_post(str(key), value)
        except ValidationError:
            logger.warning("Skipping malformed post %s", key)
            continue
        if post is not None:
            records[post.id] = post
    return records


class FeedProjector:
    """Keeps the projected feed in step with the live head window and older pages.

    The head is the live ``limit_to_last(page_size)`` subscription. Older pages
    fetched by :meth:`load_more` form the tail. A post that leaves the head
    because newer posts pushed it out of the window moves to the tail; a post
    that vanishes from inside the head's range was deleted.
    Edits and deletes of tail posts arrive through :meth:`reconcile`, which is
    fed the live unwindowed collection.
    """

    def __init__(
        self,
        store: RemoteStore,
        viewer: Viewer,
        *,
        page_size: int = 25,
        max_auto_pages: int = 10,
        path: str = POSTS_PATH,
        on_change: Callable[["FeedProjector"], None] | None = None,
    ) -> None:
        self._store = store
        self.viewer = viewer
        self.page_size = page_size
        self.max_auto_pages = max_auto_pages
        self.path = path
        self._on_change = on_change
        self._head: dict[str, Post] = {}
        self._tail: dict[str, Post] = {}
        self._items: list[Post] = []
        self._head_full = False
        self._exhausted = False
        self._closed = False
        self._token: SessionToken | None = None
        self._subscription: RemoteCollectionSubscription[Post] | None = None
        self._lock = asyncio.Lock()

    # Inputs ----------------------------------------------------------------

    def attach(self, registry: SubscriptionRegistry, *, on_error: Callable[[Exception], None] | None = None) -> None:
        self._token = registry.token()
        self._subscription = registry.open_collection(
            self.path,
            _parse_post,
            query=Query(order_by="timestamp", limit_to_last=self.page_size),
            on_change=self._on_head,
            on_error=on_error,
        )

    def _on_head(self, subscription: RemoteCollectionSubscription[Post]) -> None:
        self.apply_head(subscription.items, raw_count=subscription.raw_count)

    def apply_head(self, head: dict[str, Post], *, raw_count: int | None = None) -> None:
        new_head = dict(head)
        if new_head:
            oldest = min(_sort_key(post) for post in new_head.values())
            for post_id, post in self._head.items():
                if post_id not in new_head and _sort_key(post) < oldest:
                    self._tail[post_id] = post
            for post_id in new_head:
                self._tail.pop(post_id, None)
        else:
            # an empty window means the collection itself is empty
            self._tail.clear()
        self._head = new_head
        count = len(new_head) if raw_count is None else raw_count
        self._head_full = count >= self.page_size
        self._recompute()

    def reconcile(self, live: Mapping[str, Post]) -> None:
        """Refresh tail posts from the live collection; ids missing from it were deleted."""

        if not self._tail:
            return
        tail = {post_id: live[post_id] for post_id in self._tail if post_id in live}
        if tail == self._tail:
            return
        self._tail = tail
        self._recompute()

    def set_viewer(self, viewer: Viewer) -> None:
        if viewer == self.viewer:
            return
        self.viewer = viewer
        self._recompute()

    def _recompute(self) -> None:
        self._items = project_feed(self.viewer, [*self._tail.values(), *self._head.values()])
        if self._on_change is not None:
            self._on_change(self)

    # Outputs ---------------------------------------------------------------

    @property
    def items(self) -> list[Post]:
        return list(self._items)

    @property
    def has_more(self) -> bool:
        return self._head_full and not self._exhausted

    @property
    def page(self) -> FeedPage:
        return FeedPage(items=self.items, has_more=self.has_more)

    def _cursor(self) -> tuple[int, str] | None:
        loaded = [*self._head.values(), *self._tail.values()]
        if not loaded:
            return None
        return min(_sort_key(post) for post in loaded)

    # Pagination ------------------------------------------------------------

    async def load_more(self) -> FeedPage:
        """Fetch older windows until a page of newly visible posts arrives or the store runs dry."""

        async with self._lock:
            token = self._token
            gained = 0
            for _ in range(self.max_auto_pages):
                if not self.has_more or self._closed:
                    break
                cursor = self._cursor()
                if cursor is None:
                    break
                limit = self.page_size + 1  # the cursor record itself comes back again
                raw = await self._store.get(
                    self.path,
                    Query(order_by="timestamp", limit_to_last=limit, end_at=cursor[0], end_at_key=cursor[1]),
                )
                if self._closed or (token is not None and not token.is_current):
                    logger.debug("Discarding feed page fetched for an ended session")
                    return self.page

                records = _parse_page(raw)
                fresh = {post_id: post for post_id, post in records.items() if post_id not in self._head and post_id not in self._tail}
                before = {post.id for post in self._items}
                self._tail.update(fresh)
                raw_count = len(raw) if isinstance(raw, dict) else 0
                if raw_count < limit:
                    self._exhausted = True
                self._recompute()
                gained += len({post.id for post in self._items} - before)

                if self._exhausted or gained >= self.page_size:
                    break
                if not fresh:
                    logger.warning("Feed cursor did not advance at %s; stopping", cursor)
                    break
            return self.page

    def close(self) -> None:
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None


__all__ = [
    "POSTS_PATH",
    "FeedProjector",
    "project_bookmarks",
    "project_feed",
    "project_profile_posts",
]
