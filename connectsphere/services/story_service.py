"""Business logic for ephemeral stories."""
from __future__ import annotations

import time
from typing import Iterable, Mapping

from ..clients.store import RemoteStore
from ..constants import STORY_WINDOW_MS
from ..schemas import Story, StoryGroup, UserProfile, Viewer
from .privacy import is_story_active, is_story_visible

STORIES_PATH = "stories"


def _now_ms() -> int:
    return int(time.time() * 1000)


def project_story_groups(
    viewer: Viewer,
    stories: Iterable[Story],
    users: Mapping[str, UserProfile],
    now_ms: int | None = None,
    window_ms: int = STORY_WINDOW_MS,
) -> list[StoryGroup]:
    """Group active, visible stories by owner.

    The viewer's own group comes first, then groups with unviewed stories,
    then everything else; ties go to the group with the newest story.
    """

    now = _now_ms() if now_ms is None else now_ms
    grouped: dict[str, list[Story]] = {}
    for story in stories:
        owner = users.get(story.user_id)
        if owner is None:
            continue
        if not is_story_active(story, now, window_ms) or not is_story_visible(viewer, story, owner):
            continue
        grouped.setdefault(story.user_id, []).append(story)

    groups: list[StoryGroup] = []
    for owner_id, owned in grouped.items():
        owned.sort(key=lambda story: (story.timestamp, story.id))
        all_viewed = all(viewer.id in story.views for story in owned)
        groups.append(StoryGroup(user=users[owner_id], stories=owned, all_viewed=all_viewed))

    def _rank(group: StoryGroup) -> tuple[int, int, int]:
        own = 0 if group.user.id == viewer.id else 1
        seen = 1 if group.all_viewed else 0
        return (own, seen, -group.stories[-1].timestamp)

    groups.sort(key=_rank)
    return groups


async def create_story(
    store: RemoteStore,
    viewer: Viewer,
    data: bytes,
    content_type: str,
    *,
    now_ms: int | None = None,
) -> Story:
    image_url = await store.upload_binary(data, f"stories/{viewer.id}", content_type)
    story_id = store.push_id()
    story = Story(id=story_id, user_id=viewer.id, image_url=image_url, timestamp=now_ms or _now_ms())
    record = story.model_dump(by_alias=True, exclude={"id", "views", "likes"})
    await store.set(f"{STORIES_PATH}/{story_id}", record)
    return story


async def mark_story_viewed(store: RemoteStore, viewer: Viewer, story: Story) -> None:
    if story.user_id == viewer.id or viewer.id in story.views:
        return
    await store.set(f"{STORIES_PATH}/{story.id}/views/{viewer.id}", True)


async def toggle_story_like(store: RemoteStore, viewer: Viewer, story: Story) -> bool:
    """Flip the viewer's like and return whether the story is now liked."""

    liked = viewer.id not in story.likes
    await store.set(f"{STORIES_PATH}/{story.id}/likes/{viewer.id}", True if liked else None)
    return liked


__all__ = [
    "STORIES_PATH",
    "create_story",
    "mark_story_viewed",
    "project_story_groups",
    "toggle_story_like",
]
