"""Visibility rules shared by every projection.

Pure functions only: the answer depends on the viewer snapshot passed in, so
a post or profile can change visibility between two projection passes when
the viewer's friend or block set changes.
"""
from __future__ import annotations

from ..constants import STORY_WINDOW_MS
from ..schemas import Post, PrivacyLevel, Story, UserProfile, Viewer


def resolve_privacy(post: Post) -> PrivacyLevel:
    """Absent or legacy privacy resolves to public."""

    return post.privacy or PrivacyLevel.PUBLIC


def is_post_visible(viewer: Viewer, post: Post) -> bool:
    if post.user_id == viewer.id:
        return True
    if post.user_id in viewer.blocked:
        return False
    privacy = resolve_privacy(post)
    if privacy == PrivacyLevel.PUBLIC:
        return True
    if privacy == PrivacyLevel.FRIENDS:
        return post.user_id in viewer.friends
    return False


def is_user_visible(viewer: Viewer, user: UserProfile) -> bool:
    if user.id in viewer.blocked or viewer.id in user.blocked:
        return False
    if user.id == viewer.id:
        return True
    return user.is_public


def is_story_active(story: Story, now_ms: int, window_ms: int = STORY_WINDOW_MS) -> bool:
    return now_ms - story.timestamp < window_ms


def is_story_visible(viewer: Viewer, story: Story, owner: UserProfile | None = None) -> bool:
    """Whether the viewer may see ``story``; activity is checked separately."""

    if story.user_id == viewer.id:
        return True
    if story.user_id in viewer.blocked:
        return False
    if owner is not None and viewer.id in owner.blocked:
        return False
    if story.user_id in viewer.friends:
        return True
    return owner is not None and owner.is_public


__all__ = [
    "resolve_privacy",
    "is_post_visible",
    "is_user_visible",
    "is_story_active",
    "is_story_visible",
]
