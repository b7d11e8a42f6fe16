"""Pydantic schemas for ephemeral stories."""
from __future__ import annotations

from pydantic import Field

from .base import IdSet, StoreRecord, ViewModel
from .users import UserProfile


class Story(StoreRecord):
    id: str
    user_id: str
    image_url: str
    timestamp: int = 0
    views: IdSet = Field(default_factory=frozenset)
    likes: IdSet = Field(default_factory=frozenset)


class StoryGroup(ViewModel):
    user: UserProfile
    stories: list[Story]
    all_viewed: bool = False


__all__ = ["Story", "StoryGroup"]
