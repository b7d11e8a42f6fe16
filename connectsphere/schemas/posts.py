"""Pydantic schemas for posts and the projected feed."""
from __future__ import annotations

from enum import StrEnum

from pydantic import Field, model_validator

from .base import IdSet, StoreRecord, ViewModel


class PrivacyLevel(StrEnum):
    PUBLIC = "public"
    FRIENDS = "friends"
    PRIVATE = "private"


class MediaKind(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class ReactionKind(StrEnum):
    LIKE = "like"
    LOVE = "love"
    HAHA = "haha"
    WOW = "wow"
    SAD = "sad"
    ANGRY = "angry"


class MediaAttachment(StoreRecord):
    url: str
    kind: MediaKind = MediaKind.IMAGE


class Post(StoreRecord):
    """Post record stored at ``posts/{id}``."""

    id: str
    user_id: str
    content: str = ""
    media: list[MediaAttachment] = Field(default_factory=list)
    media_url: str | None = None
    media_type: MediaKind | None = None
    privacy: PrivacyLevel | None = None
    comments_disabled: bool = False
    comment_count: int = Field(default=0, alias="comments")
    reactions: dict[str, IdSet] = Field(default_factory=dict)
    timestamp: int = 0
    tag: str | None = None

    @model_validator(mode="after")
    def _fold_legacy_media(self) -> "Post":
        if not self.media and self.media_url:
            self.media = [MediaAttachment(url=self.media_url, kind=self.media_type or MediaKind.IMAGE)]
        return self

    def reaction_of(self, user_id: str) -> str | None:
        for kind, users in self.reactions.items():
            if user_id in users:
                return kind
        return None

    @property
    def reaction_count(self) -> int:
        return sum(len(users) for users in self.reactions.values())


class FeedPage(ViewModel):
    """Projected, privacy-filtered feed window."""

    items: list[Post]
    has_more: bool = True


class PostCreate(ViewModel):
    content: str = Field(default="", max_length=5000)
    privacy: PrivacyLevel = PrivacyLevel.PUBLIC
    media: list[MediaAttachment] = Field(default_factory=list)
    tag: str | None = None


class ReactionRequest(ViewModel):
    kind: ReactionKind = ReactionKind.LIKE


class PostEdit(ViewModel):
    content: str = Field(..., min_length=1, max_length=5000)


class CommentSettings(ViewModel):
    disabled: bool


__all__ = [
    "PrivacyLevel",
    "MediaKind",
    "ReactionKind",
    "MediaAttachment",
    "Post",
    "FeedPage",
    "PostCreate",
    "ReactionRequest",
    "PostEdit",
    "CommentSettings",
]
