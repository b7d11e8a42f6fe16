"""Schemas for user profiles and the signed-in viewer."""
from __future__ import annotations

from enum import StrEnum

from pydantic import ConfigDict, Field

from .base import IdSet, StoreRecord, ViewModel


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"


class UserProfile(StoreRecord):
    """Profile record stored at ``users/{id}``."""

    id: str
    name: str | None = None
    handle: str | None = None
    avatar_url: str | None = None
    email: str | None = None
    bio: str | None = None
    role: UserRole = UserRole.USER
    is_banned: bool = False
    is_public: bool = True
    is_verified: bool = False
    badge_url: str | None = None
    friends: IdSet = Field(default_factory=frozenset)
    blocked: IdSet = Field(default_factory=frozenset)
    bookmarks: IdSet = Field(default_factory=frozenset)

    @property
    def is_complete(self) -> bool:
        return bool((self.name or "").strip()) and bool((self.handle or "").strip())


class Viewer(ViewModel):
    """Immutable snapshot of the signed-in actor for one synchronization tick."""

    model_config = ConfigDict(frozen=True)

    id: str
    friends: frozenset[str] = frozenset()
    blocked: frozenset[str] = frozenset()
    bookmarks: frozenset[str] = frozenset()
    role: UserRole = UserRole.USER
    is_banned: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "Viewer":
        return cls(
            id=profile.id,
            friends=profile.friends,
            blocked=profile.blocked,
            bookmarks=profile.bookmarks,
            role=profile.role,
            is_banned=profile.is_banned,
        )


class PresenceStatus(StoreRecord):
    """Online marker stored at ``status/{id}``."""

    id: str
    state: str = "offline"
    last_changed: int = 0

    @property
    def is_online(self) -> bool:
        return self.state == "online"


class ProfileCompleteRequest(ViewModel):
    name: str = Field(..., min_length=2, max_length=80)
    handle: str = Field(..., min_length=3, max_length=30)


class UserSearchResult(ViewModel):
    user: UserProfile
    score: int


class BadgeRequest(ViewModel):
    badge_url: str | None = None


__all__ = [
    "UserRole",
    "UserProfile",
    "Viewer",
    "PresenceStatus",
    "ProfileCompleteRequest",
    "UserSearchResult",
    "BadgeRequest",
]
