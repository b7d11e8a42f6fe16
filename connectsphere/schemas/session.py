"""Schemas describing the session state machine."""
from __future__ import annotations

from enum import StrEnum

from .base import ViewModel
from .users import UserProfile


class SessionState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    PROFILE_INCOMPLETE = "profile_incomplete"
    BANNED = "banned"
    ACTIVE = "active"


class SessionSnapshot(ViewModel):
    state: SessionState = SessionState.UNAUTHENTICATED
    user_id: str | None = None
    profile: UserProfile | None = None
    detail: str | None = None


class ForegroundRequest(ViewModel):
    foreground: bool


class SignInRequest(ViewModel):
    """Credentials for the configured identity provider; the in-memory provider only needs ``user_id``."""

    user_id: str | None = None
    email: str | None = None
    password: str | None = None


__all__ = ["SessionState", "SessionSnapshot", "ForegroundRequest", "SignInRequest"]
