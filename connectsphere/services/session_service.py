"""Session state machine gating every per-viewer subscription."""
from __future__ import annotations

import logging
import re
from typing import Any, Callable

from ..clients.auth import AuthProvider
from ..clients.store import Query, RemoteStore, Unsubscribe
from ..constants import BANNED_SESSION_DETAIL, HANDLE_MIN_LENGTH, NAME_MIN_LENGTH, PROFILE_READ_FAILED_DETAIL
from ..schemas import SessionSnapshot, SessionState, UserProfile
from .subscriptions import RemoteRecordSubscription, SubscriptionRegistry, parse_with

logger = logging.getLogger(__name__)

USERS_PATH = "users"

SessionListener = Callable[[SessionSnapshot], None]

_parse_profile = parse_with(UserProfile)
_HANDLE_STRIP = re.compile(r"[^a-z0-9_]")


class ProfileValidationError(ValueError):
    """Raised when profile completion input is unusable."""


def normalize_handle(handle: str) -> str:
    return _HANDLE_STRIP.sub("", handle.strip().lstrip("@").lower())


class SessionProjector:
    """Drives Unauthenticated / ProfileIncomplete / Banned / Active from auth and profile changes.

    Every identity change tears down the whole registry before anything is
    opened for the next identity. A ban or a failed profile read ends the
    session through exactly one ``sign_out`` call.
    """

    def __init__(self, auth: AuthProvider, registry: SubscriptionRegistry) -> None:
        self._auth = auth
        self.registry = registry
        self._listeners: list[SessionListener] = []
        self._snapshot = SessionSnapshot()
        self._uid: str | None = None
        self._profile_subscription: RemoteRecordSubscription[UserProfile] | None = None
        self._ending = False
        self._pending_detail: str | None = None
        self._auth_unsubscribe: Unsubscribe | None = None

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def state(self) -> SessionState:
        return self._snapshot.state

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def start(self) -> None:
        if self._auth_unsubscribe is None:
            self._auth_unsubscribe = self._auth.on_identity_change(self._on_identity)

    def stop(self) -> None:
        if self._auth_unsubscribe is not None:
            self._auth_unsubscribe()
            self._auth_unsubscribe = None
        self.registry.close_all()
        self._profile_subscription = None

    def _transition(self, snapshot: SessionSnapshot) -> None:
        if snapshot == self._snapshot:
            return
        if snapshot.state != self._snapshot.state:
            logger.info("Session %s -> %s", self._snapshot.state.value, snapshot.state.value)
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    def _on_identity(self, uid: str | None) -> None:
        # nothing opened for the previous identity may outlive it
        self.registry.close_all()
        self._profile_subscription = None
        self._uid = uid
        if uid is None:
            detail, self._pending_detail = self._pending_detail, None
            self._transition(SessionSnapshot(state=SessionState.UNAUTHENTICATED, detail=detail))
            return
        self._ending = False
        self._transition(SessionSnapshot(state=SessionState.UNAUTHENTICATED, user_id=uid))
        self._profile_subscription = self.registry.open_record(
            f"{USERS_PATH}/{uid}",
            _parse_profile,
            on_change=self._on_profile,
            on_error=self._on_profile_error,
        )

    def _on_profile(self, subscription: RemoteRecordSubscription[UserProfile]) -> None:
        uid = self._uid
        profile = subscription.value
        if uid is None or self._ending:
            return
        if profile is None or not profile.is_complete:
            self._transition(SessionSnapshot(state=SessionState.PROFILE_INCOMPLETE, user_id=uid, profile=profile))
            return
        if profile.is_banned:
            self._transition(SessionSnapshot(state=SessionState.BANNED, user_id=uid, profile=profile, detail=BANNED_SESSION_DETAIL))
            self._end_session(BANNED_SESSION_DETAIL)
            return
        self._transition(SessionSnapshot(state=SessionState.ACTIVE, user_id=uid, profile=profile))

    def _on_profile_error(self, exc: Exception) -> None:
        logger.warning("Profile subscription for %s failed: %s", self._uid, exc)
        self._end_session(PROFILE_READ_FAILED_DETAIL)

    def fail(self, detail: str) -> None:
        """End the session after a store read error outside the profile record."""

        if self._uid is None:
            return
        logger.warning("Ending session for %s: %s", self._uid, detail)
        self._end_session(detail)

    def _end_session(self, detail: str) -> None:
        if self._ending:
            return
        self._ending = True
        self.registry.close_all()
        self._profile_subscription = None
        self._pending_detail = detail
        self._auth.sign_out()
        if self._uid is not None:
            # the provider did not report the identity loss
            self._uid = None
            self._pending_detail = None
            self._transition(SessionSnapshot(state=SessionState.UNAUTHENTICATED, detail=detail))


async def is_handle_unique(store: RemoteStore, handle: str, *, exclude_user_id: str | None = None) -> bool:
    matches = await store.get(USERS_PATH, Query.matching("handle", normalize_handle(handle)))
    if not isinstance(matches, dict):
        return True
    return all(user_id == exclude_user_id for user_id in matches)


async def complete_profile(store: RemoteStore, user_id: str, name: str, handle: str, **extra: Any) -> str:
    """Write the required profile fields; returns the normalized handle."""

    clean_name = name.strip()
    clean_handle = normalize_handle(handle)
    if len(clean_name) < NAME_MIN_LENGTH:
        raise ProfileValidationError(f"Name must be at least {NAME_MIN_LENGTH} characters")
    if len(clean_handle) < HANDLE_MIN_LENGTH:
        raise ProfileValidationError(f"Handle must be at least {HANDLE_MIN_LENGTH} letters, digits or underscores")
    if not await is_handle_unique(store, clean_handle, exclude_user_id=user_id):
        raise ProfileValidationError("That handle is already taken")

    updates: dict[str, Any] = {
        f"{USERS_PATH}/{user_id}/name": clean_name,
        f"{USERS_PATH}/{user_id}/handle": clean_handle,
    }
    for key, value in extra.items():
        updates[f"{USERS_PATH}/{user_id}/{key}"] = value
    await store.update(updates)
    return clean_handle


__all__ = [
    "USERS_PATH",
    "ProfileValidationError",
    "SessionListener",
    "SessionProjector",
    "complete_profile",
    "is_handle_unique",
    "normalize_handle",
]
