"""Business logic for friend requests, friendships, blocking and people search."""
from __future__ import annotations

import time
from typing import Any, Iterable, Mapping

from ..clients.store import RemoteStore
from ..constants import SEARCH_MIN_QUERY_LENGTH, SUGGESTION_LIMIT
from ..schemas import FriendRequest, FriendRequestView, NotificationKind, UserProfile, UserSearchResult, Viewer
from .notification_service import notification_update
from .privacy import is_user_visible

FRIEND_REQUESTS_PATH = "friendRequests"


class FriendRequestError(ValueError):
    """Raised when a friend request cannot be sent or answered."""


def friend_requests_path(recipient_id: str) -> str:
    return f"{FRIEND_REQUESTS_PATH}/{recipient_id}"


def project_friend_requests(
    viewer: Viewer,
    requests: Iterable[FriendRequest],
    users: Mapping[str, UserProfile],
) -> list[FriendRequestView]:
    views: list[FriendRequestView] = []
    for request in requests:
        if request.recipient_id != viewer.id or request.sender_id in viewer.blocked:
            continue
        sender = users.get(request.sender_id)
        if sender is None:
            continue
        views.append(FriendRequestView(sender=sender, timestamp=request.timestamp))
    views.sort(key=lambda view: (view.timestamp, view.sender.id), reverse=True)
    return views


async def send_friend_request(store: RemoteStore, viewer: Viewer, recipient_id: str) -> None:
    if recipient_id == viewer.id:
        raise FriendRequestError("Cannot befriend yourself")
    if recipient_id in viewer.friends:
        raise FriendRequestError("Already friends")
    if recipient_id in viewer.blocked:
        raise FriendRequestError("Unblock this user first")

    now = int(time.time() * 1000)
    updates: dict[str, Any] = {f"{friend_requests_path(recipient_id)}/{viewer.id}": {"timestamp": now}}
    updates.update(notification_update(store, recipient_id, viewer.id, NotificationKind.FRIEND_REQUEST, now_ms=now))
    await store.update(updates)


async def cancel_friend_request(store: RemoteStore, viewer: Viewer, recipient_id: str) -> None:
    await store.remove(f"{friend_requests_path(recipient_id)}/{viewer.id}")


async def respond_to_request(store: RemoteStore, viewer: Viewer, sender_id: str, *, accept: bool) -> None:
    """Accept or decline a pending edge.

    Accepting writes both friend entries and removes the edge atomically.
    Accepting again after the edge is gone is a no-op; accepting an edge that
    never existed raises :class:`FriendRequestError` and writes nothing.
    """

    edge_path = f"{friend_requests_path(viewer.id)}/{sender_id}"
    if not accept:
        await store.remove(edge_path)
        return

    pending = await store.get(edge_path)
    if pending is None:
        if await store.get(f"users/{viewer.id}/friends/{sender_id}"):
            return
        raise FriendRequestError("No pending friend request from this user")
    updates: dict[str, Any] = {
        f"users/{viewer.id}/friends/{sender_id}": True,
        f"users/{sender_id}/friends/{viewer.id}": True,
        edge_path: None,
        # a crossing request in the other direction is settled too
        f"{friend_requests_path(sender_id)}/{viewer.id}": None,
    }
    if sender_id not in viewer.friends:
        updates.update(notification_update(store, sender_id, viewer.id, NotificationKind.FRIEND_ACCEPT))
    await store.update(updates)


async def remove_friend(store: RemoteStore, viewer: Viewer, friend_id: str) -> None:
    await store.update(
        {
            f"users/{viewer.id}/friends/{friend_id}": None,
            f"users/{friend_id}/friends/{viewer.id}": None,
        }
    )


async def block_user(store: RemoteStore, viewer: Viewer, user_id: str) -> None:
    if user_id == viewer.id:
        raise FriendRequestError("Cannot block yourself")
    await store.update(
        {
            f"users/{viewer.id}/blocked/{user_id}": True,
            f"users/{viewer.id}/friends/{user_id}": None,
            f"users/{user_id}/friends/{viewer.id}": None,
            f"{friend_requests_path(viewer.id)}/{user_id}": None,
            f"{friend_requests_path(user_id)}/{viewer.id}": None,
        }
    )


async def unblock_user(store: RemoteStore, viewer: Viewer, user_id: str) -> None:
    await store.remove(f"users/{viewer.id}/blocked/{user_id}")


def suggest_friends(
    viewer: Viewer,
    users: Iterable[UserProfile],
    pending: Iterable[FriendRequest] = (),
    *,
    limit: int = SUGGESTION_LIMIT,
) -> list[UserProfile]:
    """Public, unblocked strangers with no pending request either way."""

    involved = {edge.sender_id for edge in pending} | {edge.recipient_id for edge in pending}
    suggestions = [
        user
        for user in users
        if user.id != viewer.id
        and user.id not in viewer.friends
        and user.id not in involved
        and user.is_public
        and not user.is_banned
        and is_user_visible(viewer, user)
    ]
    suggestions.sort(key=lambda user: ((user.name or "").lower(), user.id))
    return suggestions[:limit]


def _score(user: UserProfile, query: str) -> int:
    score = 0
    for field in (user.name, user.handle):
        value = (field or "").lower()
        if not value:
            continue
        if value.startswith(query):
            score += 5
        elif query in value:
            score += 2
    return score


def search_users(viewer: Viewer, users: Iterable[UserProfile], query: str) -> list[UserSearchResult]:
    needle = query.strip().lstrip("@").lower()
    if len(needle) < SEARCH_MIN_QUERY_LENGTH:
        return []
    results = []
    for user in users:
        if not user.is_complete or not is_user_visible(viewer, user):
            continue
        score = _score(user, needle)
        if score:
            results.append(UserSearchResult(user=user, score=score))
    results.sort(key=lambda result: (-result.score, (result.user.name or "").lower(), result.user.id))
    return results


__all__ = [
    "FRIEND_REQUESTS_PATH",
    "FriendRequestError",
    "block_user",
    "cancel_friend_request",
    "friend_requests_path",
    "project_friend_requests",
    "remove_friend",
    "respond_to_request",
    "search_users",
    "send_friend_request",
    "suggest_friends",
    "unblock_user",
]
