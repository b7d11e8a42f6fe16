"""Moderation actions available to admin viewers."""
from __future__ import annotations

import logging
from typing import Any

from ..clients.media_upload import API_KEYS_PATH
from ..clients.store import RemoteStore
from ..schemas import ApiKeys, Viewer
from .conversation_service import CONVERSATIONS_PATH, MESSAGES_PATH, user_conversations_path

logger = logging.getLogger(__name__)


class PermissionDeniedError(PermissionError):
    """Raised when a non-admin viewer attempts a moderation action."""


def _require_admin(viewer: Viewer) -> None:
    if not viewer.is_admin:
        raise PermissionDeniedError("Administrator role required")


async def ban_user(store: RemoteStore, viewer: Viewer, user_id: str) -> None:
    _require_admin(viewer)
    if user_id == viewer.id:
        raise PermissionDeniedError("Administrators cannot ban themselves")
    await store.set(f"users/{user_id}/isBanned", True)
    logger.info("User %s banned by %s", user_id, viewer.id)


async def unban_user(store: RemoteStore, viewer: Viewer, user_id: str) -> None:
    _require_admin(viewer)
    await store.set(f"users/{user_id}/isBanned", None)
    logger.info("User %s unbanned by %s", user_id, viewer.id)


async def set_user_badge(store: RemoteStore, viewer: Viewer, user_id: str, badge_url: str | None) -> None:
    _require_admin(viewer)
    await store.update(
        {
            f"users/{user_id}/badgeUrl": badge_url or None,
            f"users/{user_id}/isVerified": True if badge_url else None,
        }
    )


async def delete_user_conversations(store: RemoteStore, viewer: Viewer, user_id: str) -> int:
    """Remove every conversation the user takes part in, for both participants."""

    _require_admin(viewer)
    index = await store.get(user_conversations_path(user_id))
    if not isinstance(index, dict):
        return 0
    updates: dict[str, Any] = {}
    for conversation_id, record in index.items():
        updates[f"{CONVERSATIONS_PATH}/{conversation_id}"] = None
        updates[f"{MESSAGES_PATH}/{conversation_id}"] = None
        participants = record.get("participants") if isinstance(record, dict) else None
        for participant in participants or {user_id: True}:
            updates[f"{user_conversations_path(participant)}/{conversation_id}"] = None
    await store.update(updates)
    logger.info("Deleted %d conversation(s) of %s", len(index), user_id)
    return len(index)


async def get_api_keys(store: RemoteStore, viewer: Viewer) -> ApiKeys:
    _require_admin(viewer)
    raw = await store.get(API_KEYS_PATH)
    return ApiKeys.model_validate(raw) if isinstance(raw, dict) else ApiKeys()


async def update_api_keys(store: RemoteStore, viewer: Viewer, keys: ApiKeys) -> None:
    """Replace the stored media credentials; blank fields are removed."""

    _require_admin(viewer)
    record = {name: value.strip() for name, value in keys.model_dump(by_alias=True).items() if value.strip()}
    await store.set(API_KEYS_PATH, record or None)
    logger.info("Media API keys updated by %s", viewer.id)


__all__ = [
    "PermissionDeniedError",
    "ban_user",
    "delete_user_conversations",
    "get_api_keys",
    "set_user_badge",
    "unban_user",
    "update_api_keys",
]
