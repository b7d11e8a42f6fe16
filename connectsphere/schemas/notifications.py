"""Schemas for notifications."""
from __future__ import annotations

from enum import StrEnum

from .base import StoreRecord, ViewModel


class NotificationKind(StrEnum):
    LIKE = "like"
    COMMENT = "comment"
    MENTION = "mention"
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPT = "friend_accept"


class Notification(StoreRecord):
    """Notification record stored at ``notifications/{recipient_id}/{id}``."""

    id: str
    recipient_id: str | None = None
    sender_id: str
    type: str = NotificationKind.LIKE.value
    post_id: str | None = None
    read: bool = False
    timestamp: int = 0


class NotificationView(ViewModel):
    notification: Notification
    text: str
    link: str


class NotificationListResponse(ViewModel):
    items: list[NotificationView]
    unread_count: int = 0


class NotificationSummary(ViewModel):
    unread_count: int = 0


class NotificationAlert(ViewModel):
    """Payload of the alert side effect emitted for a newly arrived notification."""

    notification_id: str
    sender_id: str
    type: str
    post_id: str | None = None
    timestamp: int = 0


class MarkReadRequest(ViewModel):
    ids: list[str] | None = None


__all__ = [
    "NotificationKind",
    "Notification",
    "NotificationView",
    "NotificationListResponse",
    "NotificationSummary",
    "NotificationAlert",
    "MarkReadRequest",
]
