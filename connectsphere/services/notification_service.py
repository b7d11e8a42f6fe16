"""Notification aggregation, alerts and read-state helpers."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Iterable, Mapping

from ..clients.store import RemoteStore
from ..schemas import Notification, NotificationAlert, NotificationKind, NotificationView, Post, UserProfile
from .notification_stream import notification_stream_manager

logger = logging.getLogger(__name__)

NOTIFICATIONS_PATH = "notifications"

AlertCallback = Callable[[NotificationAlert], None]

SEEN_HISTORY_LIMIT = 500


def notifications_path(user_id: str) -> str:
    return f"{NOTIFICATIONS_PATH}/{user_id}"


def notification_update(
    store: RemoteStore,
    recipient_id: str,
    sender_id: str,
    kind: NotificationKind | str,
    *,
    post_id: str | None = None,
    now_ms: int | None = None,
) -> dict[str, Any]:
    """Return the multi-path entry that creates one notification, for bundling into an update."""

    record: dict[str, Any] = {
        "recipientId": recipient_id,
        "senderId": sender_id,
        "type": str(kind),
        "read": False,
        "timestamp": now_ms or int(time.time() * 1000),
    }
    if post_id:
        record["postId"] = post_id
    return {f"{notifications_path(recipient_id)}/{store.push_id()}": record}


def _newest_first(notification: Notification) -> tuple[int, str]:
    return (notification.timestamp, notification.id)


class NotificationAggregator:
    """Keeps the sorted notification list, unread count and alert diff for one viewer.

    The first snapshot only primes the set of seen ids, so nothing that was
    already in the store when the session started raises an alert. Seen ids
    outlive the window they arrived in, up to ``seen_limit`` of them; once the
    oldest are forgotten, nothing at or before their timestamp alerts again.
    """

    def __init__(
        self,
        viewer_id: str,
        on_alert: AlertCallback | None = None,
        *,
        foreground: bool = True,
        seen_limit: int = SEEN_HISTORY_LIMIT,
    ) -> None:
        self.viewer_id = viewer_id
        self._on_alert = on_alert
        self.foreground = foreground
        self.seen_limit = seen_limit
        self._seen: dict[str, int] | None = None
        self._forgotten_before = -1
        self.items: list[Notification] = []

    @property
    def unread_count(self) -> int:
        return sum(1 for notification in self.items if not notification.read)

    def set_foreground(self, foreground: bool) -> None:
        self.foreground = foreground

    def apply(self, notifications: Iterable[Notification]) -> list[NotificationAlert]:
        """Replace the local list with ``notifications`` and return the alerts raised."""

        unique = {notification.id: notification for notification in notifications}
        self.items = sorted(unique.values(), key=_newest_first, reverse=True)
        alerts: list[NotificationAlert] = []
        if self._seen is not None and not self.foreground:
            for notification in self.items:
                if notification.id in self._seen or notification.read:
                    continue
                if notification.timestamp <= self._forgotten_before:
                    continue
                if notification.sender_id == self.viewer_id:
                    continue
                alerts.append(
                    NotificationAlert(
                        notification_id=notification.id,
                        sender_id=notification.sender_id,
                        type=notification.type,
                        post_id=notification.post_id,
                        timestamp=notification.timestamp,
                    )
                )
        self._remember(self.items)

        for alert in alerts:
            logger.info("Raising alert for notification %s", alert.notification_id)
            if self._on_alert is not None:
                self._on_alert(alert)
        return alerts

    def _remember(self, notifications: Iterable[Notification]) -> None:
        seen = self._seen if self._seen is not None else {}
        for notification in notifications:
            seen[notification.id] = notification.timestamp
        overflow = len(seen) - self.seen_limit
        if overflow > 0:
            oldest = sorted(seen.items(), key=lambda item: (item[1], item[0]))[:overflow]
            for notification_id, timestamp in oldest:
                del seen[notification_id]
                self._forgotten_before = max(self._forgotten_before, timestamp)
        self._seen = seen

    @property
    def seen_count(self) -> int:
        return len(self._seen or {})


async def mark_notifications_read(store: RemoteStore, viewer_id: str, ids: Iterable[str]) -> int:
    """Flip ``read`` on every listed notification in one atomic update.

    Ids with no stored notification are skipped so no partial records appear.
    """

    requested = sorted({notification_id for notification_id in ids if notification_id})
    if not requested:
        return 0
    records = await asyncio.gather(
        *(store.get(f"{notifications_path(viewer_id)}/{notification_id}") for notification_id in requested)
    )
    targets = [notification_id for notification_id, record in zip(requested, records) if isinstance(record, dict)]
    if not targets:
        return 0
    await store.update({f"{notifications_path(viewer_id)}/{notification_id}/read": True for notification_id in targets})
    _schedule_notification_event(viewer_id, {"type": "notification.read", "ids": targets})
    return len(targets)


async def mark_all_read(aggregator: NotificationAggregator, store: RemoteStore) -> int:
    unread = [notification.id for notification in aggregator.items if not notification.read]
    return await mark_notifications_read(store, aggregator.viewer_id, unread)


_DESCRIPTIONS = {
    NotificationKind.LIKE: "{name} liked your post.",
    NotificationKind.COMMENT: "{name} commented on your post.",
    NotificationKind.MENTION: "{name} mentioned you in a post.",
    NotificationKind.FRIEND_REQUEST: "{name} sent you a friend request.",
    NotificationKind.FRIEND_ACCEPT: "{name} accepted your friend request.",
}


def describe_notification(
    notification: Notification,
    users: Mapping[str, UserProfile],
    posts: Mapping[str, Post] | None = None,
) -> NotificationView | None:
    """Render text and link; None when the sender's profile is unavailable."""

    sender = users.get(notification.sender_id)
    if sender is None:
        return None
    name = sender.name or sender.handle or "Someone"
    try:
        kind = NotificationKind(notification.type)
    except ValueError:
        text = f"{name} interacted with you."
        kind = None
    else:
        text = _DESCRIPTIONS[kind].format(name=name)

    if kind == NotificationKind.FRIEND_REQUEST:
        link = "#/friends"
    elif notification.post_id and (posts is None or notification.post_id in posts):
        link = f"#/post/{notification.post_id}"
    else:
        link = f"#/profile/{notification.sender_id}"
    return NotificationView(notification=notification, text=text, link=link)


def publish_alert(user_id: str, alert: NotificationAlert) -> None:
    _schedule_notification_event(user_id, {"type": "notification.alert", **alert.model_dump(by_alias=True)})


def close_alert_streams(user_id: str) -> None:
    """Close the alert sockets of a viewer whose session ended."""

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.create_task(notification_stream_manager.disconnect_viewer(user_id))


def _schedule_notification_event(user_id: str, payload: dict[str, Any]) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.create_task(notification_stream_manager.broadcast([user_id], payload))


__all__ = [
    "NOTIFICATIONS_PATH",
    "SEEN_HISTORY_LIMIT",
    "AlertCallback",
    "NotificationAggregator",
    "close_alert_streams",
    "describe_notification",
    "mark_all_read",
    "mark_notifications_read",
    "notification_update",
    "notifications_path",
    "publish_alert",
]
