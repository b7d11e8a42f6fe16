"""Chat list projection, idempotent conversation creation and message threads."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, Mapping

from ..clients.store import Query, RemoteStore
from ..schemas import (
    Conversation,
    ConversationRow,
    LastMessage,
    MediaKind,
    Message,
    MessageView,
    Post,
    PostLink,
    PresenceStatus,
    UserProfile,
    Viewer,
)
from .subscriptions import RemoteCollectionSubscription, SessionToken, SubscriptionRegistry, parse_with

logger = logging.getLogger(__name__)

CONVERSATIONS_PATH = "conversations"
USER_CONVERSATIONS_PATH = "userConversations"
MESSAGES_PATH = "messages"

_parse_message = parse_with(Message)

POST_SNIPPET_LENGTH = 100

_MEDIA_PREVIEWS = {
    MediaKind.IMAGE.value: "Sent an image",
    MediaKind.AUDIO.value: "Sent a voice message",
    MediaKind.VIDEO.value: "Sent a video",
}


class MessageNotFoundError(LookupError):
    """Raised when a message id does not resolve."""


def _ordered_pair(a: str, b: str) -> tuple[str, str]:
    return (a, b) if a < b else (b, a)


def conversation_id_for(a: str, b: str) -> str:
    first, second = _ordered_pair(a, b)
    return f"{first}_{second}"


def user_conversations_path(user_id: str) -> str:
    return f"{USER_CONVERSATIONS_PATH}/{user_id}"


def message_preview(last_message: LastMessage | None, viewer_id: str) -> str:
    if last_message is None:
        return ""
    text = last_message.text.strip()
    if not text and last_message.media_type:
        text = _MEDIA_PREVIEWS.get(last_message.media_type, "Sent an attachment")
    if last_message.sender_id == viewer_id:
        return f"You: {text}"
    return text


def project_conversations(
    viewer: Viewer,
    conversations: Iterable[Conversation],
    users: Mapping[str, UserProfile],
    presence: Mapping[str, PresenceStatus] | None = None,
) -> list[ConversationRow]:
    """One row per friend, most recent activity first.

    Friends without a conversation get a placeholder row with zero activity;
    the sort is stable, so placeholders keep friend id order after every real
    conversation. Friends without a profile record are skipped.
    """

    by_friend: dict[str, Conversation] = {}
    for conversation in conversations:
        if viewer.id not in conversation.participants:
            continue
        other = conversation.other_participant(viewer.id)
        if other is None:
            continue
        known = by_friend.get(other)
        if known is None or _activity(conversation) > _activity(known):
            by_friend[other] = conversation

    statuses = presence or {}
    rows: list[ConversationRow] = []
    for friend_id in sorted(viewer.friends):
        friend = users.get(friend_id)
        if friend is None:
            continue
        status = statuses.get(friend_id)
        conversation = by_friend.get(friend_id)
        rows.append(
            ConversationRow(
                friend_id=friend_id,
                friend=friend,
                conversation_id=conversation.id if conversation else None,
                last_activity=_activity(conversation) if conversation else 0,
                preview=message_preview(conversation.last_message, viewer.id) if conversation else "",
                is_online=bool(status and status.is_online),
                is_placeholder=conversation is None,
            )
        )
    rows.sort(key=lambda row: row.last_activity, reverse=True)
    return rows


def _activity(conversation: Conversation) -> int:
    return conversation.last_message.timestamp if conversation.last_message else 0


def _participant_paths(conversation_id: str, participants: tuple[str, str]) -> dict[str, Any]:
    paths: dict[str, Any] = {}
    for participant in participants:
        paths[f"{CONVERSATIONS_PATH}/{conversation_id}/participants/{participant}"] = True
        for owner in participants:
            paths[f"{user_conversations_path(owner)}/{conversation_id}/participants/{participant}"] = True
    return paths


async def get_or_create_conversation(store: RemoteStore, viewer_id: str, friend_id: str) -> str:
    """Return the pair's conversation id, creating its records when missing.

    Only participant leaves are written, so repeated or racing calls converge
    on the same records and never clobber the last-message snapshot.
    """

    if viewer_id == friend_id:
        raise ValueError("Cannot start a conversation with yourself")
    pair = _ordered_pair(viewer_id, friend_id)
    conversation_id = conversation_id_for(*pair)
    await store.update(_participant_paths(conversation_id, pair))
    return conversation_id


async def send_message(
    store: RemoteStore,
    token: SessionToken,
    conversation_id: str,
    sender_id: str,
    recipient_id: str,
    text: str = "",
    *,
    media: bytes | None = None,
    content_type: str | None = None,
    media_url: str | None = None,
    media_type: str | None = None,
    reply_to: Message | None = None,
    post_link: PostLink | None = None,
    now_ms: int | None = None,
) -> str:
    """Upload optional media, then write the message and every last-message copy atomically.

    ``media_url`` and ``media_type`` pass through media that was uploaded earlier.
    ``reply_to`` quotes an earlier message; ``post_link`` attaches a shared post card.
    """

    text = text.strip()
    if not text and media is None and not media_url and post_link is None:
        raise ValueError("A message needs text or media")

    if media is not None:
        media_url = await store.upload_binary(media, f"{MESSAGES_PATH}/{conversation_id}", content_type or "application/octet-stream")
        media_type = (content_type or "").split("/", 1)[0] or None
    # the session may have ended while the upload was in flight
    token.ensure_current()

    message_id = store.push_id()
    timestamp = now_ms or int(time.time() * 1000)
    record: dict[str, Any] = {"senderId": sender_id, "text": text, "timestamp": timestamp}
    if media_url:
        record["mediaUrl"] = media_url
        record["mediaType"] = media_type
    if reply_to is not None:
        record["replyTo"] = {"messageId": reply_to.id, "senderId": reply_to.sender_id, "text": _quote(reply_to)}
    if post_link is not None:
        record["postLink"] = post_link.model_dump(by_alias=True, exclude_none=True)
    last_message = _last_message_record(record)

    pair = _ordered_pair(sender_id, recipient_id)
    updates: dict[str, Any] = {f"{MESSAGES_PATH}/{conversation_id}/{message_id}": record}
    updates.update(_participant_paths(conversation_id, pair))
    updates[f"{CONVERSATIONS_PATH}/{conversation_id}/lastMessage"] = last_message
    for participant in pair:
        updates[f"{user_conversations_path(participant)}/{conversation_id}/lastMessage"] = last_message
    await store.update(updates)
    return message_id


def _quote(message: Message) -> str:
    if message.text:
        return message.text
    if message.media_type:
        return _MEDIA_PREVIEWS.get(message.media_type, "Attachment")
    return ""


def _last_message_record(record: Mapping[str, Any]) -> dict[str, Any]:
    last_message: dict[str, Any] = {
        "text": record.get("text", ""),
        "senderId": record.get("senderId"),
        "timestamp": record.get("timestamp", 0),
    }
    if record.get("mediaType"):
        last_message["mediaType"] = record["mediaType"]
    return last_message


async def load_message(store: RemoteStore, conversation_id: str, message_id: str) -> Message:
    raw = await store.get(f"{MESSAGES_PATH}/{conversation_id}/{message_id}")
    message = _parse_message(message_id, raw) if raw is not None else None
    if message is None:
        raise MessageNotFoundError(f"Message {message_id} not found")
    return message


async def delete_message(store: RemoteStore, viewer_id: str, conversation_id: str, message_id: str) -> None:
    """Delete one of the viewer's own messages.

    When it was the newest message, every last-message copy is rewritten to
    the message before it, or cleared when none is left.
    """

    message = await load_message(store, conversation_id, message_id)
    if message.sender_id != viewer_id:
        raise PermissionError("Only the sender can delete a message")

    newest = await store.get(f"{MESSAGES_PATH}/{conversation_id}", Query(order_by="timestamp", limit_to_last=2))
    ordered = sorted(
        (newest if isinstance(newest, dict) else {}).items(),
        key=lambda item: (item[1].get("timestamp", 0) if isinstance(item[1], dict) else 0, item[0]),
    )
    updates: dict[str, Any] = {f"{MESSAGES_PATH}/{conversation_id}/{message_id}": None}
    if ordered and ordered[-1][0] == message_id:
        previous = [record for key, record in ordered if key != message_id and isinstance(record, dict)]
        replacement = _last_message_record(previous[-1]) if previous else None
        participants = await store.get(f"{CONVERSATIONS_PATH}/{conversation_id}/participants")
        updates[f"{CONVERSATIONS_PATH}/{conversation_id}/lastMessage"] = replacement
        for participant in participants if isinstance(participants, dict) else {viewer_id: True}:
            updates[f"{user_conversations_path(participant)}/{conversation_id}/lastMessage"] = replacement
    await store.update(updates)


async def toggle_message_reaction(
    store: RemoteStore,
    viewer_id: str,
    conversation_id: str,
    message_id: str,
    reaction: str,
) -> str | None:
    """Set the viewer's reaction, or clear it when the same one is picked again."""

    message = await load_message(store, conversation_id, message_id)
    current = message.reactions.get(viewer_id)
    value = None if current == reaction else reaction
    await store.set(f"{MESSAGES_PATH}/{conversation_id}/{message_id}/reactions/{viewer_id}", value)
    return value


def post_link_for(post: Post, author: UserProfile | None) -> PostLink:
    snippet = post.content[:POST_SNIPPET_LENGTH]
    if len(post.content) > POST_SNIPPET_LENGTH:
        snippet += "..."
    first = post.media[0] if post.media else None
    return PostLink(
        post_id=post.id,
        text_snippet=snippet,
        image_url=first.url if first is not None and first.kind == MediaKind.IMAGE else None,
        author_name=(author.name if author else None) or "",
        author_avatar=author.avatar_url if author else None,
    )


async def share_post(
    store: RemoteStore,
    token: SessionToken,
    viewer: Viewer,
    friend_id: str,
    post: Post,
    author: UserProfile | None,
) -> tuple[str, str]:
    """Send ``post`` to a friend as a message card; returns the conversation and message ids."""

    if friend_id not in viewer.friends:
        raise PermissionError("You can only share posts with friends")
    link = post_link_for(post, author)
    conversation_id = await get_or_create_conversation(store, viewer.id, friend_id)
    token.ensure_current()
    text = f"Shared a post by {link.author_name}" if link.author_name else "Shared a post"
    message_id = await send_message(store, token, conversation_id, viewer.id, friend_id, text, post_link=link)
    return conversation_id, message_id


def build_message_views(messages: Iterable[Message], viewer_id: str) -> list[MessageView]:
    ordered = sorted(messages, key=lambda message: (message.timestamp, message.id))
    views: list[MessageView] = []
    previous: Message | None = None
    for message in ordered:
        views.append(
            MessageView(
                message=message,
                show_avatar=previous is None or previous.sender_id != message.sender_id,
                is_own=message.sender_id == viewer_id,
            )
        )
        previous = message
    return views


class MessageThread:
    """Live window over one conversation's most recent messages."""

    def __init__(
        self,
        conversation_id: str,
        viewer_id: str,
        *,
        window: int = 50,
        on_change: Callable[["MessageThread"], None] | None = None,
    ) -> None:
        self.conversation_id = conversation_id
        self.viewer_id = viewer_id
        self.window = window
        self._on_change = on_change
        self._subscription: RemoteCollectionSubscription[Message] | None = None

    def attach(self, registry: SubscriptionRegistry, *, on_error: Callable[[Exception], None] | None = None) -> None:
        self._subscription = registry.open_collection(
            f"{MESSAGES_PATH}/{self.conversation_id}",
            _parse_message,
            query=Query(order_by="timestamp", limit_to_last=self.window),
            on_change=self._changed,
            on_error=on_error,
        )

    def _changed(self, _: RemoteCollectionSubscription[Message]) -> None:
        if self._on_change is not None:
            self._on_change(self)

    @property
    def messages(self) -> list[MessageView]:
        if self._subscription is None:
            return []
        return build_message_views(self._subscription.values(), self.viewer_id)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None


__all__ = [
    "CONVERSATIONS_PATH",
    "MESSAGES_PATH",
    "USER_CONVERSATIONS_PATH",
    "MessageNotFoundError",
    "MessageThread",
    "build_message_views",
    "conversation_id_for",
    "delete_message",
    "get_or_create_conversation",
    "load_message",
    "message_preview",
    "post_link_for",
    "project_conversations",
    "send_message",
    "share_post",
    "toggle_message_reaction",
    "user_conversations_path",
]
