"""Schemas used by direct messaging."""
from __future__ import annotations

from pydantic import Field

from .base import IdSet, StoreRecord, ViewModel
from .users import UserProfile


class LastMessage(StoreRecord):
    text: str = ""
    media_type: str | None = None
    sender_id: str | None = None
    timestamp: int = 0


class Conversation(StoreRecord):
    """Conversation record indexed per participant at ``userConversations/{uid}/{id}``."""

    id: str
    participants: IdSet = Field(default_factory=frozenset)
    last_message: LastMessage | None = None

    def other_participant(self, user_id: str) -> str | None:
        for participant in sorted(self.participants):
            if participant != user_id:
                return participant
        return None


class MessageReplyRef(StoreRecord):
    """Quoted message a reply points at."""

    message_id: str
    sender_id: str | None = None
    text: str = ""


class PostLink(StoreRecord):
    """Shared post card carried inside a message."""

    post_id: str
    text_snippet: str = ""
    image_url: str | None = None
    author_name: str = ""
    author_avatar: str | None = None


class Message(StoreRecord):
    id: str
    conversation_id: str | None = None
    sender_id: str
    text: str = ""
    media_url: str | None = None
    media_type: str | None = None
    reply_to: MessageReplyRef | None = None
    post_link: PostLink | None = None
    reactions: dict[str, str] = Field(default_factory=dict)
    timestamp: int = 0


class ConversationRow(ViewModel):
    """One chat-list row per friend; placeholders have no conversation yet."""

    friend_id: str
    friend: UserProfile
    conversation_id: str | None = None
    last_activity: int = 0
    preview: str = ""
    is_online: bool = False
    is_placeholder: bool = False


class MessageView(ViewModel):
    message: Message
    show_avatar: bool = True
    is_own: bool = False


class MessageSendRequest(ViewModel):
    text: str = Field(default="", max_length=2000)
    media_url: str | None = None
    media_type: str | None = None
    reply_to_message_id: str | None = None


class MessageReactionRequest(ViewModel):
    reaction: str = Field(..., min_length=1, max_length=16)


class PostShareRequest(ViewModel):
    friend_id: str


class ConversationOpenResponse(ViewModel):
    conversation_id: str


__all__ = [
    "LastMessage",
    "Conversation",
    "MessageReplyRef",
    "PostLink",
    "Message",
    "ConversationRow",
    "MessageView",
    "MessageSendRequest",
    "MessageReactionRequest",
    "PostShareRequest",
    "ConversationOpenResponse",
]
