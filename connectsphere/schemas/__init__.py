"""Convenience exports for schema layer."""
from .admin import ApiKeys
from .base import IdSet, StoreRecord, ViewModel
from .comments import Comment, CommentCreate, CommentNode, CommentTree
from .friends import FriendRequest, FriendRequestDecision, FriendRequestView
from .messages import (
    Conversation,
    ConversationOpenResponse,
    ConversationRow,
    LastMessage,
    Message,
    MessageReactionRequest,
    MessageReplyRef,
    MessageSendRequest,
    MessageView,
    PostLink,
    PostShareRequest,
)
from .notifications import (
    MarkReadRequest,
    Notification,
    NotificationAlert,
    NotificationKind,
    NotificationListResponse,
    NotificationSummary,
    NotificationView,
)
from .posts import (
    CommentSettings,
    FeedPage,
    MediaAttachment,
    MediaKind,
    Post,
    PostCreate,
    PostEdit,
    PrivacyLevel,
    ReactionKind,
    ReactionRequest,
)
from .session import ForegroundRequest, SessionSnapshot, SessionState, SignInRequest
from .stories import Story, StoryGroup
from .users import BadgeRequest, PresenceStatus, ProfileCompleteRequest, UserProfile, UserRole, UserSearchResult, Viewer

__all__ = [
    "ApiKeys",
    "IdSet",
    "StoreRecord",
    "ViewModel",
    "Comment",
    "CommentCreate",
    "CommentNode",
    "CommentTree",
    "FriendRequest",
    "FriendRequestDecision",
    "FriendRequestView",
    "Conversation",
    "ConversationOpenResponse",
    "ConversationRow",
    "LastMessage",
    "Message",
    "MessageReactionRequest",
    "MessageReplyRef",
    "MessageSendRequest",
    "MessageView",
    "PostLink",
    "PostShareRequest",
    "MarkReadRequest",
    "Notification",
    "NotificationAlert",
    "NotificationKind",
    "NotificationListResponse",
    "NotificationSummary",
    "NotificationView",
    "CommentSettings",
    "FeedPage",
    "MediaAttachment",
    "MediaKind",
    "Post",
    "PostCreate",
    "PostEdit",
    "PrivacyLevel",
    "ReactionKind",
    "ReactionRequest",
    "ForegroundRequest",
    "SessionSnapshot",
    "SessionState",
    "SignInRequest",
    "Story",
    "StoryGroup",
    "BadgeRequest",
    "PresenceStatus",
    "ProfileCompleteRequest",
    "UserProfile",
    "UserRole",
    "UserSearchResult",
    "Viewer",
]
