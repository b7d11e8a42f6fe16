"""Convenience exports for service layer."""
from .admin_service import (
    PermissionDeniedError,
    ban_user,
    delete_user_conversations,
    get_api_keys,
    set_user_badge,
    unban_user,
    update_api_keys,
)
from .comment_service import CommentNotFoundError, CommentsDisabledError, CommentTreeBuilder, build_comment_tree
from .conversation_service import (
    MessageNotFoundError,
    MessageThread,
    build_message_views,
    conversation_id_for,
    delete_message,
    get_or_create_conversation,
    load_message,
    message_preview,
    project_conversations,
    send_message,
    share_post,
    toggle_message_reaction,
)
from .feed_service import FeedProjector, project_bookmarks, project_feed, project_profile_posts
from .friendship_service import (
    FriendRequestError,
    block_user,
    cancel_friend_request,
    project_friend_requests,
    remove_friend,
    respond_to_request,
    search_users,
    send_friend_request,
    suggest_friends,
    unblock_user,
)
from .notification_service import (
    NotificationAggregator,
    describe_notification,
    mark_all_read,
    mark_notifications_read,
    notification_update,
)
from .notification_stream import NotificationStreamManager, notification_stream_manager
from .post_service import (
    PostNotFoundError,
    create_post,
    delete_post,
    edit_post,
    load_post,
    set_comments_disabled,
    toggle_bookmark,
    toggle_reaction,
)
from .privacy import is_post_visible, is_story_active, is_story_visible, is_user_visible, resolve_privacy
from .session_service import ProfileValidationError, SessionProjector, complete_profile, is_handle_unique, normalize_handle
from .story_service import create_story, mark_story_viewed, project_story_groups, toggle_story_like
from .subscriptions import (
    RemoteCollectionSubscription,
    RemoteRecordSubscription,
    SessionToken,
    StaleSessionError,
    SubscriptionRegistry,
)
from .sync_client import SyncClient, ViewerSession, build_sync_client
from .time_format import format_time_ago

__all__ = [
    "PermissionDeniedError",
    "ban_user",
    "delete_user_conversations",
    "get_api_keys",
    "set_user_badge",
    "unban_user",
    "update_api_keys",
    "CommentNotFoundError",
    "CommentsDisabledError",
    "CommentTreeBuilder",
    "build_comment_tree",
    "MessageNotFoundError",
    "MessageThread",
    "build_message_views",
    "conversation_id_for",
    "delete_message",
    "get_or_create_conversation",
    "load_message",
    "message_preview",
    "project_conversations",
    "send_message",
    "share_post",
    "toggle_message_reaction",
    "FeedProjector",
    "project_bookmarks",
    "project_feed",
    "project_profile_posts",
    "FriendRequestError",
    "block_user",
    "cancel_friend_request",
    "project_friend_requests",
    "remove_friend",
    "respond_to_request",
    "search_users",
    "send_friend_request",
    "suggest_friends",
    "unblock_user",
    "NotificationAggregator",
    "describe_notification",
    "mark_all_read",
    "mark_notifications_read",
    "notification_update",
    "NotificationStreamManager",
    "notification_stream_manager",
    "PostNotFoundError",
    "create_post",
    "delete_post",
    "edit_post",
    "load_post",
    "set_comments_disabled",
    "toggle_bookmark",
    "toggle_reaction",
    "is_post_visible",
    "is_story_active",
    "is_story_visible",
    "is_user_visible",
    "resolve_privacy",
    "ProfileValidationError",
    "SessionProjector",
    "complete_profile",
    "is_handle_unique",
    "normalize_handle",
    "create_story",
    "mark_story_viewed",
    "project_story_groups",
    "toggle_story_like",
    "RemoteCollectionSubscription",
    "RemoteRecordSubscription",
    "SessionToken",
    "StaleSessionError",
    "SubscriptionRegistry",
    "SyncClient",
    "ViewerSession",
    "build_sync_client",
    "format_time_ago",
]
