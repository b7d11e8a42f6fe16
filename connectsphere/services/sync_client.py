"""Wiring of the session gate and the per-viewer projections."""
from __future__ import annotations

import logging
from typing import Any, Callable

from ..clients.auth import AuthProvider, FirebasePasswordAuth, InMemoryAuth
from ..clients.firebase_rest import FirebaseRestStore
from ..clients.memory_store import InMemoryStore
from ..clients.store import Query, RemoteStore
from ..config import Settings, get_settings
from ..constants import STORE_READ_FAILED_DETAIL
from ..schemas import (
    Conversation,
    ConversationRow,
    FeedPage,
    FriendRequest,
    FriendRequestView,
    Notification,
    NotificationAlert,
    NotificationListResponse,
    Post,
    PresenceStatus,
    SessionSnapshot,
    SessionState,
    Story,
    StoryGroup,
    UserProfile,
    Viewer,
)
from .comment_service import CommentTreeBuilder
from .conversation_service import MessageThread, project_conversations, user_conversations_path
from .feed_service import POSTS_PATH, FeedProjector, project_bookmarks, project_profile_posts
from .friendship_service import friend_requests_path, project_friend_requests, suggest_friends
from .notification_service import (
    NotificationAggregator,
    close_alert_streams,
    describe_notification,
    notifications_path,
    publish_alert,
)
from .session_service import USERS_PATH, SessionProjector
from .story_service import STORIES_PATH, project_story_groups
from .subscriptions import RemoteCollectionSubscription, SessionToken, SubscriptionRegistry, parse_with

logger = logging.getLogger(__name__)

PRESENCE_PATH = "status"

_parse_user = parse_with(UserProfile)
_parse_story = parse_with(Story)
_parse_notification = parse_with(Notification)
_parse_conversation = parse_with(Conversation)
_parse_presence = parse_with(PresenceStatus)
_parse_post = parse_with(Post)


def _friend_request_parser(recipient_id: str) -> Callable[[str, Any], FriendRequest | None]:
    def _parse(sender_id: str, value: Any) -> FriendRequest | None:
        if not value:
            return None
        timestamp = value.get("timestamp", 0) if isinstance(value, dict) else 0
        return FriendRequest(sender_id=sender_id, recipient_id=recipient_id, timestamp=timestamp or 0)

    return _parse


class ViewerSession:
    """Subscriptions and projections that exist while one viewer is active."""

    def __init__(
        self,
        store: RemoteStore,
        registry: SubscriptionRegistry,
        viewer: Viewer,
        settings: Settings,
        *,
        on_alert: Callable[[NotificationAlert], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        foreground: bool = True,
    ) -> None:
        self.store = store
        self._registry = registry
        self._settings = settings
        self.viewer = viewer
        self.token = registry.token()
        self.alerts: list[NotificationAlert] = []
        self._on_alert = on_alert
        self._on_error = on_error
        self.aggregator = NotificationAggregator(
            viewer.id,
            self._alert,
            foreground=foreground,
            seen_limit=settings.notification_window * 4,
        )
        self.feed_projector = FeedProjector(
            store,
            viewer,
            page_size=settings.feed_page_size,
            max_auto_pages=settings.feed_max_auto_pages,
        )
        self._comment_trees: dict[str, CommentTreeBuilder] = {}
        self._threads: dict[str, MessageThread] = {}

        self._users = registry.open_collection(USERS_PATH, _parse_user, on_error=on_error)
        self._posts = registry.open_collection(POSTS_PATH, _parse_post, on_change=self._on_posts, on_error=on_error)
        self.feed_projector.attach(registry, on_error=on_error)
        self._stories = registry.open_collection(STORIES_PATH, _parse_story, on_error=on_error)
        self._requests = registry.open_collection(
            friend_requests_path(viewer.id), _friend_request_parser(viewer.id), on_error=on_error
        )
        self._notifications = registry.open_collection(
            notifications_path(viewer.id),
            _parse_notification,
            query=Query(order_by="timestamp", limit_to_last=settings.notification_window),
            on_change=self._on_notifications,
            on_error=on_error,
        )
        self._conversations = registry.open_collection(
            user_conversations_path(viewer.id), _parse_conversation, on_error=on_error
        )
        self._presence = registry.open_collection(PRESENCE_PATH, _parse_presence, on_error=on_error)
        self._owned: list[RemoteCollectionSubscription[Any]] = [
            self._users,
            self._posts,
            self._stories,
            self._requests,
            self._notifications,
            self._conversations,
            self._presence,
        ]

    # Inputs ----------------------------------------------------------------

    def _alert(self, alert: NotificationAlert) -> None:
        self.alerts.append(alert)
        if self._on_alert is not None:
            self._on_alert(alert)

    def _on_notifications(self, subscription: RemoteCollectionSubscription[Notification]) -> None:
        self.aggregator.apply(subscription.values())

    def _on_posts(self, subscription: RemoteCollectionSubscription[Post]) -> None:
        self.feed_projector.reconcile(subscription.items)

    def set_viewer(self, viewer: Viewer) -> None:
        self.viewer = viewer
        self.feed_projector.set_viewer(viewer)

    def set_foreground(self, foreground: bool) -> None:
        self.aggregator.set_foreground(foreground)

    # Projections -----------------------------------------------------------

    @property
    def users(self) -> dict[str, UserProfile]:
        return dict(self._users.items)

    @property
    def feed(self) -> FeedPage:
        return self.feed_projector.page

    async def load_more_feed(self) -> FeedPage:
        return await self.feed_projector.load_more()

    @property
    def stories(self) -> list[StoryGroup]:
        return project_story_groups(
            self.viewer,
            self._stories.values(),
            self._users.items,
            window_ms=self._settings.story_window_ms,
        )

    @property
    def conversations(self) -> list[ConversationRow]:
        return project_conversations(self.viewer, self._conversations.values(), self._users.items, self._presence.items)

    @property
    def notifications(self) -> NotificationListResponse:
        views = []
        for notification in self.aggregator.items:
            view = describe_notification(notification, self._users.items, self._posts.items)
            if view is not None:
                views.append(view)
        return NotificationListResponse(items=views, unread_count=self.aggregator.unread_count)

    @property
    def friend_requests(self) -> list[FriendRequestView]:
        return project_friend_requests(self.viewer, self._requests.values(), self._users.items)

    @property
    def suggestions(self) -> list[UserProfile]:
        return suggest_friends(self.viewer, self._users.values(), self._requests.values())

    @property
    def bookmarks(self) -> list[Post]:
        return project_bookmarks(self.viewer, self._posts.values())

    def profile_posts(self, owner_id: str) -> list[Post]:
        return project_profile_posts(self.viewer, self._posts.values(), owner_id)

    def story(self, story_id: str) -> Story | None:
        return self._stories.items.get(story_id)

    # On-demand views -------------------------------------------------------

    def comment_tree(self, post_id: str) -> CommentTreeBuilder:
        builder = self._comment_trees.get(post_id)
        if builder is None or builder.closed:
            builder = CommentTreeBuilder(
                self.store,
                post_id,
                page_size=self._settings.comment_page_size,
                token=self.token,
            )
            self._comment_trees[post_id] = builder
        return builder

    def close_comment_tree(self, post_id: str) -> None:
        builder = self._comment_trees.pop(post_id, None)
        if builder is not None:
            builder.close()

    def message_thread(self, conversation_id: str) -> MessageThread:
        thread = self._threads.get(conversation_id)
        if thread is None:
            thread = MessageThread(conversation_id, self.viewer.id, window=self._settings.message_window)
            thread.attach(self._registry, on_error=self._on_error)
            self._threads[conversation_id] = thread
        return thread

    def close_message_thread(self, conversation_id: str) -> None:
        thread = self._threads.pop(conversation_id, None)
        if thread is not None:
            thread.close()

    def close(self) -> None:
        for post_id in list(self._comment_trees):
            self.close_comment_tree(post_id)
        for conversation_id in list(self._threads):
            self.close_message_thread(conversation_id)
        self.feed_projector.close()
        for subscription in self._owned:
            subscription.close()


class SyncClient:
    """Entry point: follows the session and keeps a :class:`ViewerSession` for the active viewer."""

    def __init__(self, store: RemoteStore, auth: AuthProvider, settings: Settings | None = None) -> None:
        self.store = store
        self.auth = auth
        self.settings = settings or get_settings()
        self.registry = SubscriptionRegistry(store)
        self.session = SessionProjector(auth, self.registry)
        self.viewer_session: ViewerSession | None = None
        self._foreground = True
        self.session.add_listener(self._on_session)

    def start(self) -> None:
        self.session.start()

    def stop(self) -> None:
        self._drop_viewer_session()
        self.session.stop()

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot

    def token(self) -> SessionToken:
        return self.registry.token()

    def set_foreground(self, foreground: bool) -> None:
        self._foreground = foreground
        if self.viewer_session is not None:
            self.viewer_session.set_foreground(foreground)

    def _on_session(self, snapshot: SessionSnapshot) -> None:
        if snapshot.state != SessionState.ACTIVE or snapshot.profile is None:
            self._drop_viewer_session()
            return
        viewer = Viewer.from_profile(snapshot.profile)
        current = self.viewer_session
        if current is not None and current.viewer.id == viewer.id and current.token.is_current:
            current.set_viewer(viewer)
            return
        self._drop_viewer_session()
        logger.info("Opening viewer session for %s", viewer.id)
        self.viewer_session = ViewerSession(
            self.store,
            self.registry,
            viewer,
            self.settings,
            on_alert=lambda alert: publish_alert(viewer.id, alert),
            on_error=self._on_subscription_error,
            foreground=self._foreground,
        )
        if not self.viewer_session.token.is_current:
            # a read failed while the session was being opened
            self._drop_viewer_session()

    def _on_subscription_error(self, exc: Exception) -> None:
        self.session.fail(STORE_READ_FAILED_DETAIL)

    def _drop_viewer_session(self) -> None:
        if self.viewer_session is not None:
            viewer_id = self.viewer_session.viewer.id
            self.viewer_session.close()
            self.viewer_session = None
            close_alert_streams(viewer_id)


def build_sync_client(settings: Settings | None = None) -> SyncClient:
    """Create a client for the configured backend."""

    settings = settings or get_settings()
    if settings.store_backend == "firebase":
        if not settings.firebase_database_url or not settings.firebase_api_key:
            raise RuntimeError("FIREBASE_DATABASE_URL and FIREBASE_API_KEY are required for the firebase backend")
        auth = FirebasePasswordAuth(settings.firebase_api_key, timeout=settings.firebase_timeout)
        store: RemoteStore = FirebaseRestStore(
            settings.firebase_database_url,
            token_getter=lambda: auth.id_token,
            timeout=settings.firebase_timeout,
        )
        return SyncClient(store, auth, settings)
    return SyncClient(InMemoryStore(), InMemoryAuth(), settings)


__all__ = ["PRESENCE_PATH", "SyncClient", "ViewerSession", "build_sync_client"]
