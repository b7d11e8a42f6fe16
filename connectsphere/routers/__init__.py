"""Aggregate router exports."""
from .admin import router as admin_router
from .comments import router as comments_router
from .feed import router as feed_router
from .friends import router as friends_router
from .messages import router as messages_router
from .notifications import router as notifications_router
from .session import router as session_router

__all__ = [
    "admin_router",
    "comments_router",
    "feed_router",
    "friends_router",
    "messages_router",
    "notifications_router",
    "session_router",
]
