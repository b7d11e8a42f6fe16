"""Project-wide constant values."""
from __future__ import annotations

STORY_WINDOW_MS = 86_400_000  # stories stay active for 24 hours

HANDLE_MIN_LENGTH = 3
NAME_MIN_LENGTH = 2

SEARCH_MIN_QUERY_LENGTH = 2
SUGGESTION_LIMIT = 15

BANNED_SESSION_DETAIL = "This account has been suspended."
PROFILE_READ_FAILED_DETAIL = "Your session could not be loaded. Please sign in again."
STORE_READ_FAILED_DETAIL = "Your data could not be loaded. Please sign in again."

__all__ = [
    "STORY_WINDOW_MS",
    "HANDLE_MIN_LENGTH",
    "NAME_MIN_LENGTH",
    "SEARCH_MIN_QUERY_LENGTH",
    "SUGGESTION_LIMIT",
    "BANNED_SESSION_DETAIL",
    "PROFILE_READ_FAILED_DETAIL",
    "STORE_READ_FAILED_DETAIL",
]
