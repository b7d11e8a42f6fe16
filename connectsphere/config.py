"""
Runtime configuration helpers for the sync client.

Loads store, upload and pagination settings from the environment and from the
.env file located in the project root.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import STORY_WINDOW_MS

# Resolve the project root
BASE_DIR = Path(__file__).resolve().parents[1]

# Absolute path to .env
ENV_PATH = BASE_DIR / ".env"

# Load .env defaults without overriding environment variables provided by the platform
load_dotenv(dotenv_path=ENV_PATH, override=False)


class Settings(BaseSettings):
    app_name: str = Field(default="ConnectSphere Sync", alias="APP_NAME")
    api_version: str = Field(default="0.1.0", alias="API_VERSION")

    # Remote store
    store_backend: Literal["memory", "firebase"] = Field(default="memory", alias="STORE_BACKEND")
    firebase_database_url: str | None = Field(default=None, alias="FIREBASE_DATABASE_URL")
    firebase_api_key: str | None = Field(default=None, alias="FIREBASE_API_KEY")
    firebase_timeout: float = Field(default=10.0, alias="FIREBASE_TIMEOUT")

    # Windows and pagination
    feed_page_size: int = Field(default=25, ge=1, alias="FEED_PAGE_SIZE")
    feed_max_auto_pages: int = Field(default=10, ge=1, alias="FEED_MAX_AUTO_PAGES")
    comment_page_size: int = Field(default=20, ge=1, alias="COMMENT_PAGE_SIZE")
    notification_window: int = Field(default=50, ge=1, alias="NOTIFICATION_WINDOW")
    message_window: int = Field(default=50, ge=1, alias="MESSAGE_WINDOW")
    story_window_ms: int = Field(default=STORY_WINDOW_MS, ge=1, alias="STORY_WINDOW_MS")

    # Media uploads
    imgbb_api_key: str | None = Field(default=None, alias="IMGBB_API_KEY")
    cloudinary_cloud_name: str | None = Field(default=None, alias="CLOUDINARY_CLOUD_NAME")
    cloudinary_upload_preset: str | None = Field(default=None, alias="CLOUDINARY_UPLOAD_PRESET")
    upload_timeout: float = Field(default=60.0, alias="UPLOAD_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
