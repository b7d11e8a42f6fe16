"""Schemas for admin-managed settings."""
from __future__ import annotations

from .base import StoreRecord


class ApiKeys(StoreRecord):
    """Media CDN credentials kept at ``config/apiKeys``; blank fields fall back to the environment."""

    imgbb: str = ""
    cloudinary_cloud_name: str = ""
    cloudinary_upload_preset: str = ""


__all__ = ["ApiKeys"]
