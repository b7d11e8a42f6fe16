"""Binary media uploads to the hosted image and video CDNs."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..config import get_settings
from ..schemas import ApiKeys, MediaKind

logger = logging.getLogger(__name__)

_IMGBB_URL = "https://api.imgbb.com/1/upload"
_CLOUDINARY_URL = "https://api.cloudinary.com/v1_1/{cloud}/upload"

API_KEYS_PATH = "config/apiKeys"


@dataclass(frozen=True)
class UploadedMedia:
    url: str
    kind: MediaKind


class MediaUploadConfigurationError(RuntimeError):
    """Raised when the upload credentials are missing."""


class MediaUploadError(RuntimeError):
    """Raised when the CDN rejects an upload."""


def upload_credentials(stored: ApiKeys | None = None) -> ApiKeys:
    """Merge keys saved by an admin over the environment settings, field by field."""

    settings = get_settings()
    stored = stored or ApiKeys()
    return ApiKeys(
        imgbb=stored.imgbb.strip() or settings.imgbb_api_key or "",
        cloudinary_cloud_name=stored.cloudinary_cloud_name.strip() or settings.cloudinary_cloud_name or "",
        cloudinary_upload_preset=stored.cloudinary_upload_preset.strip() or settings.cloudinary_upload_preset or "",
    )


def media_kind_for(content_type: str) -> MediaKind:
    major = (content_type or "").split("/", 1)[0].strip().lower()
    try:
        return MediaKind(major)
    except ValueError as exc:
        raise MediaUploadError(f"Unsupported file type: {content_type or 'unknown'}") from exc


async def _upload_image(client: httpx.AsyncClient, keys: ApiKeys, data: bytes, filename: str, content_type: str) -> str:
    if not keys.imgbb:
        raise MediaUploadConfigurationError("No ImgBB API key is configured")
    response = await client.post(
        _IMGBB_URL,
        params={"key": keys.imgbb},
        files={"image": (filename, data, content_type)},
    )
    response.raise_for_status()
    body = response.json()
    if not body.get("success"):
        message = (body.get("error") or {}).get("message") or "Image upload failed"
        raise MediaUploadError(message)
    return body["data"]["url"]


async def _upload_video(client: httpx.AsyncClient, keys: ApiKeys, data: bytes, filename: str, content_type: str) -> str:
    if not keys.cloudinary_cloud_name or not keys.cloudinary_upload_preset:
        raise MediaUploadConfigurationError("Cloudinary cloud name and upload preset are required")
    # audio is uploaded as the video resource type
    response = await client.post(
        _CLOUDINARY_URL.format(cloud=keys.cloudinary_cloud_name),
        data={"upload_preset": keys.cloudinary_upload_preset, "resource_type": "video"},
        files={"file": (filename, data, content_type)},
    )
    response.raise_for_status()
    url = response.json().get("secure_url")
    if not url:
        raise MediaUploadError("Upload response is missing the media URL")
    return url


async def upload_media(
    data: bytes,
    content_type: str,
    filename: str = "upload",
    *,
    keys: ApiKeys | None = None,
) -> UploadedMedia:
    """Upload ``data`` and return its public URL and media kind.

    ``keys`` are the credentials saved in the store, if any.
    """

    kind = media_kind_for(content_type)
    credentials = upload_credentials(keys)
    timeout = get_settings().upload_timeout
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            if kind == MediaKind.IMAGE:
                url = await _upload_image(client, credentials, data, filename, content_type)
            else:
                url = await _upload_video(client, credentials, data, filename, content_type)
    except httpx.HTTPError as exc:  # pragma: no cover - network bound
        logger.exception("%s upload failed", kind.value)
        raise MediaUploadError(f"{kind.value} upload failed") from exc
    return UploadedMedia(url=url, kind=kind)


__all__ = [
    "API_KEYS_PATH",
    "MediaUploadConfigurationError",
    "MediaUploadError",
    "UploadedMedia",
    "media_kind_for",
    "upload_credentials",
    "upload_media",
]
