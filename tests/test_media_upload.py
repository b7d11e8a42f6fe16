"""Tests for upload routing and the REST store's wire encoding."""
from __future__ import annotations

import json
from typing import Any, Iterator

import pytest

from connectsphere.clients import Increment, Query
from connectsphere.clients import firebase_rest
from connectsphere.clients.firebase_rest import FirebaseRestStore, _encode_value, _query_params, _set_at
from connectsphere.clients.media_upload import (
    MediaUploadConfigurationError,
    MediaUploadError,
    UploadedMedia,
    media_kind_for,
    upload_credentials,
    upload_media,
)
from connectsphere.config import get_settings
from connectsphere.schemas import ApiKeys, MediaKind


@pytest.fixture(autouse=True)
def _no_upload_credentials(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Run every test without CDN credentials and with fresh settings."""

    for name in ("IMGBB_API_KEY", "CLOUDINARY_CLOUD_NAME", "CLOUDINARY_UPLOAD_PRESET"):
        monkeypatch.setenv(name, "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.mark.parametrize(
    ("content_type", "kind"),
    [("image/png", MediaKind.IMAGE), ("video/mp4", MediaKind.VIDEO), ("audio/webm", MediaKind.AUDIO), ("IMAGE/JPEG", MediaKind.IMAGE)],
)
def test_media_kind_from_content_type(content_type: str, kind: MediaKind) -> None:
    assert media_kind_for(content_type) == kind


def test_unsupported_content_type_is_rejected() -> None:
    with pytest.raises(MediaUploadError):
        media_kind_for("application/pdf")


@pytest.mark.asyncio
async def test_image_upload_requires_an_api_key() -> None:
    with pytest.raises(MediaUploadConfigurationError):
        await upload_media(b"\x89PNG", "image/png")


@pytest.mark.asyncio
async def test_voice_upload_requires_cloudinary_settings() -> None:
    with pytest.raises(MediaUploadConfigurationError):
        await upload_media(b"OggS", "audio/ogg")


def test_increment_uses_the_server_value_sentinel() -> None:
    encoded = _encode_value({"posts/p1/comments": Increment(-2), "posts/p1/content": "x"})
    assert encoded == {"posts/p1/comments": {".sv": {"increment": -2}}, "posts/p1/content": "x"}


def test_query_params_over_fetch_when_bounded_by_key() -> None:
    params = _query_params(Query(order_by="timestamp", limit_to_last=25, end_at=100, end_at_key="p9"))

    assert json.loads(params["orderBy"]) == "timestamp"
    assert params["endAt"] == "100"
    assert params["limitToLast"] == "51"


def test_query_params_for_equality() -> None:
    params = _query_params(Query.matching("handle", "alice"))
    assert json.loads(params["equalTo"]) == "alice"
    assert "limitToLast" not in params


def test_stream_events_are_applied_to_the_local_tree() -> None:
    tree = _set_at(None, [], {"p1": {"content": "a"}})
    tree = _set_at(tree, ["p2"], {"content": "b"})
    tree = _set_at(tree, ["p1"], None)

    assert tree == {"p2": {"content": "b"}}


def test_stored_keys_win_and_blank_fields_fall_back_to_the_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IMGBB_API_KEY", "env-imgbb")
    monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "env-cloud")
    get_settings.cache_clear()

    merged = upload_credentials(ApiKeys(imgbb="stored-imgbb", cloudinary_upload_preset=" preset "))

    assert merged == ApiKeys(imgbb="stored-imgbb", cloudinary_cloud_name="env-cloud", cloudinary_upload_preset="preset")
    assert upload_credentials().imgbb == "env-imgbb"


@pytest.mark.asyncio
async def test_video_uploads_still_need_cloudinary_keys() -> None:
    with pytest.raises(MediaUploadConfigurationError):
        await upload_media(b"OggS", "audio/ogg", keys=ApiKeys(imgbb="stored"))


class _KeyedRestStore(FirebaseRestStore):
    def __init__(self, stored: Any) -> None:
        super().__init__("https://example.firebaseio.com")
        self.stored = stored
        self.paths: list[str] = []

    async def get(self, path: str, query: Query | None = None) -> Any:
        self.paths.append(path)
        return self.stored


@pytest.mark.asyncio
async def test_rest_uploads_use_the_keys_saved_in_the_store(monkeypatch: pytest.MonkeyPatch) -> None:
    received: list[ApiKeys | None] = []

    async def _fake_upload(data: bytes, content_type: str, filename: str = "upload", *, keys: ApiKeys | None = None) -> UploadedMedia:
        received.append(keys)
        return UploadedMedia(url="https://cdn/1.png", kind=MediaKind.IMAGE)

    monkeypatch.setattr(firebase_rest, "upload_media", _fake_upload)
    store = _KeyedRestStore({"imgbb": "stored-key"})

    assert await store.upload_binary(b"\x89PNG", "posts/p1", "image/png") == "https://cdn/1.png"
    assert store.paths == ["config/apiKeys"]
    assert received == [ApiKeys(imgbb="stored-key")]

    store.stored = None
    await store.upload_binary(b"\x89PNG", "posts/p1", "image/png")
    assert received[-1] is None
