"""Realtime Database client speaking the REST and Server-Sent-Events protocol."""
from __future__ import annotations

import asyncio
import copy
import json
import logging
from typing import Any, Callable

import httpx

from ..schemas import ApiKeys
from .media_upload import API_KEYS_PATH, MediaUploadError, upload_media
from .push_ids import generate_push_id
from .store import (
    KEY_ORDER,
    ErrorCallback,
    Increment,
    Query,
    StoreReadError,
    StoreWriteError,
    Unsubscribe,
    ValueCallback,
    apply_query,
    split_path,
)

logger = logging.getLogger(__name__)

TokenGetter = Callable[[], str | None]


def _encode_value(value: Any) -> Any:
    if isinstance(value, Increment):
        return {".sv": {"increment": value.delta}}
    if isinstance(value, dict):
        return {key: _encode_value(child) for key, child in value.items()}
    return value


def _query_params(query: Query | None) -> dict[str, str]:
    if query is None:
        return {}
    params = {"orderBy": json.dumps(query.order_by if query.order_by != KEY_ORDER else "$key")}
    if query.has_equal_to:
        params["equalTo"] = json.dumps(query.equal_to)
    if query.end_at is not None:
        params["endAt"] = json.dumps(query.end_at)
    if query.limit_to_last is not None:
        limit = query.limit_to_last
        if query.end_at_key is not None:
            # the REST API cannot bound ties by key, so over-fetch and finish the window locally
            limit = limit * 2 + 1
        params["limitToLast"] = str(limit)
    return params


def _set_at(tree: Any, parts: list[str], value: Any) -> Any:
    if not parts:
        return value
    root = tree if isinstance(tree, dict) else {}
    node = root
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    if value is None:
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = value
    return root


class FirebaseRestStore:
    """:class:`~connectsphere.clients.store.RemoteStore` over the Realtime Database REST API."""

    def __init__(self, database_url: str, *, token_getter: TokenGetter | None = None, timeout: float = 10.0) -> None:
        self._base_url = database_url.rstrip("/")
        self._token_getter = token_getter
        self._timeout = timeout
        self._streams: set[asyncio.Task[None]] = set()

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{'/'.join(split_path(path))}.json"

    def _params(self, query: Query | None = None) -> dict[str, str]:
        params = _query_params(query)
        token = self._token_getter() if self._token_getter else None
        if token:
            params["auth"] = token
        return params

    async def get(self, path: str, query: Query | None = None) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                response = await client.get(self._url(path), params=self._params(query))
                response.raise_for_status()
                value = response.json()
        except httpx.HTTPError as exc:  # pragma: no cover - network bound
            logger.exception("Read of %s failed", path)
            raise StoreReadError(f"Read of {path} failed") from exc
        return apply_query(value, query)

    async def _send(self, method: str, path: str, payload: Any) -> None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                response = await client.request(method, self._url(path), params=self._params(), json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:  # pragma: no cover - network bound
            logger.exception("%s of %s failed", method, path or "/")
            raise StoreWriteError(f"{method} {path or '/'} failed") from exc

    async def set(self, path: str, value: Any) -> None:
        if value is None:
            await self.remove(path)
            return
        await self._send("PUT", path, _encode_value(value))

    async def update(self, values: dict[str, Any]) -> None:
        if not values:
            return
        payload = {"/".join(split_path(path)): _encode_value(value) for path, value in values.items()}
        await self._send("PATCH", "", payload)

    async def remove(self, path: str) -> None:
        await self._send("DELETE", path, None)

    def push_id(self) -> str:
        return generate_push_id()

    async def _stored_api_keys(self) -> ApiKeys | None:
        try:
            raw = await self.get(API_KEYS_PATH)
        except StoreReadError as exc:
            logger.warning("Stored API keys are unreadable, using configured ones: %s", exc)
            return None
        return ApiKeys.model_validate(raw) if isinstance(raw, dict) else None

    async def upload_binary(self, data: bytes, destination_hint: str, content_type: str) -> str:
        keys = await self._stored_api_keys()
        try:
            uploaded = await upload_media(
                data,
                content_type,
                filename=destination_hint.strip("/").replace("/", "-"),
                keys=keys,
            )
        except MediaUploadError as exc:
            raise StoreWriteError(str(exc)) from exc
        return uploaded.url

    # Streaming -------------------------------------------------------------

    def subscribe(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
        query: Query | None = None,
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._stream(path, on_value, on_error, query))
        self._streams.add(task)
        task.add_done_callback(self._streams.discard)
        return task.cancel

    async def _stream(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None,
        query: Query | None,
    ) -> None:
        tree: Any = None
        event: str | None = None
        headers = {"Accept": "text/event-stream"}
        try:
            async with httpx.AsyncClient(timeout=None, follow_redirects=True) as client:
                async with client.stream("GET", self._url(path), params=self._params(query), headers=headers) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if line.startswith("event:"):
                            event = line[len("event:"):].strip()
                            continue
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if event in ("cancel", "auth_revoked"):
                            raise StoreReadError(f"Subscription to {path} ended: {event}")
                        if event not in ("put", "patch"):
                            continue
                        message = json.loads(data)
                        parts = split_path(message.get("path") or "/")
                        if event == "put":
                            tree = _set_at(copy.deepcopy(tree), parts, message.get("data"))
                        else:
                            for key, child in (message.get("data") or {}).items():
                                tree = _set_at(copy.deepcopy(tree), parts + split_path(key), child)
                        on_value(apply_query(tree, query))
        except asyncio.CancelledError:
            raise
        except (httpx.HTTPError, StoreReadError, ValueError) as exc:  # pragma: no cover - network bound
            logger.warning("Stream for %s failed: %s", path, exc)
            if on_error is not None:
                on_error(exc if isinstance(exc, StoreReadError) else StoreReadError(str(exc)))

    async def aclose(self) -> None:
        for task in list(self._streams):
            task.cancel()
        await asyncio.gather(*self._streams, return_exceptions=True)


__all__ = ["FirebaseRestStore"]
