"""WebSocket fan-out of notification alerts to the local presentation layer."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Iterable

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class NotificationStreamManager:
    """Tracks alert sockets per viewer id and pushes JSON payloads to them."""

    def __init__(self) -> None:
        self._channels: dict[str, set[WebSocket]] = {}
        self._owners: dict[WebSocket, str] = {}
        self._lock = asyncio.Lock()

    async def connect(self, viewer_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._channels.setdefault(viewer_id, set()).add(websocket)
            self._owners[websocket] = viewer_id
        logger.debug("Alert socket opened for %s", viewer_id)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            viewer_id = self._owners.pop(websocket, None)
            if viewer_id is None:
                return
            sockets = self._channels.get(viewer_id)
            if sockets is not None:
                sockets.discard(websocket)
                if not sockets:
                    self._channels.pop(viewer_id, None)

    async def disconnect_viewer(self, viewer_id: str) -> None:
        """Close every socket of a viewer whose session ended."""

        async with self._lock:
            sockets = self._channels.pop(viewer_id, set())
            for websocket in sockets:
                self._owners.pop(websocket, None)
        for websocket in sockets:
            try:
                await websocket.close()
            except RuntimeError:
                logger.debug("Alert socket for %s was already closed", viewer_id)

    async def broadcast(self, viewer_ids: str | Iterable[str], payload: dict[str, Any]) -> None:
        targets_ids = [viewer_ids] if isinstance(viewer_ids, str) else [value for value in viewer_ids if value]
        if not targets_ids:
            return
        message = json.dumps(payload, default=str)
        async with self._lock:
            targets = [websocket for viewer_id in targets_ids for websocket in self._channels.get(viewer_id, ())]
        for websocket in targets:
            try:
                await websocket.send_text(message)
            except (WebSocketDisconnect, RuntimeError):
                await self.disconnect(websocket)


notification_stream_manager = NotificationStreamManager()


__all__ = ["NotificationStreamManager", "notification_stream_manager"]
