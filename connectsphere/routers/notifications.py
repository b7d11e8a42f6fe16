"""Notification API routes."""
from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from ..runtime import get_client, get_viewer_session, service_errors
from ..schemas import MarkReadRequest, NotificationListResponse, NotificationSummary, SessionState
from ..services import mark_all_read, mark_notifications_read
from ..services.notification_stream import notification_stream_manager
from ..services.sync_client import ViewerSession

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_my_notifications(session: ViewerSession = Depends(get_viewer_session)) -> NotificationListResponse:
    return session.notifications


@router.get("/summary", response_model=NotificationSummary)
async def notification_summary_endpoint(session: ViewerSession = Depends(get_viewer_session)) -> NotificationSummary:
    return NotificationSummary(unread_count=session.aggregator.unread_count)


@router.post("/mark-read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_read(payload: MarkReadRequest, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        if payload.ids is None:
            await mark_all_read(session.aggregator, session.store)
        else:
            await mark_notifications_read(session.store, session.viewer.id, payload.ids)


@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    user_id: str = Query(..., alias="user_id"),
) -> None:
    snapshot = get_client().snapshot
    if snapshot.state != SessionState.ACTIVE or snapshot.user_id != user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await notification_stream_manager.connect(user_id, websocket)
    await websocket.send_text(json.dumps({"type": "ready"}))
    try:
        while True:
            try:
                payload = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            if payload.strip().lower() == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
    finally:
        await notification_stream_manager.disconnect(websocket)
