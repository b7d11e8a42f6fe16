"""Moderation routes for admin viewers."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..runtime import get_viewer_session, service_errors
from ..schemas import ApiKeys, BadgeRequest
from ..services import (
    ban_user,
    delete_user_conversations,
    get_api_keys,
    set_user_badge,
    unban_user,
    update_api_keys,
)
from ..services.sync_client import ViewerSession

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/users/{user_id}/ban", status_code=status.HTTP_204_NO_CONTENT)
async def ban(user_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        await ban_user(session.store, session.viewer, user_id)


@router.delete("/users/{user_id}/ban", status_code=status.HTTP_204_NO_CONTENT)
async def unban(user_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        await unban_user(session.store, session.viewer, user_id)


@router.put("/users/{user_id}/badge", status_code=status.HTTP_204_NO_CONTENT)
async def update_badge(
    user_id: str,
    payload: BadgeRequest,
    session: ViewerSession = Depends(get_viewer_session),
) -> None:
    with service_errors():
        await set_user_badge(session.store, session.viewer, user_id, payload.badge_url)


@router.delete("/users/{user_id}/conversations")
async def purge_conversations(user_id: str, session: ViewerSession = Depends(get_viewer_session)) -> dict[str, int]:
    with service_errors():
        removed = await delete_user_conversations(session.store, session.viewer, user_id)
    return {"removed": removed}


@router.get("/api-keys", response_model=ApiKeys)
async def read_api_keys(session: ViewerSession = Depends(get_viewer_session)) -> ApiKeys:
    with service_errors():
        return await get_api_keys(session.store, session.viewer)


@router.put("/api-keys", status_code=status.HTTP_204_NO_CONTENT)
async def save_api_keys(payload: ApiKeys, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        await update_api_keys(session.store, session.viewer, payload)
