"""Friend management API routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ..runtime import get_viewer_session, service_errors
from ..schemas import FriendRequestDecision, FriendRequestView, UserProfile, UserSearchResult
from ..services import (
    block_user,
    cancel_friend_request,
    remove_friend,
    respond_to_request,
    search_users,
    send_friend_request,
    unblock_user,
)
from ..services.sync_client import ViewerSession

router = APIRouter(prefix="/friends", tags=["friends"])


@router.get("/requests", response_model=list[FriendRequestView])
async def list_requests(session: ViewerSession = Depends(get_viewer_session)) -> list[FriendRequestView]:
    return session.friend_requests


@router.get("/suggestions", response_model=list[UserProfile])
async def list_suggestions(session: ViewerSession = Depends(get_viewer_session)) -> list[UserProfile]:
    return session.suggestions


@router.get("/search", response_model=list[UserSearchResult])
async def search(
    q: str = Query(..., min_length=1),
    session: ViewerSession = Depends(get_viewer_session),
) -> list[UserSearchResult]:
    return search_users(session.viewer, session.users.values(), q)


@router.post("/requests/{user_id}", status_code=status.HTTP_201_CREATED)
async def request_friendship(user_id: str, session: ViewerSession = Depends(get_viewer_session)) -> dict[str, str]:
    with service_errors():
        await send_friend_request(session.store, session.viewer, user_id)
    return {"status": "pending"}


@router.delete("/requests/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_request(user_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        await cancel_friend_request(session.store, session.viewer, user_id)


@router.post("/requests/{sender_id}/respond", status_code=status.HTTP_204_NO_CONTENT)
async def respond(
    sender_id: str,
    payload: FriendRequestDecision,
    session: ViewerSession = Depends(get_viewer_session),
) -> None:
    with service_errors():
        await respond_to_request(session.store, session.viewer, sender_id, accept=payload.accept)


@router.delete("/{friend_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unfriend(friend_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        await remove_friend(session.store, session.viewer, friend_id)


@router.post("/blocks/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def block(user_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        await block_user(session.store, session.viewer, user_id)


@router.delete("/blocks/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unblock(user_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        await unblock_user(session.store, session.viewer, user_id)
