"""Session state and profile completion routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..clients.auth import AuthError, FirebasePasswordAuth, InMemoryAuth
from ..runtime import get_sync_client, service_errors
from ..schemas import ForegroundRequest, ProfileCompleteRequest, SessionSnapshot, SessionState, SignInRequest
from ..services import complete_profile
from ..services.sync_client import SyncClient

router = APIRouter(prefix="/session", tags=["session"])


@router.get("", response_model=SessionSnapshot)
async def read_session(client: SyncClient = Depends(get_sync_client)) -> SessionSnapshot:
    return client.snapshot


@router.post("/sign-in", response_model=SessionSnapshot)
async def sign_in(payload: SignInRequest, client: SyncClient = Depends(get_sync_client)) -> SessionSnapshot:
    auth = client.auth
    if isinstance(auth, FirebasePasswordAuth):
        if not payload.email or not payload.password:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and password required")
        try:
            await auth.sign_in(payload.email, payload.password)
        except AuthError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    elif isinstance(auth, InMemoryAuth):
        if not payload.user_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id required")
        auth.sign_in(payload.user_id)
    else:
        raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail="Sign-in is handled by the identity provider")
    return client.snapshot


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(client: SyncClient = Depends(get_sync_client)) -> None:
    client.auth.sign_out()


@router.post("/foreground", status_code=status.HTTP_204_NO_CONTENT)
async def set_foreground(payload: ForegroundRequest, client: SyncClient = Depends(get_sync_client)) -> None:
    client.set_foreground(payload.foreground)


@router.post("/profile", response_model=SessionSnapshot)
async def complete_my_profile(
    payload: ProfileCompleteRequest,
    client: SyncClient = Depends(get_sync_client),
) -> SessionSnapshot:
    snapshot = client.snapshot
    if snapshot.user_id is None or snapshot.state not in (SessionState.PROFILE_INCOMPLETE, SessionState.ACTIVE):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in first")
    with service_errors():
        await complete_profile(client.store, snapshot.user_id, payload.name, payload.handle)
    return client.snapshot
