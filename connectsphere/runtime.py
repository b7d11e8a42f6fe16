"""Process-wide sync client and the FastAPI dependencies built on it."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import Depends, HTTPException, status

from .clients.firebase_rest import FirebaseRestStore
from .clients.media_upload import MediaUploadError
from .clients.store import StoreReadError, StoreWriteError
from .config import get_settings
from .schemas import SessionState
from .services.comment_service import CommentNotFoundError, CommentsDisabledError
from .services.conversation_service import MessageNotFoundError
from .services.post_service import PostNotFoundError
from .services.subscriptions import StaleSessionError
from .services.sync_client import SyncClient, ViewerSession, build_sync_client

logger = logging.getLogger(__name__)

_client: SyncClient | None = None


def get_client() -> SyncClient:
    """Return the shared client, creating it for the configured backend on first use."""

    global _client
    if _client is None:
        _client = build_sync_client(get_settings())
    return _client


def init_client() -> SyncClient:
    client = get_client()
    client.start()
    logger.info("Sync client started (backend=%s)", client.settings.store_backend)
    return client


async def shutdown_client() -> None:
    global _client
    if _client is None:
        return
    client, _client = _client, None
    client.stop()
    if isinstance(client.store, FirebaseRestStore):
        await client.store.aclose()


def get_sync_client() -> SyncClient:
    """FastAPI dependency returning the shared sync client."""
    return get_client()


def get_viewer_session(client: SyncClient = Depends(get_sync_client)) -> ViewerSession:
    """Resolve the active viewer's session or reject the request."""

    snapshot = client.snapshot
    if snapshot.state != SessionState.ACTIVE or client.viewer_session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=snapshot.detail or "No active session",
        )
    return client.viewer_session


@contextmanager
def service_errors() -> Iterator[None]:
    """Translate service exceptions raised inside the block into HTTP errors."""

    try:
        yield
    except (PostNotFoundError, CommentNotFoundError, MessageNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except CommentsDisabledError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc) or "Not allowed") from exc
    except StaleSessionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except (StoreReadError, StoreWriteError, MediaUploadError) as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


__all__ = [
    "get_client",
    "get_sync_client",
    "get_viewer_session",
    "init_client",
    "service_errors",
    "shutdown_client",
]
