"""Application entry point for the local sync API."""
from __future__ import annotations

import logging
import os
from typing import Iterable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .routers import (
    admin_router,
    comments_router,
    feed_router,
    friends_router,
    messages_router,
    notifications_router,
    session_router,
)
from .runtime import init_client, shutdown_client

logger = logging.getLogger(__name__)

settings = get_settings()
APP_NAME = settings.app_name
API_VERSION = settings.api_version

app = FastAPI(title=APP_NAME, version=API_VERSION)

cors_origins = os.getenv("CORS_ORIGINS")
if cors_origins:
    origins: Iterable[str] = [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
else:
    origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(session_router)
app.include_router(feed_router)
app.include_router(comments_router)
app.include_router(messages_router)
app.include_router(notifications_router)
app.include_router(friends_router)
app.include_router(admin_router)


@app.on_event("startup")
async def _startup() -> None:
    """Start following the identity provider before serving."""

    init_client()


@app.on_event("shutdown")
async def _shutdown() -> None:
    await shutdown_client()


@app.get("/api", tags=["system"])
def api_info() -> dict[str, str]:
    return {"service": APP_NAME, "version": API_VERSION}


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok", "backend": settings.store_backend}
