"""Identity providers the session layer listens to."""
from __future__ import annotations

import logging
from typing import Callable, Protocol

import httpx

from .store import Unsubscribe

logger = logging.getLogger(__name__)

IdentityCallback = Callable[[str | None], None]

_IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"


class AuthError(RuntimeError):
    """Raised when signing in fails."""


class AuthProvider(Protocol):
    def on_identity_change(self, callback: IdentityCallback) -> Unsubscribe:
        """Call ``callback`` with the current uid (or None) now and on every change."""
        ...

    def sign_out(self) -> None:
        ...


class _ListenerMixin:
    def __init__(self) -> None:
        self._callbacks: list[IdentityCallback] = []
        self._uid: str | None = None

    @property
    def uid(self) -> str | None:
        return self._uid

    def on_identity_change(self, callback: IdentityCallback) -> Unsubscribe:
        self._callbacks.append(callback)
        callback(self._uid)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def _emit(self, uid: str | None) -> None:
        if uid == self._uid:
            return
        self._uid = uid
        for callback in list(self._callbacks):
            callback(uid)


class InMemoryAuth(_ListenerMixin):
    """Local identity switch used in development and tests."""

    def __init__(self, uid: str | None = None) -> None:
        super().__init__()
        self._uid = uid
        self.sign_out_calls = 0

    def sign_in(self, uid: str) -> None:
        self._emit(uid)

    def sign_out(self) -> None:
        self.sign_out_calls += 1
        self._emit(None)


class FirebasePasswordAuth(_ListenerMixin):
    """Email/password identity backed by the Identity Toolkit REST endpoint."""

    def __init__(self, api_key: str, *, timeout: float = 10.0) -> None:
        super().__init__()
        self._api_key = api_key
        self._timeout = timeout
        self.id_token: str | None = None

    async def sign_in(self, email: str, password: str) -> str:
        payload = {"email": email, "password": password, "returnSecureToken": True}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(_IDENTITY_TOOLKIT_URL, params={"key": self._api_key}, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:  # pragma: no cover - network bound
            raise AuthError("Invalid email or password") from exc
        except httpx.HTTPError as exc:  # pragma: no cover - network bound
            logger.exception("Sign-in request failed")
            raise AuthError("Sign-in request failed") from exc

        uid = data.get("localId") if isinstance(data, dict) else None
        token = data.get("idToken") if isinstance(data, dict) else None
        if not uid or not token:
            raise AuthError("Sign-in response is missing the identity")
        self.id_token = token
        self._emit(uid)
        return uid

    def sign_out(self) -> None:
        self.id_token = None
        self._emit(None)


__all__ = ["AuthError", "AuthProvider", "FirebasePasswordAuth", "IdentityCallback", "InMemoryAuth"]
