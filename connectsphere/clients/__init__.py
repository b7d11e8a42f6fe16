"""External collaborators: remote store, auth and media uploads."""
from .auth import AuthError, AuthProvider, FirebasePasswordAuth, InMemoryAuth
from .memory_store import InMemoryStore
from .push_ids import generate_push_id
from .store import Increment, Query, RemoteStore, StoreReadError, StoreWriteError, Unsubscribe, apply_query

__all__ = [
    "AuthError",
    "AuthProvider",
    "FirebasePasswordAuth",
    "InMemoryAuth",
    "InMemoryStore",
    "generate_push_id",
    "Increment",
    "Query",
    "RemoteStore",
    "StoreReadError",
    "StoreWriteError",
    "Unsubscribe",
    "apply_query",
]
