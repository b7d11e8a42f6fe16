"""Schemas for friend request edges."""
from __future__ import annotations

from .base import StoreRecord, ViewModel
from .users import UserProfile


class FriendRequest(StoreRecord):
    """Pending edge stored at ``friendRequests/{recipient_id}/{sender_id}``; presence means pending."""

    sender_id: str
    recipient_id: str
    timestamp: int = 0


class FriendRequestView(ViewModel):
    sender: UserProfile
    timestamp: int = 0


class FriendRequestDecision(ViewModel):
    accept: bool


__all__ = ["FriendRequest", "FriendRequestView", "FriendRequestDecision"]
