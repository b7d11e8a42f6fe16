"""Integration tests for the HTTP surface over an in-memory store."""
from __future__ import annotations

import asyncio
import os
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

os.environ.setdefault("STORE_BACKEND", "memory")

from connectsphere import runtime  # noqa: E402
from connectsphere.clients import InMemoryAuth, InMemoryStore  # noqa: E402
from connectsphere.config import Settings  # noqa: E402
from connectsphere.constants import BANNED_SESSION_DETAIL  # noqa: E402
from connectsphere.main import app  # noqa: E402
from connectsphere.services.sync_client import SyncClient  # noqa: E402

SEED: dict[str, Any] = {
    "users": {
        "alice": {"name": "Alice", "handle": "alice", "friends": {"bob": True}},
        "bob": {"name": "Bob", "handle": "bobby", "friends": {"alice": True}},
        "carol": {"name": "Carol", "handle": "carol"},
        "root": {"name": "Root", "handle": "root", "role": "admin"},
    },
    "posts": {
        "p1": {"userId": "bob", "content": "friends only", "privacy": "friends", "timestamp": 1},
        "p2": {"userId": "carol", "content": "secret", "privacy": "private", "timestamp": 2},
        "p3": {"userId": "carol", "content": "hello world", "timestamp": 3},
    },
    "stories": {
        "s1": {"userId": "bob", "imageUrl": "memory://stories/s1", "timestamp": 9_999_999_999_999},
    },
    "notifications": {
        "alice": {
            "n1": {"senderId": "bob", "type": "like", "postId": "p1", "read": False, "timestamp": 10},
            "n2": {"senderId": "carol", "type": "comment", "postId": "p3", "read": False, "timestamp": 11},
        }
    },
}


@pytest.fixture()
def sync_client(monkeypatch: pytest.MonkeyPatch) -> SyncClient:
    client = SyncClient(InMemoryStore(SEED), InMemoryAuth(), Settings())
    monkeypatch.setattr(runtime, "_client", client)
    return client


@pytest.fixture()
def api(sync_client: SyncClient) -> Iterator[TestClient]:
    with TestClient(app) as client:
        yield client


def _sign_in(api: TestClient, user_id: str) -> dict[str, Any]:
    response = api.post("/session/sign-in", json={"userId": user_id})
    assert response.status_code == 200, response.text
    return response.json()


def test_health(api: TestClient) -> None:
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_routes_require_an_active_session(api: TestClient) -> None:
    assert api.get("/session").json()["state"] == "unauthenticated"
    assert api.get("/feed").status_code == 401
    assert api.get("/notifications").status_code == 401


def test_feed_is_privacy_filtered(api: TestClient) -> None:
    assert _sign_in(api, "alice")["state"] == "active"

    page = api.get("/feed").json()

    assert [item["id"] for item in page["items"]] == ["p3", "p1"]
    assert page["hasMore"] is False


def test_profile_completion_flow(api: TestClient) -> None:
    assert _sign_in(api, "dave")["state"] == "profile_incomplete"
    assert api.get("/feed").status_code == 401

    response = api.post("/session/profile", json={"name": "Dave", "handle": "Dave_D"})

    assert response.status_code == 200, response.text
    assert response.json()["state"] == "active"
    assert response.json()["profile"]["handle"] == "dave_d"


def test_taken_handle_is_a_bad_request(api: TestClient) -> None:
    _sign_in(api, "dave")
    response = api.post("/session/profile", json={"name": "Dave", "handle": "bobby"})
    assert response.status_code == 400


def test_publish_post_shows_up_in_feed_and_notifies_mentions(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")

    response = api.post("/posts", json={"content": "hello @bobby"})

    assert response.status_code == 201, response.text
    post_id = response.json()["id"]
    assert api.get("/feed").json()["items"][0]["id"] == post_id
    mentions = sync_client.store.snapshot("notifications/bob")
    assert [record["type"] for record in mentions.values()] == ["mention"]


def test_react_and_bookmark(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")

    assert api.post("/posts/p3/reactions", json={"kind": "wow"}).json() == {"reaction": "wow"}
    assert api.post("/posts/p3/bookmark").json() == {"saved": True}
    assert [post["id"] for post in api.get("/feed/bookmarks").json()] == ["p3"]
    assert api.post("/posts/missing/reactions", json={"kind": "like"}).status_code == 404


def test_notifications_mark_all_read(api: TestClient) -> None:
    _sign_in(api, "alice")

    listing = api.get("/notifications").json()
    assert listing["unreadCount"] == 2
    assert [item["link"] for item in listing["items"]] == ["#/post/p3", "#/post/p1"]

    assert api.post("/notifications/mark-read", json={}).status_code == 204
    assert api.get("/notifications/summary").json() == {"unreadCount": 0}


def test_friend_request_round_trip(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "carol")
    assert api.post("/friends/requests/alice").status_code == 201
    api.post("/session/sign-out")

    _sign_in(api, "alice")
    requests = api.get("/friends/requests").json()
    assert [request["sender"]["id"] for request in requests] == ["carol"]

    assert api.post("/friends/requests/carol/respond", json={"accept": True}).status_code == 204
    assert sync_client.store.snapshot("users/alice/friends") == {"bob": True, "carol": True}
    assert api.get("/friends/requests").json() == []


def test_messaging_a_friend(api: TestClient) -> None:
    _sign_in(api, "alice")

    assert api.post("/conversations/carol").status_code == 403
    opened = api.post("/conversations/bob").json()
    assert opened == {"conversationId": "alice_bob"}

    assert api.post("/conversations/alice_bob/messages", json={"text": "hi"}).status_code == 201
    messages = api.get("/conversations/alice_bob/messages").json()
    assert [(view["message"]["text"], view["isOwn"]) for view in messages] == [("hi", True)]

    rows = api.get("/conversations").json()
    assert rows[0]["friendId"] == "bob"
    assert rows[0]["preview"] == "You: hi"
    assert api.get("/conversations/nope/messages").status_code == 404


def test_commenting(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")

    response = api.post("/posts/p3/comments", json={"content": "nice"})

    assert response.status_code == 201, response.text
    assert [node["comment"]["content"] for node in response.json()["items"]] == ["nice"]
    assert sync_client.store.snapshot("posts/p3/comments") == 1
    assert api.get("/posts/missing/comments").json() == {"postId": "missing", "items": [], "hasMore": False}


def test_ban_ends_the_session(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")

    asyncio.run(sync_client.store.set("users/alice/isBanned", True))

    response = api.get("/feed")
    assert response.status_code == 401
    assert response.json()["detail"] == BANNED_SESSION_DETAIL
    assert sync_client.auth.sign_out_calls == 1


def test_notification_socket(api: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect):
        with api.websocket_connect("/notifications/ws?user_id=alice") as websocket:
            websocket.receive_text()

    _sign_in(api, "alice")
    with api.websocket_connect("/notifications/ws?user_id=alice") as websocket:
        assert websocket.receive_json() == {"type": "ready"}
        websocket.send_text("ping")
        assert websocket.receive_json() == {"type": "pong"}


def test_only_the_author_edits_or_deletes_a_post(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")
    assert api.patch("/posts/p3", json={"content": "mine now"}).status_code == 403
    assert api.delete("/posts/p3").status_code == 403
    api.post("/session/sign-out")

    _sign_in(api, "carol")
    assert api.patch("/posts/p3", json={"content": "edited"}).status_code == 204
    assert sync_client.store.snapshot("posts/p3/content") == "edited"
    assert api.put("/posts/p3/comment-settings", json={"disabled": True}).status_code == 204
    assert api.post("/posts/p3/comments", json={"content": "blocked"}).status_code == 403
    assert api.delete("/posts/p3").status_code == 204
    assert sync_client.store.snapshot("posts/p3") is None


def test_viewing_and_liking_stories(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")

    assert api.post("/stories/s1/view").status_code == 204
    assert api.post("/stories/s1/like").json() == {"liked": True}
    assert api.post("/stories/missing/like").status_code == 404
    assert sync_client.store.snapshot("stories/s1/views") == {"alice": True}
    assert sync_client.store.snapshot("stories/s1/likes") == {"alice": True}


def test_withdrawing_a_friend_request(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "carol")
    api.post("/friends/requests/alice")

    assert api.delete("/friends/requests/alice").status_code == 204
    assert sync_client.store.snapshot("friendRequests") is None


def test_moderation_routes_require_admin(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")
    assert api.post("/admin/users/carol/ban").status_code == 403
    api.post("/session/sign-out")

    _sign_in(api, "root")
    assert api.put("/admin/users/carol/badge", json={"badgeUrl": "https://badges/star.png"}).status_code == 204
    assert api.post("/admin/users/carol/ban").status_code == 204
    assert sync_client.store.snapshot("users/carol/isBanned") is True
    assert api.delete("/admin/users/carol/ban").status_code == 204
    assert sync_client.store.snapshot("users/carol/isBanned") is None
    assert api.delete("/admin/users/carol/conversations").json() == {"removed": 0}


def test_accepting_without_a_request_is_rejected(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "carol")

    response = api.post("/friends/requests/alice/respond", json={"accept": True})

    assert response.status_code == 400
    assert sync_client.store.snapshot("users/carol/friends") is None
    assert sync_client.store.snapshot("users/alice/friends") == {"bob": True}


def test_replying_reacting_and_deleting_messages(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")
    api.post("/conversations/bob")
    first = api.post("/conversations/alice_bob/messages", json={"text": "lunch?"}).json()["id"]

    reply = api.post("/conversations/alice_bob/messages", json={"text": "noon", "replyToMessageId": first})
    assert reply.status_code == 201
    missing = api.post("/conversations/alice_bob/messages", json={"text": "x", "replyToMessageId": "gone"})
    assert missing.status_code == 404

    reacted = api.post(f"/conversations/alice_bob/messages/{first}/reactions", json={"reaction": "👍"})
    assert reacted.json() == {"reaction": "👍"}
    views = api.get("/conversations/alice_bob/messages").json()
    assert views[0]["message"]["reactions"] == {"alice": "👍"}
    assert views[1]["message"]["replyTo"]["messageId"] == first

    assert api.delete(f"/conversations/alice_bob/messages/{reply.json()['id']}").status_code == 204
    assert sync_client.store.snapshot("conversations/alice_bob/lastMessage")["text"] == "lunch?"
    assert api.get("/conversations").json()[0]["preview"] == "You: lunch?"


def test_sharing_a_post_with_a_friend(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")

    response = api.post("/posts/p3/share", json={"friendId": "bob"})

    assert response.status_code == 201, response.text
    assert response.json()["conversationId"] == "alice_bob"
    assert sync_client.store.snapshot("conversations/alice_bob/lastMessage")["text"] == "Shared a post by Carol"
    assert api.post("/posts/p3/share", json={"friendId": "carol"}).status_code == 403
    assert api.post("/posts/p2/share", json={"friendId": "bob"}).status_code == 404


def test_media_api_keys_are_admin_only(api: TestClient, sync_client: SyncClient) -> None:
    _sign_in(api, "alice")
    assert api.get("/admin/api-keys").status_code == 403
    api.post("/session/sign-out")

    _sign_in(api, "root")
    saved = api.put("/admin/api-keys", json={"imgbb": " key-1 ", "cloudinaryCloudName": "demo", "cloudinaryUploadPreset": ""})
    assert saved.status_code == 204
    assert sync_client.store.snapshot("config/apiKeys") == {"imgbb": "key-1", "cloudinaryCloudName": "demo"}
    assert api.get("/admin/api-keys").json() == {"imgbb": "key-1", "cloudinaryCloudName": "demo", "cloudinaryUploadPreset": ""}
