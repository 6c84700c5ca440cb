"""Integration smoke tests for REST API (using an in-memory UoW via dependency override)."""
from __future__ import annotations

from datetime import timedelta

import jwt
import pytest
from fastapi.testclient import TestClient

from showspot_messaging.api.deps import get_uow
from showspot_messaging.app import create_app
from showspot_messaging.config import settings
from tests.conftest import ALICE, BASE_TIME, BOB, CAROL, OWLS, FakeStore, FakeUoW, seed_message


def _make_token(sub: str = ALICE.id) -> str:
    return jwt.encode({"sub": sub}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _auth(sub: str = ALICE.id) -> dict[str, str]:
    return {"Authorization": f"Bearer {_make_token(sub)}"}


@pytest.fixture
def client(store: FakeStore):
    app = create_app()

    async def _override():
        yield FakeUoW(store=store)

    app.dependency_overrides[get_uow] = _override
    return TestClient(app, raise_server_exceptions=False)


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_me_returns_acting_entity(client):
    resp = client.get("/api/v1/messaging/me", headers=_auth())
    assert resp.status_code == 200
    assert resp.json() == {"id": ALICE.id, "type": "spotter"}


def test_me_for_unknown_account_is_404(client):
    resp = client.get("/api/v1/messaging/me", headers=_auth("nobody"))
    assert resp.status_code == 404


def test_requests_without_token_are_rejected(client):
    resp = client.get("/api/v1/messaging/conversations")
    assert resp.status_code in (401, 403)


def test_invalid_token_is_401(client):
    resp = client.get(
        "/api/v1/messaging/conversations",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert resp.status_code == 401


def test_search_excludes_searcher(client):
    resp = client.get("/api/v1/messaging/entities/search", params={"q": "o"}, headers=_auth())
    assert resp.status_code == 200
    names = [e["entity_name"] for e in resp.json()]
    assert "Bob" in names
    assert "The Night Owls" in names
    assert "Alice" not in names


def test_identity_of_artist_is_owning_spotter(client):
    resp = client.get(
        f"/api/v1/messaging/entities/artist/{OWLS.id}/identity", headers=_auth(),
    )
    assert resp.status_code == 200
    assert resp.json()["id"] == BOB.id
    assert resp.json()["name"] == "Bob"


def test_conversations_are_grouped_by_origin(client, store):
    seed_message(store, ALICE, BOB, "gig?", at=BASE_TIME, intended_recipient=OWLS)
    seed_message(store, CAROL, ALICE, "hi", at=BASE_TIME + timedelta(minutes=1))

    resp = client.get("/api/v1/messaging/conversations", headers=_auth())

    assert resp.status_code == 200
    data = resp.json()
    assert [c["other_entity_id"] for c in data["artist"]] == [BOB.id]
    assert [c["other_entity_id"] for c in data["spotter"]] == [CAROL.id]
    assert data["spotter"][0]["unread_count"] == 1
    assert data["venue"] == []


def test_conversations_store_failure_is_503(client, store):
    store.failing.add("summarize")
    resp = client.get("/api/v1/messaging/conversations", headers=_auth())
    assert resp.status_code == 503


def test_unread_count(client, store):
    seed_message(store, BOB, ALICE, "one", at=BASE_TIME)
    seed_message(store, CAROL, ALICE, "two", at=BASE_TIME + timedelta(seconds=1))
    resp = client.get("/api/v1/messaging/conversations/unread-count", headers=_auth())
    assert resp.status_code == 200
    assert resp.json() == {"unread_count": 2}


def test_send_message_to_artist(client, store):
    resp = client.post(
        f"/api/v1/messaging/conversations/artist/{OWLS.id}/messages",
        json={"content": "  Are you free Friday?  "},
        headers=_auth(),
    )

    assert resp.status_code == 201
    data = resp.json()
    assert data["message_content"] == "Are you free Friday?"
    assert data["is_own_message"] is True
    assert data["sender_id"] == ALICE.id
    assert store.messages[0].recipient == BOB
    assert store.messages[0].intended_recipient == OWLS
    assert len(store.outbox) == 1


def test_send_whitespace_is_422(client, store):
    resp = client.post(
        f"/api/v1/messaging/conversations/spotter/{BOB.id}/messages",
        json={"content": "   "},
        headers=_auth(),
    )
    assert resp.status_code == 422
    assert resp.json()["retryable"] is False
    assert store.messages == []


def test_send_store_failure_is_retryable(client, store):
    store.failing.add("insert")
    resp = client.post(
        f"/api/v1/messaging/conversations/spotter/{BOB.id}/messages",
        json={"content": "hello"},
        headers=_auth(),
    )
    assert resp.status_code == 502
    assert resp.json()["retryable"] is True


def test_history_pages_with_cursor(client, store):
    for i in range(5):
        seed_message(store, BOB, ALICE, f"m{i}", at=BASE_TIME + timedelta(minutes=i))

    url = f"/api/v1/messaging/conversations/spotter/{BOB.id}/messages"
    first = client.get(url, params={"limit": 3}, headers=_auth()).json()
    assert [m["message_content"] for m in first["items"]] == ["m2", "m3", "m4"]
    assert first["next_cursor"]

    second = client.get(
        url, params={"limit": 3, "before": first["next_cursor"]}, headers=_auth(),
    ).json()
    assert [m["message_content"] for m in second["items"]] == ["m0", "m1"]
    assert second["next_cursor"] is None


def test_history_without_limit_returns_everything(client, store):
    for i in range(3):
        seed_message(store, ALICE, BOB, f"m{i}", at=BASE_TIME + timedelta(minutes=i))

    resp = client.get(
        f"/api/v1/messaging/conversations/spotter/{BOB.id}/messages", headers=_auth(),
    )
    data = resp.json()
    assert [m["message_content"] for m in data["items"]] == ["m0", "m1", "m2"]
    assert all(m["is_own_message"] for m in data["items"])
    assert data["next_cursor"] is None


def test_history_bad_cursor_is_422(client):
    resp = client.get(
        f"/api/v1/messaging/conversations/spotter/{BOB.id}/messages",
        params={"before": "%%%"},
        headers=_auth(),
    )
    assert resp.status_code == 422


def test_unknown_entity_type_is_422(client):
    resp = client.get(
        "/api/v1/messaging/conversations/band/x/messages", headers=_auth(),
    )
    assert resp.status_code == 422


def test_mark_read(client, store):
    seed_message(store, BOB, ALICE, "one", at=BASE_TIME)
    seed_message(store, BOB, ALICE, "two", at=BASE_TIME + timedelta(seconds=1))

    resp = client.post(
        f"/api/v1/messaging/conversations/spotter/{BOB.id}/read", headers=_auth(),
    )

    assert resp.status_code == 200
    assert resp.json() == {"updated": 2}
    assert all(m.is_read for m in store.messages)
