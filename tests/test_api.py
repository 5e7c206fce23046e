"""HTTP and WebSocket tests against the application with in-memory SQLite."""

import time
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.core.database import SessionLocal, init_db
from app.core.messages import AUTH_SESSION_CLOSED, USER_ADDED
from app.core.security import create_token, get_password_hash
from app.models import Identity, UserProfile
from main import app


PASSWORD = "s3cret-pass"
PREFIX = "/api/v1"


def _add_account(db, user_id: str, email: str, full_name: str) -> None:
    db.add(
        Identity(
            id=user_id,
            email=email,
            password_hash=get_password_hash(PASSWORD),
            user_metadata={"full_name": full_name},
        )
    )
    db.add(UserProfile(id=user_id, email=email, full_name=full_name))


@pytest.fixture(scope="module")
def client():
    init_db()
    with SessionLocal() as db:
        _add_account(db, "api-u1", "agent@example.com", "Agent")
        _add_account(db, "api-u2", "teammate@example.com", "Teammate")
        _add_account(db, "api-u3", "loner@example.com", "Loner")
        db.commit()

    with TestClient(app) as test_client:
        yield test_client


def login(client, email: str = "agent@example.com") -> dict:
    response = client.post(f"{PREFIX}/auth/login", data={"username": email, "password": PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


class TestAuth:
    def test_bad_password_is_rejected(self, client):
        response = client.post(
            f"{PREFIX}/auth/login", data={"username": "agent@example.com", "password": "wrong"}
        )
        assert response.status_code == 401

    def test_session_requires_token(self, client):
        assert client.get(f"{PREFIX}/chat/state").status_code == 401

    def test_invalid_token_is_rejected(self, client):
        response = client.get(f"{PREFIX}/chat/state", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_logout_revokes_token(self, client):
        headers = login(client, "teammate@example.com")
        assert client.get(f"{PREFIX}/chat/state", headers=headers).status_code == 200

        assert client.post(f"{PREFIX}/auth/logout", headers=headers).status_code == 200

        response = client.get(f"{PREFIX}/chat/state", headers=headers)
        assert response.status_code == 401
        assert response.json()["detail"] == AUTH_SESSION_CLOSED

    def test_expired_token_loses_its_session(self, client):
        token = create_token("api-u3", "access", timedelta(seconds=2))
        headers = {"Authorization": f"Bearer {token}"}
        assert client.get(f"{PREFIX}/chat/state", headers=headers).status_code == 200

        time.sleep(3)

        assert client.get(f"{PREFIX}/chat/state", headers=headers).status_code == 401
        assert app.state.registry.get(token) is None


class TestChat:
    def test_create_send_and_fetch_attachment(self, client):
        headers = login(client)

        response = client.post(
            f"{PREFIX}/chat/chats",
            json={"name": "Support", "participant_ids": ["api-u2"]},
            headers=headers,
        )
        assert response.status_code == 201
        chat_id = response.json()["id"]

        state = client.get(f"{PREFIX}/chat/state", headers=headers).json()
        assert state["active_chat"]["id"] == chat_id
        assert state["state"] == "chat_active"

        response = client.post(f"{PREFIX}/chat/messages", data={"content": "hello"}, headers=headers)
        assert response.status_code == 201
        assert response.json()["content"] == "hello"
        assert response.json()["sender_id"] == "api-u1"

        response = client.post(
            f"{PREFIX}/chat/messages",
            data={"content": ""},
            files={"file": ("note.txt", b"hi there", "text/plain")},
            headers=headers,
        )
        assert response.status_code == 201
        url = response.json()["attachment_url"]
        assert url.startswith(f"{PREFIX}/upload/files/{chat_id}/")
        assert url.endswith(".txt")

        download = client.get(url, headers=headers)
        assert download.status_code == 200
        assert download.content == b"hi there"

    def test_blank_message_is_rejected(self, client):
        headers = login(client)
        client.post(f"{PREFIX}/chat/chats", json={"name": "Blank check"}, headers=headers)

        response = client.post(f"{PREFIX}/chat/messages", data={"content": "  "}, headers=headers)
        assert response.status_code == 400

    def test_send_without_active_chat_conflicts(self, client):
        headers = login(client, "loner@example.com")
        response = client.post(f"{PREFIX}/chat/messages", data={"content": "hi"}, headers=headers)
        assert response.status_code == 409

    def test_select_unknown_chat(self, client):
        headers = login(client)
        response = client.post(f"{PREFIX}/chat/chats/missing/select", headers=headers)
        assert response.status_code == 404

    def test_search_filter(self, client):
        headers = login(client)
        client.post(f"{PREFIX}/chat/chats", json={"name": "Searchable room"}, headers=headers)

        response = client.post(f"{PREFIX}/chat/filters", json={"search_text": "SEARCHABLE"}, headers=headers)
        assert response.status_code == 200
        assert [chat["name"] for chat in response.json()] == ["Searchable room"]


class TestUsers:
    def test_add_user_then_cooldown(self, client):
        headers = login(client)
        payload = {"email": "new.person@example.com", "full_name": "New Person", "phone_number": "5550100"}

        response = client.post(f"{PREFIX}/users", json=payload, headers=headers)
        assert response.status_code == 201
        assert response.json()["full_name"] == "New Person"

        payload["email"] = "second.person@example.com"
        response = client.post(f"{PREFIX}/users", json=payload, headers=headers)
        assert response.status_code == 429
        assert response.json()["retry_after"] > 0

        notifications = client.get(f"{PREFIX}/chat/notifications", headers=headers).json()
        assert USER_ADDED in [n["title"] for n in notifications]

        users = client.get(f"{PREFIX}/users", headers=headers).json()
        assert "new.person@example.com" in [u["email"] for u in users]

    def test_invalid_email_is_rejected(self, client):
        headers = login(client)
        payload = {"email": "not-an-email", "full_name": "X", "phone_number": "1"}
        assert client.post(f"{PREFIX}/users", json=payload, headers=headers).status_code == 422


class TestWebSocket:
    def test_snapshot_then_changes(self, client):
        headers = login(client)
        token = headers["Authorization"].split()[1]

        with client.websocket_connect(f"{PREFIX}/ws/chat?token={token}") as websocket:
            snapshot = websocket.receive_json()
            assert snapshot["type"] == "snapshot"
            assert snapshot["state"]["current_user"]["id"] == "api-u1"

            update = websocket.receive_json()
            assert update["type"] == "change"
            assert "chats" in update["changed"]

    def test_invalid_token_closes_connection(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"{PREFIX}/ws/chat?token=garbage") as websocket:
                websocket.receive_json()


def test_websocket_route_logs_under_api_namespace():
    from app.api.v1 import chat_websocket
    from app.chat import websocket

    assert chat_websocket.logger.name == "app.api.chat_websocket"
    assert chat_websocket.logger is not websocket.logger
