"""Helpers shared by API level tests."""

from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from app.services.push import PushNotification, PushResult


def register_user(
    client: TestClient,
    username: str,
    password: str = "wonderland",
    full_name: str | None = None,
) -> dict[str, Any]:
    response = client.post(
        "/api/auth/register",
        json={"username": username, "password": password, "full_name": full_name},
    )
    assert response.status_code == 201, response.text
    return response.json()


def login_user(client: TestClient, username: str, password: str = "wonderland") -> str:
    response = client.post(
        "/api/auth/login",
        json={"username": username, "password": password},
    )
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def signup(client: TestClient, username: str, full_name: str | None = None) -> tuple[int, dict[str, str]]:
    """Register and log in, returning the user id and auth headers."""

    user = register_user(client, username, full_name=full_name)
    return user["id"], auth_headers(login_user(client, username))


def send(
    client: TestClient,
    headers: dict[str, str],
    recipient_id: int,
    content: str = "hello",
    **extra: Any,
) -> dict[str, Any]:
    response = client.post(
        "/api/messages",
        json={"recipient_id": recipient_id, "content": content, **extra},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class RecordingPushDispatcher:
    """Push collaborator that remembers what it was asked to deliver."""

    def __init__(self, result: PushResult = PushResult.DELIVERED, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[int, PushNotification]] = []

    async def dispatch(self, user_id: int, notification: PushNotification) -> PushResult:
        self.calls.append((user_id, notification))
        if self.error is not None:
            raise self.error
        return self.result


class DummyWebSocket:
    def __init__(self) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []
        self.close_code: int | None = None

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED
