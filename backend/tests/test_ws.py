from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from wishlists_app.main import app


PASSWORD = "SecurePass123!"


def _register_and_login(client: TestClient) -> dict:
    email = f"user-{uuid4().hex}@example.com"
    client.post("/auth/register", json={"email": email, "password": PASSWORD, "display_name": "User"})
    return client.post("/auth/login", json={"email": email, "password": PASSWORD}).json()


def _closed_code(client: TestClient, path: str) -> int:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(path) as websocket:
            websocket.receive_text()
    return exc_info.value.code


def test_unknown_wishlist_closes_with_policy_violation():
    assert _closed_code(TestClient(app), "/ws/does-not-exist") == 1008


def test_private_wishlist_closes_for_strangers():
    owner = TestClient(app)
    _register_and_login(owner)
    slug = owner.post("/wishlists", json={"title": "Secret"}).json()["slug"]

    stranger = TestClient(app)
    _register_and_login(stranger)

    assert _closed_code(TestClient(app), f"/ws/{slug}") == 1008
    assert _closed_code(stranger, f"/ws/{slug}") == 1008
