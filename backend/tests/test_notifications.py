from uuid import uuid4

from fastapi.testclient import TestClient

from wishlists_app.main import app


PASSWORD = "SecurePass123!"


def _register_and_login(client: TestClient) -> dict:
    email = f"user-{uuid4().hex}@example.com"
    client.post("/auth/register", json={"email": email, "password": PASSWORD, "display_name": "User"})
    return client.post("/auth/login", json={"email": email, "password": PASSWORD}).json()


def _user_with_notifications(count: int) -> TestClient:
    """A guest who reserved ``count`` items, one confirmation each."""
    owner = TestClient(app)
    _register_and_login(owner)
    slug = owner.post("/wishlists", json={"title": "Cadeaux", "visibility": "public"}).json()["slug"]
    guest = TestClient(app)
    _register_and_login(guest)
    for i in range(count):
        item = owner.post(f"/wishlists/{slug}/items", json={"title": f"Article {i}"}).json()
        assert guest.post(f"/items/{item['id']}/claim").status_code == 200
    return guest


def test_notifications_require_auth():
    client = TestClient(app)
    assert client.get("/notifications").status_code == 401
    assert client.get("/notifications/unread-count").status_code == 401


def test_list_newest_first_with_paging():
    guest = _user_with_notifications(3)

    everything = guest.get("/notifications").json()
    assert len(everything) == 3
    assert [n["read"] for n in everything] == [False, False, False]
    assert everything[0]["message"].startswith("Tu as réservé « Article 2 »")

    page = guest.get("/notifications", params={"limit": 1, "offset": 1}).json()
    assert [n["id"] for n in page] == [everything[1]["id"]]


def test_mark_read_and_unread_count():
    guest = _user_with_notifications(2)
    first = guest.get("/notifications").json()[0]
    assert guest.get("/notifications/unread-count").json() == {"unread": 2}

    response = guest.post(f"/notifications/{first['id']}/read")

    assert response.status_code == 200
    assert response.json()["read"] is True
    assert guest.get("/notifications/unread-count").json() == {"unread": 1}
    unread = guest.get("/notifications", params={"unread_only": True}).json()
    assert len(unread) == 1 and unread[0]["id"] != first["id"]


def test_mark_all_read():
    guest = _user_with_notifications(2)

    assert guest.post("/notifications/read-all").json() == {"unread": 0}
    assert guest.get("/notifications/unread-count").json() == {"unread": 0}


def test_delete_notification():
    guest = _user_with_notifications(1)
    notification = guest.get("/notifications").json()[0]

    assert guest.delete(f"/notifications/{notification['id']}").status_code == 204
    assert guest.get("/notifications").json() == []
    assert guest.delete(f"/notifications/{notification['id']}").status_code == 404


def test_cannot_touch_someone_elses_notification():
    guest = _user_with_notifications(1)
    notification = guest.get("/notifications").json()[0]
    stranger = TestClient(app)
    _register_and_login(stranger)

    assert stranger.post(f"/notifications/{notification['id']}/read").status_code == 404
    assert stranger.delete(f"/notifications/{notification['id']}").status_code == 404
