"""
Tests des membres : invitations, demandes d'accès, validation, départs.
"""
from uuid import uuid4

from fastapi.testclient import TestClient

from wishlists_app.core.security import create_invite_token
from wishlists_app.main import app


PASSWORD = "SecurePass123!"


def _register_and_login(client: TestClient, name: str = "Test User", email: str | None = None) -> dict:
    email = email or f"user-{uuid4().hex}@example.com"
    client.post("/auth/register", json={"email": email, "password": PASSWORD, "display_name": name})
    return client.post("/auth/login", json={"email": email, "password": PASSWORD}).json()


def _owner_with_list(visibility: str = "shared") -> tuple[TestClient, dict, dict]:
    owner = TestClient(app)
    me = _register_and_login(owner, name="Owner")
    res = owner.post("/wishlists", json={"title": f"Liste {uuid4().hex[:6]}", "visibility": visibility})
    assert res.status_code == 201, res.text
    return owner, me, res.json()


def _user(name: str = "Guest") -> tuple[TestClient, dict]:
    client = TestClient(app)
    return client, _register_and_login(client, name=name)


def _types(client: TestClient) -> list[str]:
    return [n["type"] for n in client.get("/notifications").json()]


class TestAccessRequest:
    """Demande d'accès à une liste partagée."""

    def test_request_then_approve(self):
        owner, _, wishlist = _owner_with_list()
        guest, guest_me = _user(name="Bob")
        slug = wishlist["slug"]

        response = guest.post(f"/wishlists/{slug}/request-access", json={"message": "C'est Bob !"})
        assert response.status_code == 201
        assert response.json()["status"] == "pending"

        pending = guest.get(f"/wishlists/{slug}")
        assert pending.status_code == 403
        assert pending.json()["detail"]["access"] == "pending"

        notifications = owner.get("/notifications").json()
        assert notifications[0]["type"] == "access_request"
        assert notifications[0]["data"]["requester_name"] == "Bob"
        assert notifications[0]["data"]["message"] == "C'est Bob !"

        members = owner.get(f"/wishlists/{slug}/members").json()
        assert [(m["user_id"], m["status"], m["message"]) for m in members] == [
            (guest_me["id"], "pending", "C'est Bob !")
        ]

        approved = owner.post(f"/wishlists/{slug}/members/{guest_me['id']}/approve")
        assert approved.status_code == 200
        assert approved.json()["status"] == "active"
        assert approved.json()["approved"] is True

        detail = guest.get(f"/wishlists/{slug}")
        assert detail.status_code == 200
        assert detail.json()["can_claim"] is True
        assert _types(guest) == ["access_granted"]

    def test_duplicate_request_conflicts(self):
        _, _, wishlist = _owner_with_list()
        guest, _ = _user()
        url = f"/wishlists/{wishlist['slug']}/request-access"

        assert guest.post(url, json={}).status_code == 201
        assert guest.post(url, json={}).status_code == 409

    def test_member_request_conflicts(self):
        _, _, wishlist = _owner_with_list(visibility="public")
        guest, _ = _user()
        guest.post(f"/wishlists/{wishlist['slug']}/join")

        assert guest.post(f"/wishlists/{wishlist['slug']}/request-access", json={}).status_code == 409

    def test_refused_member_may_ask_again(self):
        owner, _, wishlist = _owner_with_list()
        guest, guest_me = _user()
        slug = wishlist["slug"]
        guest.post(f"/wishlists/{slug}/request-access", json={})

        refused = owner.post(f"/wishlists/{slug}/members/{guest_me['id']}/refuse")
        assert refused.status_code == 200
        assert refused.json()["status"] == "refused"
        assert guest.get(f"/wishlists/{slug}").json()["detail"]["access"] == "denied"
        assert _types(guest) == ["access_refused"]

        again = guest.post(f"/wishlists/{slug}/request-access", json={"message": "Encore moi"})
        assert again.status_code == 201
        assert again.json()["status"] == "pending"

    def test_private_list_refuses_requests(self):
        _, _, wishlist = _owner_with_list(visibility="private")
        guest, _ = _user()
        assert guest.post(f"/wishlists/{wishlist['slug']}/request-access", json={}).status_code == 403

    def test_owner_cannot_request(self):
        owner, _, wishlist = _owner_with_list()
        assert owner.post(f"/wishlists/{wishlist['slug']}/request-access", json={}).status_code == 400

    def test_only_owner_manages_members(self):
        _, _, wishlist = _owner_with_list()
        guest, guest_me = _user()
        guest.post(f"/wishlists/{wishlist['slug']}/request-access", json={})

        assert guest.get(f"/wishlists/{wishlist['slug']}/members").status_code == 403
        assert guest.post(f"/wishlists/{wishlist['slug']}/members/{guest_me['id']}/approve").status_code == 403

    def test_approve_unknown_member(self):
        owner, _, wishlist = _owner_with_list()
        assert owner.post(f"/wishlists/{wishlist['slug']}/members/999999/approve").status_code == 404


class TestInvitations:
    """Invitations par e-mail."""

    def test_invite_existing_user(self):
        owner, _, wishlist = _owner_with_list()
        guest, guest_me = _user()
        slug = wishlist["slug"]

        response = owner.post(f"/wishlists/{slug}/invite", json={"email": guest_me["email"].upper()})

        assert response.status_code == 201
        assert response.json()["status"] == "invited"
        assert response.json()["user_id"] == guest_me["id"]
        assert _types(guest) == ["list_invitation"]
        assert guest.get(f"/wishlists/{slug}/access").json()["member_status"] == "invited"

        accepted = guest.post(f"/wishlists/{slug}/accept-invite")
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "active"
        assert guest.get(f"/wishlists/{slug}").status_code == 200

        assert owner.post(f"/wishlists/{slug}/invite", json={"email": guest_me["email"]}).status_code == 409

    def test_invite_before_signup(self):
        """L'invitation d'une adresse inconnue est rattachée au compte créé ensuite."""
        owner, _, wishlist = _owner_with_list()
        email = f"later-{uuid4().hex}@example.com"
        assert owner.post(f"/wishlists/{wishlist['slug']}/invite", json={"email": email}).status_code == 201

        guest = TestClient(app)
        _register_and_login(guest, email=email)
        token = create_invite_token(email, wishlist["slug"])

        response = guest.post(f"/wishlists/{wishlist['slug']}/accept-invite", params={"token": token})

        assert response.status_code == 200
        assert response.json()["approved"] is True

    def test_accept_with_foreign_token(self):
        owner, _, wishlist = _owner_with_list()
        guest, guest_me = _user()
        owner.post(f"/wishlists/{wishlist['slug']}/invite", json={"email": guest_me["email"]})
        token = create_invite_token("someone-else@example.com", wishlist["slug"])

        response = guest.post(f"/wishlists/{wishlist['slug']}/accept-invite", params={"token": token})

        assert response.status_code == 400

    def test_accept_without_invitation(self):
        _, _, wishlist = _owner_with_list()
        guest, _ = _user()
        assert guest.post(f"/wishlists/{wishlist['slug']}/accept-invite").status_code == 404

    def test_invited_user_cannot_request_access(self):
        owner, _, wishlist = _owner_with_list()
        guest, guest_me = _user()
        owner.post(f"/wishlists/{wishlist['slug']}/invite", json={"email": guest_me["email"]})

        assert guest.post(f"/wishlists/{wishlist['slug']}/request-access", json={}).status_code == 409

    def test_cannot_invite_yourself(self):
        owner, me, wishlist = _owner_with_list()
        assert owner.post(f"/wishlists/{wishlist['slug']}/invite", json={"email": me["email"]}).status_code == 400

    def test_invite_validates_email(self):
        owner, _, wishlist = _owner_with_list()
        assert owner.post(f"/wishlists/{wishlist['slug']}/invite", json={"email": "nope"}).status_code == 422


class TestJoinLeave:
    """Rejoindre, quitter, être retiré."""

    def test_join_public_list(self):
        _, _, wishlist = _owner_with_list(visibility="public")
        guest, _ = _user()

        response = guest.post(f"/wishlists/{wishlist['slug']}/join")

        assert response.status_code == 200
        assert response.json() == {
            "wishlist_slug": wishlist["slug"],
            "status": "active",
            "role": "viewer",
            "approved": True,
        }
        assert guest.post(f"/wishlists/{wishlist['slug']}/join").status_code == 200

    def test_join_requires_public_list(self):
        _, _, wishlist = _owner_with_list(visibility="shared")
        guest, _ = _user()
        assert guest.post(f"/wishlists/{wishlist['slug']}/join").status_code == 403

    def test_owner_cannot_join(self):
        owner, _, wishlist = _owner_with_list(visibility="public")
        assert owner.post(f"/wishlists/{wishlist['slug']}/join").status_code == 400

    def test_leave_notifies_owner(self):
        owner, _, wishlist = _owner_with_list(visibility="public")
        guest, guest_me = _user(name="Chloé")
        guest.post(f"/wishlists/{wishlist['slug']}/join")

        assert guest.post(f"/wishlists/{wishlist['slug']}/leave").status_code == 204

        notifications = owner.get("/notifications").json()
        assert notifications[0]["type"] == "member_left"
        assert notifications[0]["data"]["member_user_id"] == guest_me["id"]
        assert "Chloé" in notifications[0]["message"]
        assert guest.post(f"/wishlists/{wishlist['slug']}/leave").status_code == 404

    def test_owner_cannot_leave(self):
        owner, _, wishlist = _owner_with_list()
        assert owner.post(f"/wishlists/{wishlist['slug']}/leave").status_code == 400

    def test_remove_member(self):
        owner, _, wishlist = _owner_with_list()
        guest, guest_me = _user()
        slug = wishlist["slug"]
        guest.post(f"/wishlists/{slug}/request-access", json={})
        owner.post(f"/wishlists/{slug}/members/{guest_me['id']}/approve")
        assert guest.get(f"/wishlists/{slug}").status_code == 200

        assert owner.delete(f"/wishlists/{slug}/members/{guest_me['id']}").status_code == 204

        assert guest.get(f"/wishlists/{slug}").status_code == 403
        assert owner.get(f"/wishlists/{slug}/members").json() == []
        assert _types(guest)[0] == "access_refused"


class TestEditorRole:
    """Un membre éditeur peut ajouter et modifier des articles, pas les supprimer."""

    def test_editor_rights(self):
        owner, _, wishlist = _owner_with_list(visibility="public")
        guest, guest_me = _user()
        slug = wishlist["slug"]
        guest.post(f"/wishlists/{slug}/join")

        assert guest.post(f"/wishlists/{slug}/items", json={"title": "Idée"}).status_code == 403

        promoted = owner.put(f"/wishlists/{slug}/members/{guest_me['id']}/role", json={"role": "editor"})
        assert promoted.status_code == 200
        assert promoted.json()["role"] == "editor"

        created = guest.post(f"/wishlists/{slug}/items", json={"title": "Idée"})
        assert created.status_code == 201
        item_id = created.json()["id"]
        assert guest.put(f"/items/{item_id}", json={"title": "Meilleure idée"}).status_code == 200
        assert guest.delete(f"/items/{item_id}").status_code == 403

    def test_invalid_role(self):
        owner, _, wishlist = _owner_with_list(visibility="public")
        guest, guest_me = _user()
        guest.post(f"/wishlists/{wishlist['slug']}/join")

        response = owner.put(f"/wishlists/{wishlist['slug']}/members/{guest_me['id']}/role", json={"role": "admin"})

        assert response.status_code == 422
