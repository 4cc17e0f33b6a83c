"""
Tests de l'API d'authentification : inscription, connexion, profil.
"""
from uuid import uuid4

from fastapi.testclient import TestClient

from wishlists_app.main import app


PASSWORD = "SecurePass123!"


def _register_and_login(client: TestClient, name: str = "Test User") -> dict:
    """Inscrit un utilisateur, ouvre sa session et renvoie son profil."""
    email = f"user-{uuid4().hex}@example.com"
    client.post("/auth/register", json={"email": email, "password": PASSWORD, "display_name": name})
    return client.post("/auth/login", json={"email": email, "password": PASSWORD}).json()


class TestAuthRegister:
    """Inscription."""

    def test_register_success(self):
        client = TestClient(app)
        email = f"User-{uuid4().hex}@Example.com"

        response = client.post(
            "/auth/register",
            json={"email": email, "password": PASSWORD, "display_name": "  Camille  "},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == email.lower()
        assert data["display_name"] == "Camille"
        assert data["username"].startswith("user_")
        assert data["is_email_verified"] is False
        assert "access_token=" in response.headers.get("set-cookie", "")

    def test_register_duplicate_email_does_not_leak(self):
        """Un e-mail déjà pris reçoit la même réponse qu'une inscription, sans session."""
        client = TestClient(app)
        email = f"user-{uuid4().hex}@example.com"
        client.post("/auth/register", json={"email": email, "password": PASSWORD, "display_name": "One"})

        response = TestClient(app).post(
            "/auth/register",
            json={"email": email, "password": "AnotherPass456!", "display_name": "Two"},
        )

        assert response.status_code == 201
        assert response.json() == {}
        assert "access_token=" not in response.headers.get("set-cookie", "")

    def test_register_usernames_are_unique(self):
        client = TestClient(app)
        local = f"twin{uuid4().hex[:8]}"
        first = client.post(
            "/auth/register",
            json={"email": f"{local}@example.com", "password": PASSWORD, "display_name": "Twin"},
        ).json()
        second = client.post(
            "/auth/register",
            json={"email": f"{local}@example.org", "password": PASSWORD, "display_name": "Twin"},
        ).json()

        assert first["username"] == local
        assert second["username"] == f"{local}1"

    def test_register_invalid_email(self):
        client = TestClient(app)
        response = client.post(
            "/auth/register",
            json={"email": "not-an-email", "password": PASSWORD, "display_name": "Test"},
        )
        assert response.status_code == 422

    def test_register_weak_password(self):
        """Huit caractères avec majuscule, minuscule et chiffre."""
        client = TestClient(app)
        for password in ("short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"):
            response = client.post(
                "/auth/register",
                json={"email": f"user-{uuid4().hex}@example.com", "password": password, "display_name": "Test"},
            )
            assert response.status_code == 422, password

    def test_register_missing_fields(self):
        client = TestClient(app)
        response = client.post("/auth/register", json={"email": f"user-{uuid4().hex}@example.com"})
        assert response.status_code == 422


class TestAuthLogin:
    """Connexion et déconnexion."""

    def test_login_success(self):
        client = TestClient(app)
        email = f"user-{uuid4().hex}@example.com"
        client.post("/auth/register", json={"email": email, "password": PASSWORD, "display_name": "Test"})

        response = TestClient(app).post("/auth/login", json={"email": email, "password": PASSWORD})

        assert response.status_code == 200
        assert response.json()["email"] == email

    def test_login_wrong_password(self):
        client = TestClient(app)
        email = f"user-{uuid4().hex}@example.com"
        client.post("/auth/register", json={"email": email, "password": PASSWORD, "display_name": "Test"})

        response = client.post("/auth/login", json={"email": email, "password": "WrongPass123!"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Mot de passe incorrect."

    def test_login_unknown_user(self):
        client = TestClient(app)
        response = client.post(
            "/auth/login",
            json={"email": f"nobody-{uuid4().hex}@example.com", "password": PASSWORD},
        )
        assert response.status_code == 400

    def test_session_cookie_without_remember_me(self):
        client = TestClient(app)
        email = f"user-{uuid4().hex}@example.com"
        client.post("/auth/register", json={"email": email, "password": PASSWORD, "display_name": "Test"})

        response = client.post(
            "/auth/login",
            json={"email": email, "password": PASSWORD, "remember_me": False},
        )

        assert "max-age" not in response.headers.get("set-cookie", "").lower()

    def test_logout_clears_session(self):
        client = TestClient(app)
        _register_and_login(client)
        assert client.get("/auth/me").status_code == 200

        assert client.post("/auth/logout").status_code == 204
        client.cookies.clear()
        assert client.get("/auth/me").status_code == 401


class TestProfileUpdate:
    """Mise à jour du profil et du mot de passe."""

    def test_update_me(self):
        client = TestClient(app)
        _register_and_login(client)
        new_username = f"camille_{uuid4().hex[:8]}"

        response = client.put(
            "/auth/me",
            json={"display_name": "Camille D.", "username": new_username, "bio": "  ", "notifications_enabled": False},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["display_name"] == "Camille D."
        assert data["username"] == new_username
        assert data["bio"] is None
        assert data["notifications_enabled"] is False

    def test_update_me_username_taken(self):
        first = TestClient(app)
        taken = _register_and_login(first)["username"]
        second = TestClient(app)
        _register_and_login(second)

        response = second.put("/auth/me", json={"username": taken})

        assert response.status_code == 409

    def test_update_me_invalid_username(self):
        client = TestClient(app)
        _register_and_login(client)
        assert client.put("/auth/me", json={"username": "Not Valid!"}).status_code == 422

    def test_change_password(self):
        client = TestClient(app)
        me = _register_and_login(client)

        wrong = client.post(
            "/auth/change-password",
            json={"old_password": "WrongPass123!", "new_password": "NewSecure456!"},
        )
        assert wrong.status_code == 400

        ok = client.post(
            "/auth/change-password",
            json={"old_password": PASSWORD, "new_password": "NewSecure456!"},
        )
        assert ok.status_code == 204

        fresh = TestClient(app)
        assert fresh.post("/auth/login", json={"email": me["email"], "password": PASSWORD}).status_code == 400
        assert fresh.post("/auth/login", json={"email": me["email"], "password": "NewSecure456!"}).status_code == 200

    def test_forgot_password_is_silent_for_unknown_email(self):
        client = TestClient(app)
        response = client.post("/auth/forgot-password", json={"email": f"ghost-{uuid4().hex}@example.com"})
        assert response.status_code == 204

    def test_reset_password_with_invalid_token(self):
        client = TestClient(app)
        response = client.post("/auth/reset-password", json={"token": "bad", "new_password": "NewSecure456!"})
        assert response.status_code == 400


class TestPublicProfile:
    """Profil public."""

    def test_profile_lists_only_public_wishlists(self):
        client = TestClient(app)
        me = _register_and_login(client, name="Owner")
        client.post("/wishlists", json={"title": "Liste publique", "visibility": "public"})
        client.post("/wishlists", json={"title": "Liste privée", "visibility": "private"})

        response = TestClient(app).get(f"/profiles/{me['username']}")

        assert response.status_code == 200
        data = response.json()
        assert data["display_name"] == "Owner"
        assert data["total_wishlists"] == 2
        assert data["total_public_wishlists"] == 1
        assert [w["title"] for w in data["wishlists"]] == ["Liste publique"]

    def test_profile_not_found(self):
        client = TestClient(app)
        assert client.get(f"/profiles/ghost_{uuid4().hex[:8]}").status_code == 404
