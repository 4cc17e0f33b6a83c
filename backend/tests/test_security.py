"""
Tests du module de sécurité : hachage des mots de passe, jetons JWT.
"""
from wishlists_app.core.security import (
    create_access_token,
    create_email_verification_token,
    create_invite_token,
    create_password_reset_token,
    create_refresh_token,
    decode_access_token,
    decode_email_verification_token,
    decode_invite_token,
    decode_password_reset_token,
    decode_refresh_token,
    get_password_hash,
    verify_password,
)


class TestPasswordHashing:
    """Hachage bcrypt."""

    def test_password_hash_creates_different_hashes(self):
        """Deux hachages du même mot de passe diffèrent (sel)."""
        password = "MySecurePassword123!"
        hash1 = get_password_hash(password)
        hash2 = get_password_hash(password)

        assert hash1 != hash2
        assert hash1 != password

    def test_verify_password(self):
        password = "MySecurePassword123!"
        hashed = get_password_hash(password)

        assert verify_password(password, hashed) is True
        assert verify_password("WrongPassword", hashed) is False
        assert verify_password(password.upper(), hashed) is False

    def test_password_hash_bcrypt_format(self):
        assert get_password_hash("test1234").startswith("$2b$")


class TestAccessToken:
    """Jetons d'accès."""

    def test_access_token_contains_subject_and_expiry(self):
        payload = decode_access_token(create_access_token("123"))

        assert payload is not None
        assert payload["sub"] == "123"
        assert payload["type"] == "access"
        assert "exp" in payload

    def test_expired_access_token_is_rejected(self):
        assert decode_access_token(create_access_token("123", expires_delta_minutes=-1)) is None

    def test_decode_invalid_token_returns_none(self):
        for token in ("invalid.token.here", "", "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.invalid"):
            assert decode_access_token(token) is None

    def test_other_token_types_are_not_access_tokens(self):
        """Un jeton de rafraîchissement ou d'invitation n'ouvre pas de session."""
        assert decode_access_token(create_refresh_token("123")) is None
        assert decode_access_token(create_invite_token("a@example.com", "noel")) is None


class TestRefreshToken:
    def test_refresh_token_round_trip(self):
        payload = decode_refresh_token(create_refresh_token("456"))

        assert payload is not None
        assert payload["sub"] == "456"
        assert payload["type"] == "refresh"

    def test_access_token_is_not_a_refresh_token(self):
        assert decode_refresh_token(create_access_token("456")) is None


class TestSingleUseTokens:
    """Jetons de réinitialisation, de vérification et d'invitation."""

    def test_password_reset_token(self):
        token = create_password_reset_token("user@example.com")

        assert decode_password_reset_token(token) == "user@example.com"
        assert decode_password_reset_token(create_access_token("123")) is None
        assert decode_password_reset_token("") is None

    def test_email_verification_token(self):
        token = create_email_verification_token("verify@example.com")

        assert decode_email_verification_token(token) == "verify@example.com"
        assert decode_email_verification_token(token.replace(".", "x", 1)) is None

    def test_invite_token_carries_email_and_slug(self):
        token = create_invite_token("guest@example.com", "noel-2025")

        assert decode_invite_token(token) == ("guest@example.com", "noel-2025")

    def test_invite_token_rejects_other_types(self):
        assert decode_invite_token(create_password_reset_token("guest@example.com")) is None
        assert decode_invite_token("not-a-token") is None
