from datetime import datetime, timedelta, timezone
import logging
import secrets
from typing import Any
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from wishlists_app.core.config import settings

logger = logging.getLogger("wishlists.security")
_insecure_keys = {"CHANGE_ME", "changeme", "secret", "jwt_secret", ""}

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
PASSWORD_RESET_TOKEN_TYPE = "password_reset"
EMAIL_VERIFY_TOKEN_TYPE = "email_verify"
INVITE_TOKEN_TYPE = "invite"


def _ensure_secret_key() -> None:
    key = settings.jwt_secret_key
    if key and key not in _insecure_keys and len(key) >= 32:
        return
    if (settings.environment or "local").lower() == "local":
        settings.jwt_secret_key = secrets.token_urlsafe(64)
        logger.warning("JWT_SECRET_KEY missing or insecure; using an ephemeral key for local runs")
        return
    raise RuntimeError("JWT_SECRET_KEY must be set to a secure value (32+ chars) outside local")


_ensure_secret_key()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _encode(subject: str, token_type: str, minutes: int, extra: dict[str, Any] | None = None) -> str:
    payload: dict[str, Any] = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
        "type": token_type,
        "jti": str(uuid4()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(subject: str, expires_delta_minutes: int | None = None) -> str:
    return _encode(
        subject,
        ACCESS_TOKEN_TYPE,
        expires_delta_minutes or settings.access_token_expire_minutes,
    )


def create_refresh_token(subject: str, expires_delta_minutes: int | None = None) -> str:
    return _encode(
        subject,
        REFRESH_TOKEN_TYPE,
        expires_delta_minutes or settings.refresh_token_expire_minutes,
    )


def create_password_reset_token(email: str) -> str:
    return _encode(email, PASSWORD_RESET_TOKEN_TYPE, settings.password_reset_token_expire_minutes)


def create_email_verification_token(email: str) -> str:
    return _encode(email, EMAIL_VERIFY_TOKEN_TYPE, settings.password_reset_token_expire_minutes)


def create_invite_token(email: str, wishlist_slug: str) -> str:
    """Signed link token carried by invitation emails."""
    return _encode(
        email,
        INVITE_TOKEN_TYPE,
        settings.invite_token_expire_minutes,
        extra={"wishlist": wishlist_slug},
    )


def _decode_token_raw(token: str) -> dict[str, Any] | None:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None


def _decode_typed(token: str, token_type: str) -> dict[str, Any] | None:
    payload = _decode_token_raw(token)
    if not payload or payload.get("type") != token_type:
        return None
    return payload


def _subject(payload: dict[str, Any] | None) -> str | None:
    if not payload:
        return None
    subject = payload.get("sub")
    return subject if isinstance(subject, str) else None


def decode_access_token(token: str) -> dict[str, Any] | None:
    # tokens minted without a type claim are treated as access tokens
    payload = _decode_token_raw(token)
    if not payload:
        return None
    if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        return None
    return payload


def decode_refresh_token(token: str) -> dict[str, Any] | None:
    return _decode_typed(token, REFRESH_TOKEN_TYPE)


def decode_password_reset_token(token: str) -> str | None:
    return _subject(_decode_typed(token, PASSWORD_RESET_TOKEN_TYPE))


def decode_email_verification_token(token: str) -> str | None:
    return _subject(_decode_typed(token, EMAIL_VERIFY_TOKEN_TYPE))


def decode_invite_token(token: str) -> tuple[str, str] | None:
    payload = _decode_typed(token, INVITE_TOKEN_TYPE)
    email = _subject(payload)
    if not email or not isinstance(payload.get("wishlist"), str):
        return None
    return email, payload["wishlist"]
