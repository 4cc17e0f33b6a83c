import re
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

USERNAME_PATTERN = r"^[a-z0-9_]{3,40}$"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    remember_me: bool = True
    session_days: Literal[7, 30] | None = 30


def _validate_password_strength(password: str) -> str:
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if len(password) > 128:
        raise ValueError("Password must be at most 128 characters")
    if not re.search(r"[A-ZÀ-Þ]", password):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-zß-ÿ]", password):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise ValueError("Password must contain at least one digit")
    return password


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    display_name: str = Field(min_length=2, max_length=80)
    remember_me: bool = True
    session_days: Literal[7, 30] | None = 30

    @field_validator("display_name")
    @classmethod
    def _display_name_strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: str) -> str:
        return _validate_password_strength(value)


class UserPublic(BaseModel):
    id: int
    email: EmailStr
    display_name: str
    username: str
    bio: str | None = None
    avatar_url: str | None = None
    notifications_enabled: bool = True
    is_email_verified: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class UserUpdate(BaseModel):
    display_name: str | None = Field(default=None, min_length=2, max_length=80)
    username: str | None = Field(default=None, pattern=USERNAME_PATTERN)
    bio: str | None = Field(default=None, max_length=500)
    avatar_url: str | None = Field(default=None, max_length=512)
    notifications_enabled: bool | None = None

    @field_validator("display_name", "bio", "avatar_url")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        return _strip_or_none(value)


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(min_length=8, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def _validate_new_password(cls, value: str) -> str:
        return _validate_password_strength(value)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def _validate_new_password(cls, value: str) -> str:
        return _validate_password_strength(value)


class VerifyEmailRequest(BaseModel):
    token: str


class ProfileWishlist(BaseModel):
    slug: str
    title: str
    description: str | None = None
    theme: str
    event_date: date | None = None
    items_count: int = 0


class ProfilePublic(BaseModel):
    username: str
    display_name: str
    bio: str | None = None
    avatar_url: str | None = None
    member_since: datetime
    total_wishlists: int
    total_public_wishlists: int
    wishlists: list[ProfileWishlist]
