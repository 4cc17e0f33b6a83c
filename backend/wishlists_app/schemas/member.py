from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

from wishlists_app.models.models import MemberRoleEnum


class InviteRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def _email_lower(cls, value: str) -> str:
        return value.strip().lower()


class AccessRequest(BaseModel):
    message: str | None = Field(default=None, max_length=500)


class RoleUpdate(BaseModel):
    role: MemberRoleEnum


class MemberPublic(BaseModel):
    id: int
    wishlist_id: int
    user_id: int | None = None
    email: str
    role: str
    status: str
    approved: bool
    message: str | None = None
    username: str | None = None
    display_name: str | None = None
    requested_at: datetime | None = None
    joined_at: datetime | None = None
    approved_at: datetime | None = None


class MembershipResult(BaseModel):
    wishlist_slug: str
    status: str
    role: str
    approved: bool


class NotificationPublic(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: dict[str, Any] = {}
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCount(BaseModel):
    unread: int
