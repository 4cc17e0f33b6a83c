from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from wishlists_app.models.models import ThemeEnum


class BudgetSummary(BaseModel):
    id: int | None = None
    name: str
    type: str
    year: int
    limit_amount: float | None = None
    spent: float
    items_count: int
    progress: int
    threshold: str


class BudgetDetail(BudgetSummary):
    gifts: list[dict[str, Any]]
    recipients: list[dict[str, Any]]
    stats: dict[str, Any]
    insights: dict[str, Any]


class BudgetOverview(BaseModel):
    year: int
    currency: str
    budgets: list[BudgetSummary]


class BudgetLimitUpdate(BaseModel):
    limit_amount: float | None = Field(default=None, ge=0)


class BudgetGoalPublic(BaseModel):
    id: int
    name: str
    type: str
    year: int
    limit_amount: float | None = None
    currency: str

    model_config = {"from_attributes": True}


class ExternalRecipientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    profile_username: str | None = None

    @field_validator("name")
    @classmethod
    def _name_strip(cls, value: str) -> str:
        return value.strip()


class ExternalRecipientUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)


class RecipientLink(BaseModel):
    # None unlinks
    profile_username: str | None = None


class ExternalRecipientPublic(BaseModel):
    id: int
    name: str
    profile_id: int | None = None
    profile_username: str | None = None
    profile_display_name: str | None = None
    gifts_count: int = 0
    total_spent: float = 0.0
    created_at: datetime


class ExternalGiftCreate(BaseModel):
    recipient_id: int
    description: str | None = Field(default=None, max_length=255)
    paid_amount: float = Field(ge=0)
    purchase_date: date
    theme: ThemeEnum = ThemeEnum.OTHER
    notes: str | None = Field(default=None, max_length=1000)


class ExternalGiftUpdate(BaseModel):
    recipient_id: int | None = None
    description: str | None = Field(default=None, max_length=255)
    paid_amount: float | None = Field(default=None, ge=0)
    purchase_date: date | None = None
    theme: ThemeEnum | None = None
    notes: str | None = Field(default=None, max_length=1000)


class ExternalGiftPublic(BaseModel):
    id: int
    recipient_id: int
    recipient_name: str | None = None
    description: str | None = None
    paid_amount: float
    purchase_date: date
    theme: str
    notes: str | None = None
    created_at: datetime
