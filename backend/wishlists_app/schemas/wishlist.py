from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from wishlists_app.models.models import (
    ClaimStatusEnum,
    ItemPriorityEnum,
    ItemStatusEnum,
    ThemeEnum,
    VisibilityEnum,
)


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class WishlistBase(BaseModel):
    title: str = Field(min_length=2, max_length=120)
    description: str | None = Field(default=None, max_length=1000)
    theme: ThemeEnum = ThemeEnum.OTHER
    visibility: VisibilityEnum = VisibilityEnum.PRIVATE
    event_date: date | None = None

    @field_validator("title")
    @classmethod
    def _wishlist_title_strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("description")
    @classmethod
    def _wishlist_description_strip(cls, value: str | None) -> str | None:
        return _strip_or_none(value)


class WishlistCreate(WishlistBase):
    pass


class WishlistUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=2, max_length=120)
    description: str | None = Field(default=None, max_length=1000)
    theme: ThemeEnum | None = None
    visibility: VisibilityEnum | None = None
    event_date: date | None = None

    @field_validator("title")
    @classmethod
    def _title_strip(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None

    @field_validator("description")
    @classmethod
    def _description_strip(cls, value: str | None) -> str | None:
        return _strip_or_none(value)


class ItemCounts(BaseModel):
    all: int = 0
    available: int = 0
    reserved: int = 0
    purchased: int = 0


class WishlistPublic(BaseModel):
    id: int
    slug: str
    title: str
    description: str | None = None
    theme: str
    visibility: str
    event_date: date | None = None
    owner_id: int
    owner_username: str | None = None
    owner_display_name: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    items_count: int = 0
    role: str | None = None


class WishlistDeleteResult(BaseModel):
    action: str
    message: str
    orphaned_count: int


class WishlistStats(BaseModel):
    total: int
    available: int | None = None
    reserved: int | None = None
    purchased: int | None = None


class AccessPublic(BaseModel):
    slug: str
    role: str
    access: str
    member_status: str | None = None


class ItemBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    note: str | None = Field(default=None, max_length=2000)
    url: str | None = Field(default=None, max_length=2048)
    image_url: str | None = Field(default=None, max_length=2048)
    price: float | None = Field(default=None, ge=0)
    shipping_cost: float | None = Field(default=None, ge=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    priority: ItemPriorityEnum = ItemPriorityEnum.MEDIUM
    quantity: int = Field(default=1, ge=1, le=99)
    size: str | None = Field(default=None, max_length=60)
    color: str | None = Field(default=None, max_length=60)
    model: str | None = Field(default=None, max_length=120)
    promo_code: str | None = Field(default=None, max_length=60)

    @field_validator("title")
    @classmethod
    def _title_strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("note", "url", "image_url", "size", "color", "model", "promo_code")
    @classmethod
    def _normalize(cls, value: str | None) -> str | None:
        return _strip_or_none(value)

    @field_validator("currency")
    @classmethod
    def _currency_upper(cls, value: str) -> str:
        return value.upper()


class ItemCreate(ItemBase):
    pass


class ItemUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    note: str | None = Field(default=None, max_length=2000)
    url: str | None = Field(default=None, max_length=2048)
    image_url: str | None = Field(default=None, max_length=2048)
    price: float | None = Field(default=None, ge=0)
    shipping_cost: float | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    priority: ItemPriorityEnum | None = None
    quantity: int | None = Field(default=None, ge=1, le=99)
    size: str | None = Field(default=None, max_length=60)
    color: str | None = Field(default=None, max_length=60)
    model: str | None = Field(default=None, max_length=120)
    promo_code: str | None = Field(default=None, max_length=60)


class ItemPublic(BaseModel):
    id: int
    wishlist_id: int | None = None
    title: str
    note: str | None = None
    url: str | None = None
    image_url: str | None = None
    price: float | None = None
    shipping_cost: float | None = None
    currency: str = "EUR"
    priority: str
    status: str = ItemStatusEnum.AVAILABLE.value
    quantity: int = 1
    position: int = 0
    size: str | None = None
    color: str | None = None
    model: str | None = None
    promo_code: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    # absent from owner views
    claim_view: str | None = None
    claimed_by_me: bool | None = None


class WishlistDetail(WishlistPublic):
    access: str
    can_claim: bool = False
    sort: str | None = None
    status_filter: str = "all"
    counts: ItemCounts
    items: list[ItemPublic]


class ItemReorder(BaseModel):
    item_ids: list[int] = Field(min_length=1)


class ClaimPurchase(BaseModel):
    paid_amount: float | None = Field(default=None, ge=0)


class ClaimPaidAmount(BaseModel):
    paid_amount: float = Field(ge=0)


class ClaimPublic(BaseModel):
    id: int
    item_id: int
    status: ClaimStatusEnum
    paid_amount: float | None = None
    reserved_at: datetime
    purchased_at: datetime | None = None

    model_config = {"from_attributes": True}


class ClaimResult(BaseModel):
    claim: ClaimPublic
    item: ItemPublic
    joined: bool = False


class ClaimMine(BaseModel):
    claim: ClaimPublic
    item_id: int
    item_title: str
    item_url: str | None = None
    item_image_url: str | None = None
    price: float | None = None
    shipping_cost: float | None = None
    currency: str = "EUR"
    effective_total: float
    orphaned: bool
    wishlist_slug: str | None = None
    wishlist_title: str | None = None
    wishlist_theme: str | None = None
    owner_display_name: str | None = None


class ClaimState(BaseModel):
    item_id: int
    status: str
    view: str
    plan: str | None = None
