from datetime import date, datetime, timezone
from enum import Enum as StrEnumBase

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wishlists_app.db.session import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VisibilityEnum(str, StrEnumBase):
    PRIVATE = "private"
    SHARED = "shared"
    PUBLIC = "public"


class ThemeEnum(str, StrEnumBase):
    CHRISTMAS = "christmas"
    BIRTHDAY = "birthday"
    BIRTH = "birth"
    WEDDING = "wedding"
    OTHER = "other"


class ItemPriorityEnum(str, StrEnumBase):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ItemStatusEnum(str, StrEnumBase):
    AVAILABLE = "available"
    RESERVED = "reserved"
    PURCHASED = "purchased"


class ClaimStatusEnum(str, StrEnumBase):
    RESERVED = "reserved"
    PURCHASED = "purchased"


class MemberRoleEnum(str, StrEnumBase):
    VIEWER = "viewer"
    EDITOR = "editor"


class MemberStatusEnum(str, StrEnumBase):
    ACTIVE = "active"
    INVITED = "invited"
    PENDING = "pending"
    REFUSED = "refused"


class NotificationTypeEnum(str, StrEnumBase):
    LIST_INVITATION = "list_invitation"
    ACCESS_REQUEST = "access_request"
    ACCESS_GRANTED = "access_granted"
    ACCESS_REFUSED = "access_refused"
    MEMBER_LEFT = "member_left"
    ITEM_RESERVED = "item_reserved"
    ITEM_RELEASED = "item_released"
    ITEM_PURCHASED = "item_purchased"


class BudgetTypeEnum(str, StrEnumBase):
    ANNUAL = "annual"
    CHRISTMAS = "christmas"
    BIRTHDAY = "birthday"
    BIRTH = "birth"
    WEDDING = "wedding"
    OTHER = "other"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    username: Mapped[str] = mapped_column(String(60), unique=True, index=True, nullable=False)
    bio: Mapped[str | None] = mapped_column(String(500), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    wishlists: Mapped[list["Wishlist"]] = relationship(back_populates="owner")
    claims: Mapped[list["Claim"]] = relationship(back_populates="user")


class Wishlist(Base):
    __tablename__ = "wishlists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    theme: Mapped[str] = mapped_column(String(20), default=ThemeEnum.OTHER.value)
    visibility: Mapped[str] = mapped_column(String(20), default=VisibilityEnum.PRIVATE.value)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=utcnow,
    )

    owner: Mapped[User] = relationship(back_populates="wishlists")
    items: Mapped[list["Item"]] = relationship(back_populates="wishlist")
    members: Mapped[list["WishlistMember"]] = relationship(
        back_populates="wishlist",
        cascade="all, delete-orphan",
    )


class Item(Base):
    __tablename__ = "items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # NULL once the owning list is deleted while the item was claimed
    wishlist_id: Mapped[int | None] = mapped_column(
        ForeignKey("wishlists.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    price: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    shipping_cost: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    priority: Mapped[str] = mapped_column(String(10), default=ItemPriorityEnum.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(20), default=ItemStatusEnum.AVAILABLE.value, index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    position: Mapped[int] = mapped_column(Integer, default=0)
    size: Mapped[str | None] = mapped_column(String(60), nullable=True)
    color: Mapped[str | None] = mapped_column(String(60), nullable=True)
    model: Mapped[str | None] = mapped_column(String(120), nullable=True)
    promo_code: Mapped[str | None] = mapped_column(String(60), nullable=True)
    original_wishlist_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    original_owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    original_theme: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=utcnow,
    )

    wishlist: Mapped[Wishlist | None] = relationship(back_populates="items")
    claim: Mapped["Claim | None"] = relationship(
        back_populates="item",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("price IS NULL OR price >= 0", name="ck_items_price_non_negative"),
        CheckConstraint("quantity >= 1", name="ck_items_quantity_positive"),
    )


class Claim(Base):
    __tablename__ = "claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # unique: one claim per item, the race arbiter for concurrent reservations
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="CASCADE"),
        unique=True,
        index=True,
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ClaimStatusEnum.RESERVED.value)
    paid_amount: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    reserved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    purchased_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=utcnow,
    )

    item: Mapped[Item] = relationship(back_populates="claim")
    user: Mapped[User] = relationship(back_populates="claims")


class WishlistMember(Base):
    __tablename__ = "wishlist_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    wishlist_id: Mapped[int] = mapped_column(
        ForeignKey("wishlists.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), index=True, nullable=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=MemberRoleEnum.VIEWER.value)
    status: Mapped[str] = mapped_column(String(20), default=MemberStatusEnum.INVITED.value)
    approved: Mapped[bool] = mapped_column(Boolean, default=False)
    message: Mapped[str | None] = mapped_column(String(500), nullable=True)
    requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    wishlist: Mapped[Wishlist] = relationship(back_populates="members")
    user: Mapped[User | None] = relationship()

    __table_args__ = (
        UniqueConstraint("wishlist_id", "user_id", name="uq_wishlist_members_user"),
        UniqueConstraint("wishlist_id", "email", name="uq_wishlist_members_email"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict] = mapped_column(JSON, default=dict)
    read: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class BudgetGoal(Base):
    __tablename__ = "budget_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    limit_amount: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "type", "year", name="uq_budget_goals_user_type_year"),
        CheckConstraint(
            "limit_amount IS NULL OR limit_amount >= 0",
            name="ck_budget_goals_limit_non_negative",
        ),
    )


class ExternalRecipient(Base):
    __tablename__ = "external_recipients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    profile_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    gifts: Mapped[list["ExternalGift"]] = relationship(
        back_populates="recipient",
        cascade="all, delete-orphan",
    )
    profile: Mapped[User | None] = relationship(foreign_keys=[profile_id])


class ExternalGift(Base):
    __tablename__ = "external_gifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    recipient_id: Mapped[int] = mapped_column(
        ForeignKey("external_recipients.id", ondelete="CASCADE"),
        index=True,
    )
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    theme: Mapped[str] = mapped_column(String(20), default=ThemeEnum.OTHER.value)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    recipient: Mapped[ExternalRecipient] = relationship(back_populates="gifts")

    __table_args__ = (
        CheckConstraint("paid_amount >= 0", name="ck_external_gifts_paid_non_negative"),
    )
