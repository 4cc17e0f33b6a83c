"""Item payloads per audience, cache plumbing and realtime fan-out shared by routers."""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wishlists_app.api.deps import WishlistContext
from wishlists_app.core.claims import item_for_viewer, mask_item_for_owner
from wishlists_app.core.wishlist_cache import wishlist_cache
from wishlists_app.models.models import Claim, Item, User, Wishlist
from wishlists_app.realtime.manager import manager

logger = logging.getLogger("wishlists.items")

ITEM_FIELDS = (
    "id",
    "wishlist_id",
    "title",
    "note",
    "url",
    "image_url",
    "currency",
    "priority",
    "status",
    "quantity",
    "position",
    "size",
    "color",
    "model",
    "promo_code",
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def item_base(item: Item, claimer_id: int | None) -> dict[str, Any]:
    """JSON-safe item dict carrying its claimer; never sent as is."""
    data = {name: getattr(item, name) for name in ITEM_FIELDS}
    data["price"] = float(item.price) if item.price is not None else None
    data["shipping_cost"] = float(item.shipping_cost) if item.shipping_cost is not None else None
    data["created_at"] = _iso(item.created_at)
    data["updated_at"] = _iso(item.updated_at)
    data["claimer_id"] = claimer_id
    return data


def for_owner(base: dict[str, Any]) -> dict[str, Any]:
    return mask_item_for_owner(base)


def for_viewer(base: dict[str, Any], viewer_id: int | None, can_claim: bool) -> dict[str, Any]:
    return item_for_viewer(base, viewer_id, can_claim)


def present(base: dict[str, Any], ctx: WishlistContext) -> dict[str, Any]:
    if ctx.is_owner:
        return for_owner(base)
    return for_viewer(base, ctx.user.id if ctx.user else None, ctx.can_claim)


async def load_item_bases(db: AsyncSession, wishlist_id: int) -> list[dict[str, Any]]:
    rows = (
        await db.execute(
            select(Item, Claim.user_id)
            .outerjoin(Claim, Claim.item_id == Item.id)
            .where(Item.wishlist_id == wishlist_id)
            .order_by(Item.position, Item.id)
        )
    ).all()
    return [item_base(item, claimer_id) for item, claimer_id in rows]


async def claimer_of(db: AsyncSession, item_id: int) -> int | None:
    return await db.scalar(select(Claim.user_id).where(Claim.item_id == item_id))


def wishlist_summary(wishlist: Wishlist, owner: User | None, items_count: int, role: str | None = None) -> dict[str, Any]:
    return {
        "id": wishlist.id,
        "slug": wishlist.slug,
        "title": wishlist.title,
        "description": wishlist.description,
        "theme": wishlist.theme,
        "visibility": wishlist.visibility,
        "event_date": wishlist.event_date.isoformat() if wishlist.event_date else None,
        "owner_id": wishlist.owner_id,
        "owner_username": owner.username if owner else None,
        "owner_display_name": owner.display_name if owner else None,
        "created_at": _iso(wishlist.created_at),
        "updated_at": _iso(wishlist.updated_at),
        "items_count": items_count,
        "role": role,
    }


async def invalidate_wishlist_cache(slug: str) -> None:
    try:
        await wishlist_cache.invalidate_wishlist(slug)
    except Exception:
        logger.exception("wishlist_cache.invalidate_wishlist failed slug=%s", slug)


async def broadcast_item(slug: str, event_type: str, base: dict[str, Any]) -> None:
    try:
        await manager.broadcast_item_event(slug, event_type, base)
    except Exception:
        logger.exception("Realtime broadcast failed slug=%s event=%s", slug, event_type)
