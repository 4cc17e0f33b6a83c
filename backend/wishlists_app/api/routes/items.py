from typing import Annotated, Literal
import logging

from fastapi import APIRouter, HTTPException, Query, Response, status
from sqlalchemy import delete, func, select

from wishlists_app.api.deps import (
    CurrentUserDep,
    DbSessionDep,
    OptionalUserDep,
    context_for,
    get_listed_item_or_404,
    load_wishlist_context,
    require_editor,
    require_owner,
    require_readable,
)
from wishlists_app.api.presenters import (
    broadcast_item,
    claimer_of,
    invalidate_wishlist_cache,
    item_base,
    load_item_bases,
    present,
)
from wishlists_app.core.sorting import apply_item_view
from wishlists_app.models.models import Claim, Item
from wishlists_app.schemas.wishlist import ItemCreate, ItemPublic, ItemReorder, ItemUpdate

logger = logging.getLogger("wishlists.items")

router = APIRouter(tags=["items"])

SortQuery = Annotated[str | None, Query(alias="sort")]
StatusQuery = Annotated[Literal["all", "available", "reserved", "purchased"], Query(alias="status")]


@router.get("/wishlists/{slug}/items", response_model=list[ItemPublic])
async def list_items(
    slug: str,
    db: DbSessionDep,
    viewer: OptionalUserDep,
    sort: SortQuery = None,
    status_filter: StatusQuery = "all",
) -> list[dict]:
    ctx = await load_wishlist_context(db, slug, viewer)
    require_readable(ctx)
    items = [present(base, ctx) for base in await load_item_bases(db, ctx.wishlist.id)]
    return apply_item_view(items, sort, status_filter)


@router.post("/wishlists/{slug}/items", response_model=ItemPublic, status_code=status.HTTP_201_CREATED)
async def create_item(
    slug: str,
    payload: ItemCreate,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> dict:
    ctx = await load_wishlist_context(db, slug, current_user)
    require_editor(ctx)
    wishlist = ctx.wishlist

    position = await db.scalar(select(func.count(Item.id)).where(Item.wishlist_id == wishlist.id))
    data = payload.model_dump()
    data["priority"] = payload.priority.value
    item = Item(wishlist_id=wishlist.id, position=position or 0, **data)
    db.add(item)
    await db.commit()
    await db.refresh(item)

    base = item_base(item, None)
    await invalidate_wishlist_cache(wishlist.slug)
    await broadcast_item(wishlist.slug, "item_created", base)
    logger.info("Item created slug=%s item_id=%s user_id=%s", wishlist.slug, item.id, current_user.id)
    return present(base, ctx)


@router.put("/items/{item_id}", response_model=ItemPublic)
async def update_item(
    item_id: int,
    payload: ItemUpdate,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> dict:
    item, wishlist = await get_listed_item_or_404(db, item_id)
    ctx = await context_for(db, wishlist, current_user)
    require_editor(ctx)

    update_data = payload.model_dump(exclude_unset=True)
    for key in ("title", "currency", "priority", "quantity"):
        if key in update_data and update_data[key] is None:
            update_data.pop(key)
    if "title" in update_data:
        update_data["title"] = update_data["title"].strip()
    if "currency" in update_data:
        update_data["currency"] = update_data["currency"].upper()
    if "priority" in update_data:
        update_data["priority"] = update_data["priority"].value
    for key, value in update_data.items():
        setattr(item, key, value)

    await db.commit()
    await db.refresh(item)

    base = item_base(item, await claimer_of(db, item.id))
    await invalidate_wishlist_cache(wishlist.slug)
    await broadcast_item(wishlist.slug, "item_updated", base)
    return present(base, ctx)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(item_id: int, db: DbSessionDep, current_user: CurrentUserDep) -> Response:
    item, wishlist = await get_listed_item_or_404(db, item_id)
    ctx = await context_for(db, wishlist, current_user)
    require_owner(ctx)

    if await db.scalar(select(Claim.id).where(Claim.item_id == item.id)) is not None:
        # neutral wording: the owner must not learn that the item is claimed
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cet article ne peut pas être supprimé pour le moment.",
        )

    base = item_base(item, None)
    await db.execute(delete(Item).where(Item.id == item_id).execution_options(synchronize_session=False))
    await db.commit()

    await invalidate_wishlist_cache(wishlist.slug)
    await broadcast_item(wishlist.slug, "item_deleted", base)
    logger.info("Item deleted slug=%s item_id=%s", wishlist.slug, item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/wishlists/{slug}/items/reorder", response_model=list[ItemPublic])
async def reorder_items(
    slug: str,
    payload: ItemReorder,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> list[dict]:
    ctx = await load_wishlist_context(db, slug, current_user)
    require_owner(ctx)

    items = (await db.execute(select(Item).where(Item.wishlist_id == ctx.wishlist.id))).scalars().all()
    by_id = {item.id: item for item in items}
    if len(payload.item_ids) != len(set(payload.item_ids)) or set(payload.item_ids) != set(by_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="item_ids must list every item of the wishlist exactly once",
        )
    for position, item_id in enumerate(payload.item_ids):
        by_id[item_id].position = position
    await db.commit()

    await invalidate_wishlist_cache(ctx.wishlist.slug)
    return [present(base, ctx) for base in await load_item_bases(db, ctx.wishlist.id)]
