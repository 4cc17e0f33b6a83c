from time import perf_counter
from typing import Annotated, Any, Literal
import logging

from fastapi import APIRouter, HTTPException, Query, Request, status
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from wishlists_app.api.deps import (
    CurrentUserDep,
    DbSessionDep,
    OptionalUserDep,
    load_wishlist_context,
    require_owner,
    require_readable,
)
from wishlists_app.api.presenters import (
    for_owner,
    invalidate_wishlist_cache,
    load_item_bases,
    present,
    wishlist_summary,
)
from wishlists_app.core.audit import AuditAction, audit_wishlist_action
from wishlists_app.core.config import settings
from wishlists_app.core.slugs import unique_wishlist_slug
from wishlists_app.core.sorting import apply_item_view, count_items_by_status
from wishlists_app.core.wishlist_cache import wishlist_cache
from wishlists_app.core.wishlist_metrics import wishlist_metrics
from wishlists_app.models.models import (
    Claim,
    Item,
    MemberStatusEnum,
    User,
    Wishlist,
    WishlistMember,
)
from wishlists_app.realtime.manager import manager
from wishlists_app.schemas.wishlist import (
    AccessPublic,
    ItemCounts,
    WishlistCreate,
    WishlistDeleteResult,
    WishlistDetail,
    WishlistPublic,
    WishlistStats,
    WishlistUpdate,
)

logger = logging.getLogger("wishlists.wishlists")

router = APIRouter(prefix="/wishlists", tags=["wishlists"])

StatusFilter = Literal["all", "available", "reserved", "purchased"]
SortQuery = Annotated[str | None, Query(alias="sort")]
StatusQuery = Annotated[StatusFilter, Query(alias="status")]


def _items_count_subquery():
    return (
        select(Item.wishlist_id, func.count(Item.id).label("n"))
        .where(Item.wishlist_id.is_not(None))
        .group_by(Item.wishlist_id)
        .subquery()
    )


async def _get_cached_detail(slug: str, audience: str) -> dict[str, Any] | None:
    try:
        return await wishlist_cache.get_detail(slug, audience)
    except Exception:
        logger.exception("wishlist_cache.get_detail failed slug=%s", slug)
        return None


async def _set_cached_detail(slug: str, audience: str, payload: dict[str, Any], visibility: str) -> None:
    try:
        await wishlist_cache.set_detail(slug, audience, payload, visibility)
    except Exception:
        logger.exception("wishlist_cache.set_detail failed slug=%s", slug)


@router.get("", response_model=list[WishlistPublic])
async def list_my_wishlists(db: DbSessionDep, current_user: CurrentUserDep) -> list[WishlistPublic]:
    counts = _items_count_subquery()
    rows = (
        await db.execute(
            select(Wishlist, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.wishlist_id == Wishlist.id)
            .where(Wishlist.owner_id == current_user.id)
            .order_by(Wishlist.created_at.desc(), Wishlist.id.desc())
        )
    ).all()
    return [
        WishlistPublic.model_validate(wishlist_summary(wishlist, current_user, count, role="owner"))
        for wishlist, count in rows
    ]


@router.get("/shared", response_model=list[WishlistPublic])
async def list_shared_wishlists(db: DbSessionDep, current_user: CurrentUserDep) -> list[WishlistPublic]:
    counts = _items_count_subquery()
    rows = (
        await db.execute(
            select(Wishlist, User, WishlistMember.role, func.coalesce(counts.c.n, 0))
            .join(WishlistMember, WishlistMember.wishlist_id == Wishlist.id)
            .join(User, User.id == Wishlist.owner_id)
            .outerjoin(counts, counts.c.wishlist_id == Wishlist.id)
            .where(WishlistMember.user_id == current_user.id)
            .where(
                or_(
                    WishlistMember.status == MemberStatusEnum.ACTIVE.value,
                    WishlistMember.approved.is_(True),
                )
            )
            .order_by(Wishlist.created_at.desc(), Wishlist.id.desc())
        )
    ).all()
    return [
        WishlistPublic.model_validate(wishlist_summary(wishlist, owner, count, role=role))
        for wishlist, owner, role, count in rows
    ]


@router.post("", response_model=WishlistPublic, status_code=status.HTTP_201_CREATED)
async def create_wishlist(
    payload: WishlistCreate,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> WishlistPublic:
    wishlist = Wishlist(
        owner_id=current_user.id,
        title=payload.title,
        description=payload.description,
        theme=payload.theme.value,
        visibility=payload.visibility.value,
        event_date=payload.event_date,
        slug=await unique_wishlist_slug(db, payload.title),
    )
    db.add(wishlist)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("create_wishlist slug collision title=%s", payload.title)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Slug already in use, retry") from None
    await db.refresh(wishlist)
    audit_wishlist_action(AuditAction.WISHLIST_CREATE, request, current_user.id, wishlist.id, {"slug": wishlist.slug})
    return WishlistPublic.model_validate(wishlist_summary(wishlist, current_user, 0, role="owner"))


@router.put("/{slug}", response_model=WishlistPublic)
async def update_wishlist(
    slug: str,
    payload: WishlistUpdate,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> WishlistPublic:
    ctx = await load_wishlist_context(db, slug, current_user)
    require_owner(ctx)
    wishlist = ctx.wishlist
    old_slug = wishlist.slug

    update_data = payload.model_dump(exclude_unset=True)
    if update_data.get("title") is None:
        update_data.pop("title", None)
    for key in ("theme", "visibility"):
        if key in update_data:
            if update_data[key] is None:
                update_data.pop(key)
            else:
                update_data[key] = update_data[key].value
    if "title" in update_data and update_data["title"] != wishlist.title:
        wishlist.slug = await unique_wishlist_slug(db, update_data["title"], exclude_id=wishlist.id)
    for key, value in update_data.items():
        setattr(wishlist, key, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Slug already in use, retry") from None
    await db.refresh(wishlist)

    await invalidate_wishlist_cache(old_slug)
    if wishlist.slug != old_slug:
        manager.rename(old_slug, wishlist.slug)
        logger.info("Wishlist slug changed old=%s new=%s", old_slug, wishlist.slug)
    audit_wishlist_action(AuditAction.WISHLIST_UPDATE, request, current_user.id, wishlist.id, {"slug": wishlist.slug})

    items_count = await db.scalar(select(func.count(Item.id)).where(Item.wishlist_id == wishlist.id))
    return WishlistPublic.model_validate(wishlist_summary(wishlist, current_user, items_count or 0, role="owner"))


@router.delete("/{slug}", response_model=WishlistDeleteResult)
async def delete_wishlist(
    slug: str,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> WishlistDeleteResult:
    """
    Delete a list without destroying what guests already committed to.

    Claimed items are detached (``wishlist_id`` NULL) and keep the list's
    name, owner and theme so claimers still find them in their claims and
    budgets. Unclaimed items and memberships go with the list.
    """
    ctx = await load_wishlist_context(db, slug, current_user)
    require_owner(ctx)
    wishlist = ctx.wishlist
    wishlist_id = wishlist.id

    orphaned = await db.execute(
        update(Item)
        .where(Item.wishlist_id == wishlist_id)
        .where(Item.id.in_(select(Claim.item_id)))
        .values(
            wishlist_id=None,
            original_wishlist_name=wishlist.title,
            original_owner_id=wishlist.owner_id,
            original_theme=wishlist.theme,
        )
        .execution_options(synchronize_session=False)
    )
    orphaned_count = orphaned.rowcount or 0
    await db.execute(
        delete(Item).where(Item.wishlist_id == wishlist_id).execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(WishlistMember)
        .where(WishlistMember.wishlist_id == wishlist_id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(Wishlist).where(Wishlist.id == wishlist_id).execution_options(synchronize_session=False)
    )
    await db.commit()

    await invalidate_wishlist_cache(slug)
    audit_wishlist_action(
        AuditAction.WISHLIST_DELETE,
        request,
        current_user.id,
        wishlist_id,
        {"slug": slug, "orphaned_count": orphaned_count},
    )
    logger.info("Wishlist deleted slug=%s orphaned=%s", slug, orphaned_count)

    if orphaned_count:
        message = f"Liste supprimée. {orphaned_count} cadeau(x) déjà réservé(s) reste(nt) chez les participants."
    else:
        message = "Liste supprimée."
    return WishlistDeleteResult(action="deleted", message=message, orphaned_count=orphaned_count)


@router.get("/{slug}", response_model=WishlistDetail)
async def get_wishlist(
    slug: str,
    db: DbSessionDep,
    viewer: OptionalUserDep,
    sort: SortQuery = None,
    status_filter: StatusQuery = "all",
) -> WishlistDetail:
    ctx = await load_wishlist_context(db, slug, viewer)
    require_readable(ctx)
    wishlist = ctx.wishlist

    start_time = perf_counter()
    cached = await _get_cached_detail(wishlist.slug, ctx.audience)
    try:
        if cached is None:
            owner = await db.get(User, wishlist.owner_id)
            bases = await load_item_bases(db, wishlist.id)
            if ctx.is_owner:
                bases = [for_owner(base) for base in bases]
            cached_payload = {
                "wishlist": wishlist_summary(wishlist, owner, len(bases)),
                "items": bases,
            }
            await _set_cached_detail(wishlist.slug, ctx.audience, cached_payload, wishlist.visibility)
        else:
            cached_payload = cached

        items = [present(base, ctx) for base in cached_payload["items"]]
        counts = count_items_by_status(items)
        visible = apply_item_view(items, sort, status_filter)
        detail = WishlistDetail.model_validate(
            {
                **cached_payload["wishlist"],
                "role": ctx.role,
                "access": ctx.access.value,
                "can_claim": ctx.can_claim,
                "sort": sort,
                "status_filter": status_filter,
                "counts": ItemCounts(**counts),
                "items": visible,
            }
        )
    except Exception:
        duration_ms = (perf_counter() - start_time) * 1000.0
        wishlist_metrics.record_detail(duration_ms, cached=cached is not None, error=True)
        logger.exception("get_wishlist failed slug=%s", slug)
        raise

    duration_ms = (perf_counter() - start_time) * 1000.0
    slow = duration_ms >= settings.wishlist_slow_ms
    wishlist_metrics.record_detail(duration_ms, cached=cached is not None, error=False, slow=slow)
    if slow:
        logger.warning(
            "get_wishlist slow slug=%s cached=%s duration_ms=%.2f", slug, cached is not None, duration_ms
        )
    return detail


@router.get("/{slug}/stats", response_model=WishlistStats)
async def get_wishlist_stats(slug: str, db: DbSessionDep, viewer: OptionalUserDep) -> WishlistStats:
    ctx = await load_wishlist_context(db, slug, viewer)
    require_readable(ctx)
    rows = (
        await db.execute(
            select(Item.status, func.count(Item.id))
            .where(Item.wishlist_id == ctx.wishlist.id)
            .group_by(Item.status)
        )
    ).all()
    by_status = {item_status: count for item_status, count in rows}
    total = sum(by_status.values())
    if ctx.is_owner:
        return WishlistStats(total=total)
    return WishlistStats(
        total=total,
        available=by_status.get("available", 0),
        reserved=by_status.get("reserved", 0),
        purchased=by_status.get("purchased", 0),
    )


@router.get("/{slug}/access", response_model=AccessPublic)
async def get_wishlist_access(slug: str, db: DbSessionDep, viewer: OptionalUserDep) -> AccessPublic:
    ctx = await load_wishlist_context(db, slug, viewer)
    return AccessPublic(
        slug=ctx.wishlist.slug,
        role=ctx.role,
        access=ctx.access.value,
        member_status=ctx.membership.status if ctx.membership else None,
    )
