from time import perf_counter
import logging

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wishlists_app.api.deps import (
    CurrentUserDep,
    DbSessionDep,
    OptionalUserDep,
    WishlistContext,
    context_for,
    get_listed_item_or_404,
)
from wishlists_app.api.presenters import (
    broadcast_item,
    for_viewer,
    invalidate_wishlist_cache,
    item_base,
)
from wishlists_app.core.access import can_read
from wishlists_app.core.audit import AuditAction, audit_claim_action, audit_member_action
from wishlists_app.core.budget import effective_total
from wishlists_app.core.claims import (
    ClaimPlan,
    ReservationOutcome,
    plan_claim,
    reconcile_reservation,
    resolve_claim_view,
)
from wishlists_app.core.formatting import format_price, format_relative_date
from wishlists_app.core.notifications import notify, wishlist_link
from wishlists_app.core.wishlist_metrics import wishlist_metrics
from wishlists_app.models.models import (
    Claim,
    ClaimStatusEnum,
    Item,
    ItemStatusEnum,
    MemberRoleEnum,
    MemberStatusEnum,
    NotificationTypeEnum,
    User,
    Wishlist,
    WishlistMember,
    utcnow,
)
from wishlists_app.schemas.wishlist import (
    ClaimMine,
    ClaimPaidAmount,
    ClaimPublic,
    ClaimPurchase,
    ClaimResult,
    ClaimState,
    ItemPublic,
)

logger = logging.getLogger("wishlists.claims")

router = APIRouter(tags=["claims"])

# one retry after losing the insert race to a claim that was released meanwhile
MAX_RESERVE_ATTEMPTS = 2


def _forbidden(message: str, plan: ClaimPlan, ctx: WishlistContext) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": message, "plan": plan.value, "access": ctx.access.value},
    )


async def _find_claim(db: AsyncSession, item_id: int) -> Claim | None:
    result = await db.execute(select(Claim).where(Claim.item_id == item_id))
    return result.scalar_one_or_none()


async def _set_item_status(db: AsyncSession, item_id: int, item_status: ItemStatusEnum) -> None:
    """Change the item status and leave ``updated_at`` to the owner's own edits."""
    await db.execute(
        update(Item)
        .where(Item.id == item_id)
        .values(status=item_status.value, updated_at=Item.updated_at)
        .execution_options(synchronize_session=False)
    )


async def _get_own_claim(db: AsyncSession, item_id: int, user: User) -> tuple[Item, Wishlist, Claim]:
    item, wishlist = await get_listed_item_or_404(db, item_id)
    claim = await _find_claim(db, item.id)
    if claim is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Claim not found")
    if claim.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the claimer can change this claim")
    return item, wishlist, claim


async def _auto_join(db: AsyncSession, ctx: WishlistContext, user: User, request: Request) -> bool:
    """
    Make ``user`` an active viewer of a public list before reserving.

    Returns False when a concurrent request joined first.
    """
    slug = ctx.wishlist.slug
    wishlist_id = ctx.wishlist.id
    user_id = user.id
    now = utcnow()
    membership = ctx.membership
    if membership is None:
        membership = WishlistMember(
            wishlist_id=ctx.wishlist.id,
            user_id=user.id,
            email=user.email,
            role=MemberRoleEnum.VIEWER.value,
        )
        db.add(membership)
    membership.status = MemberStatusEnum.ACTIVE.value
    membership.approved = True
    membership.joined_at = now
    membership.approved_at = now
    try:
        await db.commit()
    except IntegrityError:
        # a concurrent join from the same user already created the row
        await db.rollback()
        await db.refresh(user)
        await db.refresh(ctx.wishlist)
        logger.info("Auto-join raced slug=%s user_id=%s", slug, user_id)
        return False
    audit_member_action(AuditAction.MEMBER_JOIN, request, user_id, wishlist_id, user_id)
    logger.info("Auto-join slug=%s user_id=%s", slug, user_id)
    return True


def _result(item: Item, claim: Claim, viewer_id: int, joined: bool) -> ClaimResult:
    base = item_base(item, claim.user_id)
    return ClaimResult(
        claim=ClaimPublic.model_validate(claim),
        item=ItemPublic.model_validate(for_viewer(base, viewer_id, can_claim=True)),
        joined=joined,
    )


@router.post("/items/{item_id}/claim", response_model=ClaimResult)
async def claim_item(
    item_id: int,
    request: Request,
    db: DbSessionDep,
    viewer: OptionalUserDep,
) -> ClaimResult:
    start_time = perf_counter()
    item, wishlist = await get_listed_item_or_404(db, item_id)
    ctx = await context_for(db, wishlist, viewer)

    plan = plan_claim(wishlist.visibility, ctx.role, viewer is not None)
    if plan is ClaimPlan.OWNER_FORBIDDEN:
        raise _forbidden("Tu ne peux pas réserver un article de ta propre liste.", plan, ctx)
    if plan is ClaimPlan.LOGIN_REQUIRED:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if plan is ClaimPlan.REQUEST_ACCESS:
        raise _forbidden("Demande l'accès à cette liste pour réserver.", plan, ctx)
    if plan is ClaimPlan.DENIED or not can_read(ctx.access):
        raise _forbidden("Accès refusé.", ClaimPlan.DENIED, ctx)

    joined = False
    if plan is ClaimPlan.AUTO_JOIN:
        joined = await _auto_join(db, ctx, viewer, request)

    slug = wishlist.slug
    wishlist_id = wishlist.id
    viewer_id = viewer.id
    for attempt in range(MAX_RESERVE_ATTEMPTS):
        existing = await _find_claim(db, item_id)
        outcome = reconcile_reservation(existing.user_id if existing else None, viewer_id)
        if outcome is ReservationOutcome.ALREADY_MINE:
            logger.info("Claim already held item_id=%s user_id=%s", item_id, viewer_id)
            await db.refresh(item)
            return _result(item, existing, viewer_id, joined)
        if outcome is ReservationOutcome.CONFLICT:
            duration_ms = (perf_counter() - start_time) * 1000.0
            wishlist_metrics.record_claim(duration_ms, error=False, conflict=True)
            audit_claim_action(AuditAction.CLAIM_CONFLICT, request, viewer_id, item_id, success=False)
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cet article est déjà réservé.")

        claim = Claim(item_id=item_id, user_id=viewer_id, status=ClaimStatusEnum.RESERVED.value)
        db.add(claim)
        try:
            await _set_item_status(db, item_id, ItemStatusEnum.RESERVED)
            await db.commit()
            break
        except IntegrityError:
            await db.rollback()
            for instance in (item, wishlist, viewer):
                await db.refresh(instance)
            logger.info("Claim insert lost race item_id=%s user_id=%s attempt=%s", item_id, viewer_id, attempt + 1)
    else:
        duration_ms = (perf_counter() - start_time) * 1000.0
        wishlist_metrics.record_claim(duration_ms, error=True, conflict=True)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cet article est déjà réservé.")

    await db.refresh(item)
    await db.refresh(claim)

    notify(
        db,
        viewer,
        NotificationTypeEnum.ITEM_RESERVED,
        "Réservation confirmée",
        f"Tu as réservé « {item.title} » sur la liste « {wishlist.title} ».",
        data={"item_id": item_id, "wishlist_slug": slug},
        link=wishlist_link(slug),
    )
    await db.commit()

    await invalidate_wishlist_cache(slug)
    await broadcast_item(slug, "item_reserved", item_base(item, viewer_id))
    audit_claim_action(AuditAction.CLAIM_RESERVE, request, viewer_id, item_id, details={"wishlist_id": wishlist_id})
    duration_ms = (perf_counter() - start_time) * 1000.0
    wishlist_metrics.record_claim(duration_ms, error=False)
    return _result(item, claim, viewer_id, joined)


@router.delete("/items/{item_id}/claim", response_model=ItemPublic)
async def release_claim(
    item_id: int,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> dict:
    item, wishlist, claim = await _get_own_claim(db, item_id, current_user)
    if claim.status == ClaimStatusEnum.PURCHASED.value:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Un article acheté ne peut plus être libéré.",
        )

    reserved = format_relative_date(claim.reserved_at).lower()
    await db.delete(claim)
    await _set_item_status(db, item.id, ItemStatusEnum.AVAILABLE)
    notify(
        db,
        current_user,
        NotificationTypeEnum.ITEM_RELEASED,
        "Réservation annulée",
        f"Tu as libéré « {item.title} » sur la liste « {wishlist.title} », réservé {reserved}.",
        data={"item_id": item.id, "wishlist_slug": wishlist.slug},
        link=wishlist_link(wishlist.slug),
    )
    await db.commit()
    await db.refresh(item)

    base = item_base(item, None)
    await invalidate_wishlist_cache(wishlist.slug)
    await broadcast_item(wishlist.slug, "item_released", base)
    audit_claim_action(AuditAction.CLAIM_RELEASE, request, current_user.id, item.id)
    return for_viewer(base, current_user.id, can_claim=True)


@router.post("/items/{item_id}/claim/purchase", response_model=ClaimResult)
async def purchase_claim(
    item_id: int,
    payload: ClaimPurchase,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> ClaimResult:
    item, wishlist, claim = await _get_own_claim(db, item_id, current_user)
    already_purchased = claim.status == ClaimStatusEnum.PURCHASED.value

    claim.status = ClaimStatusEnum.PURCHASED.value
    if payload.paid_amount is not None:
        claim.paid_amount = payload.paid_amount
    if not already_purchased:
        claim.purchased_at = utcnow()
        total = effective_total(claim.paid_amount, item.price, item.shipping_cost)
        notify(
            db,
            current_user,
            NotificationTypeEnum.ITEM_PURCHASED,
            "Achat enregistré",
            f"« {item.title} » est marqué comme acheté pour {format_price(total, item.currency or 'EUR')}.",
            data={"item_id": item.id, "wishlist_slug": wishlist.slug},
            link=wishlist_link(wishlist.slug),
        )
    await _set_item_status(db, item.id, ItemStatusEnum.PURCHASED)
    await db.commit()
    await db.refresh(item)
    await db.refresh(claim)

    await invalidate_wishlist_cache(wishlist.slug)
    if not already_purchased:
        await broadcast_item(wishlist.slug, "item_purchased", item_base(item, current_user.id))
    audit_claim_action(
        AuditAction.CLAIM_PURCHASE,
        request,
        current_user.id,
        item.id,
        details={"paid_amount": payload.paid_amount},
    )
    return _result(item, claim, current_user.id, joined=False)


@router.put("/items/{item_id}/claim/paid-amount", response_model=ClaimPublic)
async def update_paid_amount(
    item_id: int,
    payload: ClaimPaidAmount,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> Claim:
    _, _, claim = await _get_own_claim(db, item_id, current_user)
    claim.paid_amount = payload.paid_amount
    await db.commit()
    await db.refresh(claim)
    return claim


@router.get("/claims/mine", response_model=list[ClaimMine])
async def list_my_claims(db: DbSessionDep, current_user: CurrentUserDep) -> list[ClaimMine]:
    rows = (
        await db.execute(
            select(Claim, Item, Wishlist, User)
            .join(Item, Item.id == Claim.item_id)
            .outerjoin(Wishlist, Wishlist.id == Item.wishlist_id)
            .outerjoin(User, User.id == Wishlist.owner_id)
            .where(Claim.user_id == current_user.id)
            .order_by(Claim.created_at.desc(), Claim.id.desc())
        )
    ).all()

    orphan_owner_ids = {item.original_owner_id for _, item, wishlist, _ in rows if wishlist is None and item.original_owner_id}
    orphan_owners: dict[int, str] = {}
    if orphan_owner_ids:
        owners = await db.execute(select(User.id, User.display_name).where(User.id.in_(orphan_owner_ids)))
        orphan_owners = {user_id: name for user_id, name in owners.all()}

    result: list[ClaimMine] = []
    for claim, item, wishlist, owner in rows:
        orphaned = wishlist is None
        result.append(
            ClaimMine(
                claim=ClaimPublic.model_validate(claim),
                item_id=item.id,
                item_title=item.title,
                item_url=item.url,
                item_image_url=item.image_url,
                price=float(item.price) if item.price is not None else None,
                shipping_cost=float(item.shipping_cost) if item.shipping_cost is not None else None,
                currency=item.currency,
                effective_total=effective_total(claim.paid_amount, item.price, item.shipping_cost),
                orphaned=orphaned,
                wishlist_slug=None if orphaned else wishlist.slug,
                wishlist_title=item.original_wishlist_name if orphaned else wishlist.title,
                wishlist_theme=item.original_theme if orphaned else wishlist.theme,
                owner_display_name=(
                    orphan_owners.get(item.original_owner_id) if orphaned else (owner.display_name if owner else None)
                ),
            )
        )
    return result


@router.get("/items/{item_id}/claim-state", response_model=ClaimState)
async def get_claim_state(item_id: int, db: DbSessionDep, viewer: OptionalUserDep) -> ClaimState:
    item, wishlist = await get_listed_item_or_404(db, item_id)
    ctx = await context_for(db, wishlist, viewer)
    if not can_read(ctx.access):
        raise _forbidden("Accès refusé.", ClaimPlan.DENIED, ctx)

    claim = await _find_claim(db, item.id)
    view = resolve_claim_view(
        item.status,
        claim.user_id if claim else None,
        viewer.id if viewer else None,
        is_owner=ctx.is_owner,
        can_claim=ctx.can_claim,
    )
    item_status = ItemStatusEnum.AVAILABLE.value if ctx.is_owner else item.status
    plan = None
    if not ctx.is_owner and item_status == ItemStatusEnum.AVAILABLE.value:
        plan = plan_claim(wishlist.visibility, ctx.role, viewer is not None).value
    return ClaimState(item_id=item.id, status=item_status, view=view.value, plan=plan)
