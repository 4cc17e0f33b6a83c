from datetime import datetime, timezone
import logging

from fastapi import APIRouter, HTTPException, Query, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wishlists_app.api.deps import CurrentUserDep, DbSessionDep
from wishlists_app.core.budget import (
    SOURCE_EXTERNAL,
    SOURCE_IN_APP,
    BudgetEntry,
    budget_name,
    build_budgets,
    build_detail,
    effective_total,
)
from wishlists_app.core.config import settings
from wishlists_app.models.models import (
    BudgetGoal,
    BudgetTypeEnum,
    Claim,
    ExternalGift,
    ExternalRecipient,
    Item,
    User,
    Wishlist,
)
from wishlists_app.schemas.budget import (
    BudgetDetail,
    BudgetGoalPublic,
    BudgetLimitUpdate,
    BudgetOverview,
)

logger = logging.getLogger("wishlists.budgets")

router = APIRouter(prefix="/budgets", tags=["budgets"])


def _current_year() -> int:
    return datetime.now(timezone.utc).year


def _num(value) -> float:
    return float(value) if value is not None else 0.0


async def load_budget_entries(db: AsyncSession, user: User) -> list[BudgetEntry]:
    """
    Every gift ``user`` paid for, in-app claims and external gifts alike.

    A claim counts in the year it was made. Its theme is the list's, or the
    one remembered on an orphaned item. Recipients are keyed by profile so
    an external recipient linked to a user merges with that user's lists.
    """
    claim_rows = (
        await db.execute(
            select(Claim, Item, Wishlist)
            .join(Item, Item.id == Claim.item_id)
            .outerjoin(Wishlist, Wishlist.id == Item.wishlist_id)
            .where(Claim.user_id == user.id)
        )
    ).all()
    owner_ids = {
        wishlist.owner_id if wishlist is not None else item.original_owner_id
        for _, item, wishlist in claim_rows
    }
    owner_ids.discard(None)
    owner_names: dict[int, str] = {}
    if owner_ids:
        owners = await db.execute(select(User.id, User.display_name).where(User.id.in_(owner_ids)))
        owner_names = {owner_id: name for owner_id, name in owners.all()}

    entries: list[BudgetEntry] = []
    for claim, item, wishlist in claim_rows:
        owner_id = wishlist.owner_id if wishlist is not None else item.original_owner_id
        entries.append(
            BudgetEntry(
                id=claim.id,
                source=SOURCE_IN_APP,
                title=item.title,
                total=effective_total(claim.paid_amount, item.price, item.shipping_cost),
                date=claim.created_at,
                theme=wishlist.theme if wishlist is not None else item.original_theme,
                recipient_key=f"user:{owner_id}" if owner_id else "unknown",
                recipient_name=owner_names.get(owner_id, "Inconnu"),
                announced_price=_num(item.price),
                shipping_cost=_num(item.shipping_cost),
                paid_amount=float(claim.paid_amount) if claim.paid_amount is not None else None,
                wishlist_name=wishlist.title if wishlist is not None else item.original_wishlist_name,
                wishlist_slug=wishlist.slug if wishlist is not None else None,
            )
        )

    gift_rows = (
        await db.execute(
            select(ExternalGift, ExternalRecipient)
            .join(ExternalRecipient, ExternalRecipient.id == ExternalGift.recipient_id)
            .where(ExternalGift.user_id == user.id)
        )
    ).all()
    for gift, recipient in gift_rows:
        key = f"user:{recipient.profile_id}" if recipient.profile_id else f"external:{recipient.id}"
        entries.append(
            BudgetEntry(
                id=gift.id,
                source=SOURCE_EXTERNAL,
                title=gift.description or "Cadeau",
                total=float(gift.paid_amount),
                date=gift.purchase_date,
                theme=gift.theme,
                recipient_key=key,
                recipient_name=recipient.name,
                paid_amount=float(gift.paid_amount),
            )
        )
    return entries


async def _get_goal(db: AsyncSession, user: User, budget_type: str, year: int) -> BudgetGoal | None:
    result = await db.execute(
        select(BudgetGoal)
        .where(BudgetGoal.user_id == user.id)
        .where(BudgetGoal.type == budget_type)
        .where(BudgetGoal.year == year)
    )
    return result.scalar_one_or_none()


@router.get("", response_model=BudgetOverview)
async def list_budgets(
    db: DbSessionDep,
    current_user: CurrentUserDep,
    year: int | None = Query(default=None, ge=2000, le=2100),
) -> BudgetOverview:
    year = year or _current_year()
    goals = (
        await db.execute(
            select(BudgetGoal).where(BudgetGoal.user_id == current_user.id).where(BudgetGoal.year == year)
        )
    ).scalars().all()
    limits = {goal.type: (goal.id, goal.limit_amount) for goal in goals}
    entries = await load_budget_entries(db, current_user)
    return BudgetOverview(
        year=year,
        currency=settings.default_currency,
        budgets=build_budgets(entries, year, limits),
    )


@router.get("/{budget_type}/{year}", response_model=BudgetDetail)
async def get_budget_detail(
    budget_type: BudgetTypeEnum,
    year: int,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> BudgetDetail:
    goal = await _get_goal(db, current_user, budget_type.value, year)
    entries = await load_budget_entries(db, current_user)
    detail = build_detail(entries, budget_type.value, year, goal.limit_amount if goal else None)
    detail["id"] = goal.id if goal else None
    return BudgetDetail.model_validate(detail)


@router.put("/{budget_type}/{year}", response_model=BudgetGoalPublic)
async def set_budget_limit(
    budget_type: BudgetTypeEnum,
    year: int,
    payload: BudgetLimitUpdate,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> BudgetGoal:
    goal = await _get_goal(db, current_user, budget_type.value, year)
    if goal is None:
        goal = BudgetGoal(
            user_id=current_user.id,
            type=budget_type.value,
            year=year,
            name=budget_name(budget_type.value, year),
            currency=settings.default_currency,
        )
        db.add(goal)
    goal.limit_amount = payload.limit_amount
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Budget updated concurrently, retry") from None
    await db.refresh(goal)
    logger.info("Budget limit set user_id=%s type=%s year=%s", current_user.id, goal.type, year)
    return goal


@router.delete("/{budget_type}/{year}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_budget_limit(
    budget_type: BudgetTypeEnum,
    year: int,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> Response:
    goal = await _get_goal(db, current_user, budget_type.value, year)
    if goal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget not found")
    await db.delete(goal)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
