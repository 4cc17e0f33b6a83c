from fastapi import APIRouter, HTTPException, status
from sqlalchemy import func, select

from wishlists_app.api.deps import DbSessionDep
from wishlists_app.models.models import Item, User, VisibilityEnum, Wishlist
from wishlists_app.schemas.auth import ProfilePublic, ProfileWishlist

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/{username}", response_model=ProfilePublic)
async def get_public_profile(username: str, db: DbSessionDep) -> ProfilePublic:
    result = await db.execute(select(User).where(User.username == username.lower()))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")

    total = await db.scalar(select(func.count(Wishlist.id)).where(Wishlist.owner_id == user.id))
    items_count = (
        select(Item.wishlist_id, func.count(Item.id).label("n"))
        .group_by(Item.wishlist_id)
        .subquery()
    )
    rows = (
        await db.execute(
            select(Wishlist, func.coalesce(items_count.c.n, 0))
            .outerjoin(items_count, items_count.c.wishlist_id == Wishlist.id)
            .where(Wishlist.owner_id == user.id)
            .where(Wishlist.visibility == VisibilityEnum.PUBLIC.value)
            .order_by(Wishlist.created_at.desc(), Wishlist.id.desc())
        )
    ).all()

    return ProfilePublic(
        username=user.username,
        display_name=user.display_name,
        bio=user.bio,
        avatar_url=user.avatar_url,
        member_since=user.created_at,
        total_wishlists=total or 0,
        total_public_wishlists=len(rows),
        wishlists=[
            ProfileWishlist(
                slug=wishlist.slug,
                title=wishlist.title,
                description=wishlist.description,
                theme=wishlist.theme,
                event_date=wishlist.event_date,
                items_count=count,
            )
            for wishlist, count in rows
        ],
    )
