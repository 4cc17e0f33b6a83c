from dataclasses import dataclass
from typing import Annotated
import logging

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wishlists_app.core.access import AccessStatus, check_access, resolve_role
from wishlists_app.core.claims import OWNER, VIEWER
from wishlists_app.core.security import decode_access_token
from wishlists_app.db.session import get_db
from wishlists_app.models.models import Item, MemberRoleEnum, User, Wishlist, WishlistMember


DbSessionDep = Annotated[AsyncSession, Depends(get_db)]
logger = logging.getLogger("wishlists.auth")


def _extract_token(request: Request, cookie_token: str | None) -> str | None:
    if cookie_token:
        return cookie_token
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    return None


def _subject_id(token: str) -> int | None:
    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        return None
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        return None


async def get_current_user(
    request: Request,
    db: DbSessionDep,
    access_token: str | None = Cookie(default=None, alias="access_token"),
) -> User:
    token = _extract_token(request, access_token)
    if not token:
        logger.info(
            "Auth token missing path=%s ip=%s",
            request.url.path,
            request.client.host if request.client else None,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user_id = _subject_id(token)
    if user_id is None:
        logger.info("Auth token invalid path=%s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = await db.get(User, user_id)
    if not user:
        logger.info("Auth user missing path=%s user_id=%s", request.url.path, user_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


async def get_optional_user(
    request: Request,
    db: DbSessionDep,
    access_token: str | None = Cookie(default=None, alias="access_token"),
) -> User | None:
    token = _extract_token(request, access_token)
    if not token:
        return None
    user_id = _subject_id(token)
    if user_id is None:
        return None
    return await db.get(User, user_id)


CurrentUserDep = Annotated[User, Depends(get_current_user)]
OptionalUserDep = Annotated[User | None, Depends(get_optional_user)]


async def get_wishlist_or_404(db: AsyncSession, slug: str) -> Wishlist:
    result = await db.execute(select(Wishlist).where(Wishlist.slug == slug))
    wishlist = result.scalar_one_or_none()
    if not wishlist:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wishlist not found")
    return wishlist


async def get_membership(db: AsyncSession, wishlist_id: int, user: User | None) -> WishlistMember | None:
    if user is None:
        return None
    result = await db.execute(
        select(WishlistMember)
        .where(WishlistMember.wishlist_id == wishlist_id)
        .where(WishlistMember.user_id == user.id)
    )
    return result.scalar_one_or_none()


@dataclass
class WishlistContext:
    wishlist: Wishlist
    user: User | None
    membership: WishlistMember | None
    role: str
    access: AccessStatus

    @property
    def is_owner(self) -> bool:
        return self.role == OWNER

    @property
    def can_claim(self) -> bool:
        return self.user is not None and self.role == VIEWER

    @property
    def audience(self) -> str:
        """Cache audience: owners see masked items, members see claim state."""
        if self.role == OWNER:
            return "owner"
        if self.role == VIEWER:
            return "member"
        return "guest"


async def load_wishlist_context(db: AsyncSession, slug: str, user: User | None) -> WishlistContext:
    return await context_for(db, await get_wishlist_or_404(db, slug), user)


async def context_for(db: AsyncSession, wishlist: Wishlist, user: User | None) -> WishlistContext:
    membership = await get_membership(db, wishlist.id, user)
    return WishlistContext(
        wishlist=wishlist,
        user=user,
        membership=membership,
        role=resolve_role(wishlist, user, membership),
        access=check_access(wishlist, user, membership),
    )


def require_readable(ctx: WishlistContext) -> None:
    if ctx.access in (AccessStatus.GRANTED, AccessStatus.GUEST):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": "Access to this wishlist is restricted", "access": ctx.access.value},
    )


def require_owner(ctx: WishlistContext) -> None:
    if not ctx.is_owner:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can do this")


def require_editor(ctx: WishlistContext) -> None:
    """Owner, or an approved member holding the editor role."""
    if ctx.is_owner:
        return
    membership = ctx.membership
    if ctx.role == VIEWER and membership is not None and membership.role == MemberRoleEnum.EDITOR.value:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner or an editor can do this")


async def get_listed_item_or_404(db: AsyncSession, item_id: int) -> tuple[Item, Wishlist]:
    item = await db.get(Item, item_id)
    if item is None or item.wishlist_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    wishlist = await db.get(Wishlist, item.wishlist_id)
    if wishlist is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return item, wishlist
