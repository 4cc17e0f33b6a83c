import re
import unicodedata

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wishlists_app.models.models import User, Wishlist

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str, fallback: str = "liste") -> str:
    """Accent-stripped kebab case: 'Noël 2025 !' -> 'noel-2025'."""
    decomposed = unicodedata.normalize("NFD", text or "")
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()
    slug = _NON_ALNUM.sub("-", ascii_only).strip("-")
    return slug[:200].strip("-") or fallback


async def unique_wishlist_slug(db: AsyncSession, title: str, exclude_id: int | None = None) -> str:
    base = slugify(title)
    query = select(Wishlist.slug).where(
        (Wishlist.slug == base) | Wishlist.slug.like(f"{base}-%")
    )
    if exclude_id is not None:
        query = query.where(Wishlist.id != exclude_id)
    taken = set((await db.execute(query)).scalars().all())
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def username_base(email: str) -> str:
    local_part = (email or "").split("@", 1)[0]
    return slugify(local_part, fallback="user").replace("-", "_")[:40]


async def unique_username(db: AsyncSession, email: str) -> str:
    base = username_base(email)
    taken = set(
        (
            await db.execute(
                select(User.username).where((User.username == base) | User.username.like(f"{base}%"))
            )
        ).scalars().all()
    )
    if base not in taken:
        return base
    suffix = 1
    while f"{base}{suffix}" in taken:
        suffix += 1
    return f"{base}{suffix}"
