class NullWishlistCache:
    """Drop-in used when WISHLIST_CACHE_ENABLED is false."""

    async def get_detail(self, slug: str, audience: str):
        return None

    async def set_detail(self, slug: str, audience: str, payload: dict, visibility: str | None = None):
        return False

    async def invalidate_wishlist(self, slug: str):
        return 0

    async def ping(self):
        return True

    async def get_stats(self):
        return {"enabled": False}
