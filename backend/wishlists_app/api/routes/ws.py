import asyncio
import logging
from urllib.parse import unquote

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from wishlists_app.api.deps import DbSessionDep, _subject_id, load_wishlist_context
from wishlists_app.core.access import can_read
from wishlists_app.models.models import User
from wishlists_app.realtime.manager import manager

router = APIRouter(tags=["ws"])
logger = logging.getLogger("wishlists.ws")

WS_PING_INTERVAL = 30   # seconds between server-initiated pings
WS_PING_TIMEOUT = 60    # seconds to wait for pong before closing idle connection
POLICY_VIOLATION = 1008


def _ws_token(websocket: WebSocket) -> str | None:
    auth_header = websocket.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    if websocket.query_params.get("token"):
        return websocket.query_params["token"]
    return websocket.cookies.get("access_token")


@router.websocket("/ws/{wishlist_slug}")
async def wishlist_ws(
    websocket: WebSocket,
    wishlist_slug: str,
    db: DbSessionDep,
) -> None:
    await websocket.accept()
    slug = unquote(wishlist_slug)

    viewer: User | None = None
    token = _ws_token(websocket)
    if token:
        user_id = _subject_id(token)
        if user_id is not None:
            viewer = await db.get(User, user_id)

    try:
        ctx = await load_wishlist_context(db, slug, viewer)
    except HTTPException:
        logger.warning("WS wishlist not found slug=%s", slug)
        await websocket.close(code=POLICY_VIOLATION)
        return
    if not can_read(ctx.access):
        logger.warning("WS access denied slug=%s access=%s", slug, ctx.access.value)
        await websocket.close(code=POLICY_VIOLATION)
        return

    await manager.connect(slug, websocket, ctx.role, viewer.id if viewer else None)

    try:
        while True:
            try:
                await asyncio.wait_for(websocket.receive_text(), timeout=WS_PING_INTERVAL)
            except asyncio.TimeoutError:
                try:
                    await asyncio.wait_for(
                        websocket.send_text('{"type":"ping"}'),
                        timeout=WS_PING_TIMEOUT - WS_PING_INTERVAL,
                    )
                except (asyncio.TimeoutError, RuntimeError):
                    logger.info("WS idle timeout, closing slug=%s", slug)
                    break
    except WebSocketDisconnect:
        logger.info("WS disconnected slug=%s", slug)
    finally:
        manager.disconnect(slug, websocket)
