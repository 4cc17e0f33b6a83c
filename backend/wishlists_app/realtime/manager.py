import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from fastapi import WebSocket

from wishlists_app.core.claims import OWNER, VIEWER, item_for_viewer, mask_item_for_owner

logger = logging.getLogger("wishlists.ws")

ITEM_EVENTS = frozenset(
    {
        "item_created",
        "item_updated",
        "item_deleted",
        "item_reserved",
        "item_released",
        "item_purchased",
    }
)
# claim events carry nothing new for the owner once masked
OWNER_SILENT_EVENTS = frozenset({"item_reserved", "item_released", "item_purchased"})


@dataclass
class _Connection:
    websocket: WebSocket
    role: str
    user_id: int | None


class WishlistConnectionManager:
    def __init__(self) -> None:
        self._connections: dict[str, list[_Connection]] = defaultdict(list)

    def count(self, slug: str) -> int:
        return len(self._connections.get(slug, []))

    async def connect(self, slug: str, websocket: WebSocket, role: str, user_id: int | None = None) -> None:
        self._connections[slug].append(_Connection(websocket, role, user_id))
        logger.info("WS connect slug=%s role=%s total=%s", slug, role, self.count(slug))

    def disconnect(self, slug: str, websocket: WebSocket) -> None:
        if slug not in self._connections:
            return
        self._connections[slug] = [c for c in self._connections[slug] if c.websocket is not websocket]
        if not self._connections[slug]:
            self._connections.pop(slug, None)
        else:
            logger.info("WS disconnect slug=%s total=%s", slug, self.count(slug))

    def rename(self, old_slug: str, new_slug: str) -> None:
        if old_slug == new_slug or old_slug not in self._connections:
            return
        self._connections[new_slug].extend(self._connections.pop(old_slug))

    async def broadcast_item_event(self, slug: str, event_type: str, item: dict[str, Any]) -> int:
        """
        Send ``event_type`` for ``item`` to every connection on ``slug``.

        ``item`` still carries its ``claimer_id``. Owners get the masked item,
        and claim events are not sent to them at all. Every other connection
        gets the claim view of its own user. Returns the number of messages
        delivered.
        """
        if event_type not in ITEM_EVENTS:
            raise ValueError(f"Unknown item event {event_type!r}")
        if slug not in self._connections:
            return 0

        owner_payload = mask_item_for_owner(item)
        delivered = 0
        dead: list[WebSocket] = []
        for conn in list(self._connections[slug]):
            if conn.role == OWNER:
                if event_type in OWNER_SILENT_EVENTS:
                    continue
                payload = owner_payload
            else:
                can_claim = conn.role == VIEWER and conn.user_id is not None
                payload = item_for_viewer(item, conn.user_id, can_claim)
            try:
                await conn.websocket.send_json({"type": event_type, "item": payload})
                delivered += 1
            except Exception:
                logger.exception("WS broadcast failed slug=%s role=%s", slug, conn.role)
                dead.append(conn.websocket)

        for websocket in dead:
            self.disconnect(slug, websocket)
        return delivered


manager = WishlistConnectionManager()
