from enum import Enum
from typing import Any

from wishlists_app.core.claims import OWNER, VIEWER, VISITOR
from wishlists_app.models.models import MemberStatusEnum, VisibilityEnum


class AccessStatus(str, Enum):
    GRANTED = "granted"
    GUEST = "guest"
    PENDING = "pending"
    DENIED = "denied"


READABLE = frozenset({AccessStatus.GRANTED, AccessStatus.GUEST})


def is_approved_member(membership: Any | None) -> bool:
    if membership is None:
        return False
    return bool(membership.approved) or membership.status == MemberStatusEnum.ACTIVE.value


def resolve_role(wishlist: Any, user: Any | None, membership: Any | None = None) -> str:
    """owner, viewer (active or approved member) or visitor."""
    if user is not None and user.id == wishlist.owner_id:
        return OWNER
    if user is not None and is_approved_member(membership):
        return VIEWER
    return VISITOR


def check_access(wishlist: Any, user: Any | None, membership: Any | None = None) -> AccessStatus:
    visibility = wishlist.visibility
    if user is None:
        if visibility == VisibilityEnum.PRIVATE.value:
            return AccessStatus.DENIED
        return AccessStatus.GUEST

    if user.id == wishlist.owner_id or is_approved_member(membership):
        return AccessStatus.GRANTED

    if membership is not None:
        if membership.status == MemberStatusEnum.REFUSED.value:
            return AccessStatus.DENIED
        # unanswered invitation to a public list: still readable as guest
        if visibility == VisibilityEnum.PUBLIC.value and membership.status == MemberStatusEnum.INVITED.value:
            return AccessStatus.GUEST
        return AccessStatus.PENDING

    if visibility == VisibilityEnum.PUBLIC.value:
        return AccessStatus.GUEST
    return AccessStatus.DENIED


def can_read(status: AccessStatus) -> bool:
    return status in READABLE
