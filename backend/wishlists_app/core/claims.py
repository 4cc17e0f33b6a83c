"""
Claim state machine.

An item carries at most one claim. The database enforces that with a unique
constraint on ``claims.item_id``; the functions here decide what a viewer is
shown, what a claim request should do, and how a reservation that lost the
race on that constraint is settled.
"""
from collections.abc import Mapping
from enum import Enum
from typing import Any

from wishlists_app.models.models import ClaimStatusEnum, ItemStatusEnum, VisibilityEnum

OWNER = "owner"
VIEWER = "viewer"
VISITOR = "visitor"


class ClaimView(str, Enum):
    HIDDEN = "hidden"
    RESERVE = "reserve"
    RESERVE_DISABLED = "reserve_disabled"
    CANCEL = "cancel"
    PURCHASED_BY_ME = "purchased_by_me"
    RESERVED_BY_OTHER = "reserved_by_other"


class ClaimPlan(str, Enum):
    OWNER_FORBIDDEN = "owner_forbidden"
    LOGIN_REQUIRED = "login_required"
    RESERVE = "reserve"
    AUTO_JOIN = "auto_join"
    REQUEST_ACCESS = "request_access"
    DENIED = "denied"


class ReservationOutcome(str, Enum):
    ALREADY_MINE = "already_mine"
    CONFLICT = "conflict"
    RETRY = "retry"


def resolve_claim_view(
    item_status: str,
    claimer_id: int | None,
    viewer_id: int | None,
    is_owner: bool,
    can_claim: bool,
) -> ClaimView:
    if is_owner:
        return ClaimView.HIDDEN
    if item_status == ItemStatusEnum.AVAILABLE.value or claimer_id is None:
        if can_claim and viewer_id is not None:
            return ClaimView.RESERVE
        return ClaimView.RESERVE_DISABLED
    if viewer_id is not None and claimer_id == viewer_id:
        if item_status == ItemStatusEnum.PURCHASED.value:
            return ClaimView.PURCHASED_BY_ME
        return ClaimView.CANCEL
    return ClaimView.RESERVED_BY_OTHER


def plan_claim(visibility: str, role: str, authenticated: bool) -> ClaimPlan:
    if role == OWNER:
        return ClaimPlan.OWNER_FORBIDDEN
    if not authenticated:
        return ClaimPlan.LOGIN_REQUIRED
    if role == VIEWER:
        return ClaimPlan.RESERVE
    if visibility == VisibilityEnum.PUBLIC.value:
        return ClaimPlan.AUTO_JOIN
    if visibility == VisibilityEnum.SHARED.value:
        return ClaimPlan.REQUEST_ACCESS
    return ClaimPlan.DENIED


def reconcile_reservation(existing_claimer_id: int | None, viewer_id: int) -> ReservationOutcome:
    """
    Settle an insert rejected by the one-claim-per-item constraint.

    ``existing_claimer_id`` is the claimer of the claim found after the
    rollback, or None when it was released in the meantime.
    """
    if existing_claimer_id is None:
        return ReservationOutcome.RETRY
    if existing_claimer_id == viewer_id:
        return ReservationOutcome.ALREADY_MINE
    return ReservationOutcome.CONFLICT


def item_status_for_claim(claim_status: str | None) -> str:
    if claim_status == ClaimStatusEnum.PURCHASED.value:
        return ItemStatusEnum.PURCHASED.value
    if claim_status == ClaimStatusEnum.RESERVED.value:
        return ItemStatusEnum.RESERVED.value
    return ItemStatusEnum.AVAILABLE.value


CLAIM_FIELDS = ("claim", "claim_view", "claimed_by_me", "claimer_id", "claimed_at")


def mask_item_for_owner(item: Mapping[str, Any]) -> dict[str, Any]:
    masked = {key: value for key, value in item.items() if key not in CLAIM_FIELDS}
    masked["status"] = ItemStatusEnum.AVAILABLE.value
    return masked


def item_for_viewer(item: Mapping[str, Any], viewer_id: int | None, can_claim: bool) -> dict[str, Any]:
    """Drop the claimer and tell ``viewer_id`` what they can do with the item."""
    data = dict(item)
    claimer_id = data.pop("claimer_id", None)
    data["claim_view"] = resolve_claim_view(
        data["status"], claimer_id, viewer_id, is_owner=False, can_claim=can_claim
    ).value
    data["claimed_by_me"] = viewer_id is not None and claimer_id == viewer_id
    return data
