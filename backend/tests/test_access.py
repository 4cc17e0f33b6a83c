"""
Tests unitaires des règles d'accès et de la machine d'état des réservations.
"""
from types import SimpleNamespace

import pytest

from wishlists_app.core.access import AccessStatus, can_read, check_access, is_approved_member, resolve_role
from wishlists_app.core.claims import (
    OWNER,
    VIEWER,
    VISITOR,
    ClaimPlan,
    ClaimView,
    ReservationOutcome,
    item_status_for_claim,
    mask_item_for_owner,
    plan_claim,
    reconcile_reservation,
    resolve_claim_view,
)


OWNER_USER = SimpleNamespace(id=1)
OTHER_USER = SimpleNamespace(id=2)


def _wishlist(visibility: str):
    return SimpleNamespace(owner_id=OWNER_USER.id, visibility=visibility)


def _member(status: str, approved: bool = False):
    return SimpleNamespace(status=status, approved=approved)


class TestCheckAccess:
    @pytest.mark.parametrize(
        ("visibility", "expected"),
        [("private", AccessStatus.DENIED), ("shared", AccessStatus.GUEST), ("public", AccessStatus.GUEST)],
    )
    def test_anonymous(self, visibility, expected):
        assert check_access(_wishlist(visibility), None) == expected

    @pytest.mark.parametrize("visibility", ["private", "shared", "public"])
    def test_owner_always_granted(self, visibility):
        assert check_access(_wishlist(visibility), OWNER_USER) == AccessStatus.GRANTED

    def test_approved_member_granted(self):
        assert check_access(_wishlist("private"), OTHER_USER, _member("active")) == AccessStatus.GRANTED
        assert check_access(_wishlist("shared"), OTHER_USER, _member("pending", approved=True)) == AccessStatus.GRANTED

    def test_refused_member_denied_even_on_public_list(self):
        assert check_access(_wishlist("public"), OTHER_USER, _member("refused")) == AccessStatus.DENIED

    def test_pending_and_invited(self):
        assert check_access(_wishlist("shared"), OTHER_USER, _member("pending")) == AccessStatus.PENDING
        assert check_access(_wishlist("shared"), OTHER_USER, _member("invited")) == AccessStatus.PENDING
        assert check_access(_wishlist("public"), OTHER_USER, _member("invited")) == AccessStatus.GUEST

    @pytest.mark.parametrize(
        ("visibility", "expected"),
        [("private", AccessStatus.DENIED), ("shared", AccessStatus.DENIED), ("public", AccessStatus.GUEST)],
    )
    def test_stranger(self, visibility, expected):
        assert check_access(_wishlist(visibility), OTHER_USER) == expected

    def test_can_read(self):
        assert can_read(AccessStatus.GRANTED)
        assert can_read(AccessStatus.GUEST)
        assert not can_read(AccessStatus.PENDING)
        assert not can_read(AccessStatus.DENIED)


class TestRoles:
    def test_resolve_role(self):
        wishlist = _wishlist("shared")
        assert resolve_role(wishlist, OWNER_USER) == OWNER
        assert resolve_role(wishlist, OTHER_USER, _member("active")) == VIEWER
        assert resolve_role(wishlist, OTHER_USER, _member("pending")) == VISITOR
        assert resolve_role(wishlist, None, _member("active")) == VISITOR

    def test_is_approved_member(self):
        assert is_approved_member(_member("active"))
        assert is_approved_member(_member("invited", approved=True))
        assert not is_approved_member(_member("pending"))
        assert not is_approved_member(None)


class TestClaimView:
    def test_owner_never_sees_claims(self):
        assert resolve_claim_view("reserved", 2, 1, is_owner=True, can_claim=False) == ClaimView.HIDDEN

    def test_available(self):
        assert resolve_claim_view("available", None, 2, is_owner=False, can_claim=True) == ClaimView.RESERVE
        assert resolve_claim_view("available", None, 2, is_owner=False, can_claim=False) == ClaimView.RESERVE_DISABLED
        assert resolve_claim_view("available", None, None, is_owner=False, can_claim=True) == ClaimView.RESERVE_DISABLED

    def test_claimed(self):
        assert resolve_claim_view("reserved", 2, 2, is_owner=False, can_claim=True) == ClaimView.CANCEL
        assert resolve_claim_view("purchased", 2, 2, is_owner=False, can_claim=True) == ClaimView.PURCHASED_BY_ME
        assert resolve_claim_view("reserved", 3, 2, is_owner=False, can_claim=True) == ClaimView.RESERVED_BY_OTHER
        assert resolve_claim_view("purchased", 3, None, is_owner=False, can_claim=False) == ClaimView.RESERVED_BY_OTHER


class TestPlanClaim:
    @pytest.mark.parametrize(
        ("visibility", "role", "authenticated", "expected"),
        [
            ("public", OWNER, True, ClaimPlan.OWNER_FORBIDDEN),
            ("public", VISITOR, False, ClaimPlan.LOGIN_REQUIRED),
            ("private", VIEWER, True, ClaimPlan.RESERVE),
            ("public", VISITOR, True, ClaimPlan.AUTO_JOIN),
            ("shared", VISITOR, True, ClaimPlan.REQUEST_ACCESS),
            ("private", VISITOR, True, ClaimPlan.DENIED),
        ],
    )
    def test_plan(self, visibility, role, authenticated, expected):
        assert plan_claim(visibility, role, authenticated) == expected


class TestReservationRace:
    def test_reconcile(self):
        assert reconcile_reservation(None, 2) == ReservationOutcome.RETRY
        assert reconcile_reservation(2, 2) == ReservationOutcome.ALREADY_MINE
        assert reconcile_reservation(3, 2) == ReservationOutcome.CONFLICT

    def test_item_status_for_claim(self):
        assert item_status_for_claim(None) == "available"
        assert item_status_for_claim("reserved") == "reserved"
        assert item_status_for_claim("purchased") == "purchased"


def test_mask_item_for_owner():
    item = {
        "id": 7,
        "title": "Vélo",
        "status": "purchased",
        "claim": {"id": 1},
        "claim_view": "reserved_by_other",
        "claimed_by_me": False,
        "claimer_id": 2,
        "claimed_at": "2025-01-01T00:00:00Z",
    }

    masked = mask_item_for_owner(item)

    assert masked == {"id": 7, "title": "Vélo", "status": "available"}
    assert item["status"] == "purchased"
