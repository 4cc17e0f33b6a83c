import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wishlists_app.api.deps import (
    CurrentUserDep,
    DbSessionDep,
    WishlistContext,
    load_wishlist_context,
    require_owner,
)
from wishlists_app.api.presenters import invalidate_wishlist_cache
from wishlists_app.core.access import is_approved_member
from wishlists_app.core.audit import AuditAction, audit_member_action
from wishlists_app.core.config import settings
from wishlists_app.core.formatting import format_long_date
from wishlists_app.core.mailer import send_access_request_email, send_invitation_email
from wishlists_app.core.notifications import notify, wishlist_link
from wishlists_app.core.rate_limit import check_rate_limit
from wishlists_app.core.security import create_invite_token, decode_invite_token
from wishlists_app.models.models import (
    MemberRoleEnum,
    MemberStatusEnum,
    NotificationTypeEnum,
    User,
    VisibilityEnum,
    WishlistMember,
    utcnow,
)
from wishlists_app.schemas.member import (
    AccessRequest,
    InviteRequest,
    MemberPublic,
    MembershipResult,
    RoleUpdate,
)

logger = logging.getLogger("wishlists.members")

router = APIRouter(prefix="/wishlists", tags=["members"])


def _member_public(member: WishlistMember, user: User | None) -> MemberPublic:
    return MemberPublic(
        id=member.id,
        wishlist_id=member.wishlist_id,
        user_id=member.user_id,
        email=member.email,
        role=member.role,
        status=member.status,
        approved=member.approved,
        message=member.message,
        username=user.username if user else None,
        display_name=user.display_name if user else None,
        requested_at=member.requested_at,
        joined_at=member.joined_at,
        approved_at=member.approved_at,
    )


def _membership_result(ctx: WishlistContext, member: WishlistMember) -> MembershipResult:
    return MembershipResult(
        wishlist_slug=ctx.wishlist.slug,
        status=member.status,
        role=member.role,
        approved=member.approved,
    )


def _activate(member: WishlistMember) -> None:
    now = utcnow()
    member.status = MemberStatusEnum.ACTIVE.value
    member.approved = True
    member.joined_at = member.joined_at or now
    member.approved_at = now


def _display_name(user: User) -> str:
    return user.display_name or user.username or user.email.split("@")[0]


async def _member_by_user(db: AsyncSession, ctx: WishlistContext, user_id: int) -> WishlistMember:
    result = await db.execute(
        select(WishlistMember)
        .where(WishlistMember.wishlist_id == ctx.wishlist.id)
        .where(WishlistMember.user_id == user_id)
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return member


async def _own_membership(db: AsyncSession, ctx: WishlistContext, user: User) -> WishlistMember | None:
    """Membership of ``user``, matched on user id or on an invitation sent to their email."""
    if ctx.membership is not None:
        return ctx.membership
    result = await db.execute(
        select(WishlistMember)
        .where(WishlistMember.wishlist_id == ctx.wishlist.id)
        .where(WishlistMember.email == user.email)
    )
    return result.scalar_one_or_none()


async def _commit_or_conflict(db: AsyncSession, detail: str) -> None:
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail) from None


@router.get("/{slug}/members", response_model=list[MemberPublic])
async def list_members(slug: str, db: DbSessionDep, current_user: CurrentUserDep) -> list[MemberPublic]:
    ctx = await load_wishlist_context(db, slug, current_user)
    require_owner(ctx)
    rows = (
        await db.execute(
            select(WishlistMember, User)
            .outerjoin(User, User.id == WishlistMember.user_id)
            .where(WishlistMember.wishlist_id == ctx.wishlist.id)
            .order_by(WishlistMember.created_at, WishlistMember.id)
        )
    ).all()
    return [_member_public(member, user) for member, user in rows]


@router.post("/{slug}/invite", response_model=MemberPublic, status_code=status.HTTP_201_CREATED)
async def invite_member(
    slug: str,
    payload: InviteRequest,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> MemberPublic:
    check_rate_limit(
        request,
        max_requests=settings.rate_limit_invite_requests,
        window_seconds=3600,
        key_suffix="invite",
    )
    ctx = await load_wishlist_context(db, slug, current_user)
    require_owner(ctx)
    wishlist = ctx.wishlist
    email = payload.email

    if email == current_user.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Tu ne peux pas t'inviter toi-même.")

    invitee = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    conditions = [WishlistMember.email == email]
    if invitee is not None:
        conditions.append(WishlistMember.user_id == invitee.id)
    member = (
        await db.execute(
            select(WishlistMember)
            .where(WishlistMember.wishlist_id == wishlist.id)
            .where(or_(*conditions))
        )
    ).scalars().first()

    if member is not None and is_approved_member(member):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cette personne est déjà membre.")
    if member is None:
        member = WishlistMember(wishlist_id=wishlist.id, email=email, role=MemberRoleEnum.VIEWER.value)
        db.add(member)
    member.status = MemberStatusEnum.INVITED.value
    member.approved = False
    if invitee is not None:
        member.user_id = invitee.id
    await _commit_or_conflict(db, "Invitation already exists")
    await db.refresh(member)

    token = create_invite_token(email, wishlist.slug)
    invite_link = f"{settings.frontend_url}/list/{wishlist.slug}?invite={token}"
    send_invitation_email(email, _display_name(current_user), wishlist.title, invite_link, wishlist.event_date)
    if invitee is not None:
        message = f"{_display_name(current_user)} t'invite à rejoindre la liste « {wishlist.title} »."
        if wishlist.event_date:
            message += f" Événement prévu le {format_long_date(wishlist.event_date)}."
        notify(
            db,
            invitee,
            NotificationTypeEnum.LIST_INVITATION,
            "Nouvelle invitation",
            message,
            data={"wishlist_slug": wishlist.slug, "wishlist_title": wishlist.title},
        )
        await db.commit()

    audit_member_action(AuditAction.MEMBER_INVITE, request, current_user.id, wishlist.id, email)
    logger.info("Invitation sent slug=%s existing_user=%s", wishlist.slug, invitee is not None)
    return _member_public(member, invitee)


@router.post("/{slug}/accept-invite", response_model=MembershipResult)
async def accept_invite(
    slug: str,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
    token: str | None = Query(default=None),
) -> MembershipResult:
    ctx = await load_wishlist_context(db, slug, current_user)
    if token is not None and decode_invite_token(token) != (current_user.email, ctx.wishlist.slug):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired invitation")

    member = await _own_membership(db, ctx, current_user)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")
    if is_approved_member(member):
        return _membership_result(ctx, member)
    if member.status != MemberStatusEnum.INVITED.value:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No pending invitation")

    member.user_id = current_user.id
    _activate(member)
    await _commit_or_conflict(db, "Membership already exists")
    await db.refresh(member)
    await invalidate_wishlist_cache(ctx.wishlist.slug)
    audit_member_action(AuditAction.MEMBER_JOIN, request, current_user.id, ctx.wishlist.id, current_user.id)
    return _membership_result(ctx, member)


@router.post("/{slug}/join", response_model=MembershipResult)
async def join_wishlist(
    slug: str,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> MembershipResult:
    ctx = await load_wishlist_context(db, slug, current_user)
    if ctx.is_owner:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Tu es propriétaire de cette liste.")
    if ctx.wishlist.visibility != VisibilityEnum.PUBLIC.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cette liste n'est pas publique : demande l'accès.",
        )

    member = await _own_membership(db, ctx, current_user)
    if member is not None and is_approved_member(member):
        return _membership_result(ctx, member)
    if member is not None and member.status == MemberStatusEnum.REFUSED.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Accès refusé.")
    if member is None:
        member = WishlistMember(
            wishlist_id=ctx.wishlist.id,
            email=current_user.email,
            role=MemberRoleEnum.VIEWER.value,
        )
        db.add(member)
    member.user_id = current_user.id
    _activate(member)
    await _commit_or_conflict(db, "Membership already exists")
    await db.refresh(member)
    audit_member_action(AuditAction.MEMBER_JOIN, request, current_user.id, ctx.wishlist.id, current_user.id)
    return _membership_result(ctx, member)


@router.post("/{slug}/request-access", response_model=MembershipResult, status_code=status.HTTP_201_CREATED)
async def request_access(
    slug: str,
    payload: AccessRequest,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> MembershipResult:
    ctx = await load_wishlist_context(db, slug, current_user)
    wishlist = ctx.wishlist
    if ctx.is_owner:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Tu es propriétaire de cette liste.")
    if wishlist.visibility == VisibilityEnum.PRIVATE.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cette liste est privée.")

    member = await _own_membership(db, ctx, current_user)
    if member is not None:
        if is_approved_member(member):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Tu es déjà membre de cette liste.")
        if member.status == MemberStatusEnum.PENDING.value:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Une demande est déjà en attente.")
        if member.status == MemberStatusEnum.INVITED.value:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Tu as déjà une invitation : accepte-la pour rejoindre la liste.",
            )
    else:
        member = WishlistMember(
            wishlist_id=wishlist.id,
            email=current_user.email,
            role=MemberRoleEnum.VIEWER.value,
        )
        db.add(member)

    # refused members may ask again
    member.user_id = current_user.id
    member.status = MemberStatusEnum.PENDING.value
    member.approved = False
    member.message = payload.message
    member.requested_at = utcnow()
    await _commit_or_conflict(db, "Une demande est déjà en attente.")
    await db.refresh(member)

    owner = await db.get(User, wishlist.owner_id)
    requester = _display_name(current_user)
    members_link = f"{settings.frontend_url}/list/{wishlist.slug}/members"
    if owner is not None:
        notify(
            db,
            owner,
            NotificationTypeEnum.ACCESS_REQUEST,
            "Nouvelle demande d'accès",
            f"{requester} demande l'accès à ta liste « {wishlist.title} ».",
            data={
                "wishlist_slug": wishlist.slug,
                "requester_id": current_user.id,
                "requester_name": requester,
                "message": payload.message,
            },
        )
        await db.commit()
        if owner.notifications_enabled:
            send_access_request_email(owner.email, requester, wishlist.title, members_link, payload.message)

    audit_member_action(AuditAction.MEMBER_REQUEST, request, current_user.id, wishlist.id, current_user.id)
    return _membership_result(ctx, member)


@router.post("/{slug}/members/{user_id}/approve", response_model=MemberPublic)
async def approve_member(
    slug: str,
    user_id: int,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> MemberPublic:
    ctx = await load_wishlist_context(db, slug, current_user)
    require_owner(ctx)
    member = await _member_by_user(db, ctx, user_id)
    _activate(member)
    user = await db.get(User, user_id)
    if user is not None:
        notify(
            db,
            user,
            NotificationTypeEnum.ACCESS_GRANTED,
            "Accès accordé",
            f"Tu as maintenant accès à la liste « {ctx.wishlist.title} ».",
            data={"wishlist_slug": ctx.wishlist.slug},
            link=wishlist_link(ctx.wishlist.slug),
            email=True,
        )
    await db.commit()
    await db.refresh(member)
    await invalidate_wishlist_cache(ctx.wishlist.slug)
    audit_member_action(AuditAction.MEMBER_APPROVE, request, current_user.id, ctx.wishlist.id, user_id)
    return _member_public(member, user)


@router.post("/{slug}/members/{user_id}/refuse", response_model=MemberPublic)
async def refuse_member(
    slug: str,
    user_id: int,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> MemberPublic:
    ctx = await load_wishlist_context(db, slug, current_user)
    require_owner(ctx)
    member = await _member_by_user(db, ctx, user_id)
    member.status = MemberStatusEnum.REFUSED.value
    member.approved = False
    user = await db.get(User, user_id)
    if user is not None:
        notify(
            db,
            user,
            NotificationTypeEnum.ACCESS_REFUSED,
            "Demande refusée",
            f"Ta demande d'accès à la liste « {ctx.wishlist.title} » a été refusée.",
            data={"wishlist_slug": ctx.wishlist.slug},
            email=True,
        )
    await db.commit()
    await db.refresh(member)
    audit_member_action(AuditAction.MEMBER_REFUSE, request, current_user.id, ctx.wishlist.id, user_id)
    return _member_public(member, user)


@router.put("/{slug}/members/{user_id}/role", response_model=MemberPublic)
async def update_member_role(
    slug: str,
    user_id: int,
    payload: RoleUpdate,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> MemberPublic:
    ctx = await load_wishlist_context(db, slug, current_user)
    require_owner(ctx)
    member = await _member_by_user(db, ctx, user_id)
    member.role = payload.role.value
    await db.commit()
    await db.refresh(member)
    logger.info("Member role changed slug=%s user_id=%s role=%s", slug, user_id, member.role)
    return _member_public(member, await db.get(User, user_id))


@router.delete("/{slug}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    slug: str,
    user_id: int,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> Response:
    ctx = await load_wishlist_context(db, slug, current_user)
    require_owner(ctx)
    member = await _member_by_user(db, ctx, user_id)
    await db.delete(member)
    user = await db.get(User, user_id)
    if user is not None:
        notify(
            db,
            user,
            NotificationTypeEnum.ACCESS_REFUSED,
            "Accès retiré",
            f"Tu n'as plus accès à la liste « {ctx.wishlist.title} ».",
            data={"wishlist_slug": ctx.wishlist.slug, "wishlist_title": ctx.wishlist.title},
        )
    await db.commit()
    await invalidate_wishlist_cache(ctx.wishlist.slug)
    audit_member_action(AuditAction.MEMBER_REMOVE, request, current_user.id, ctx.wishlist.id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{slug}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_wishlist(
    slug: str,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> Response:
    ctx = await load_wishlist_context(db, slug, current_user)
    if ctx.is_owner:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Le propriétaire ne peut pas quitter sa propre liste.",
        )
    if ctx.membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")

    await db.delete(ctx.membership)
    owner = await db.get(User, ctx.wishlist.owner_id)
    if owner is not None:
        name = _display_name(current_user)
        notify(
            db,
            owner,
            NotificationTypeEnum.MEMBER_LEFT,
            "Un membre a quitté",
            f"{name} ({current_user.username}) a quitté la liste « {ctx.wishlist.title} ».",
            data={"wishlist_slug": ctx.wishlist.slug, "member_user_id": current_user.id, "member_name": name},
        )
    await db.commit()
    await invalidate_wishlist_cache(ctx.wishlist.slug)
    audit_member_action(AuditAction.MEMBER_LEAVE, request, current_user.id, ctx.wishlist.id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
