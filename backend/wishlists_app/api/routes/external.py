import logging

from fastapi import APIRouter, HTTPException, Query, Response, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wishlists_app.api.deps import CurrentUserDep, DbSessionDep
from wishlists_app.models.models import ExternalGift, ExternalRecipient, User
from wishlists_app.schemas.budget import (
    ExternalGiftCreate,
    ExternalGiftPublic,
    ExternalGiftUpdate,
    ExternalRecipientCreate,
    ExternalRecipientPublic,
    ExternalRecipientUpdate,
    RecipientLink,
)

logger = logging.getLogger("wishlists.external")

router = APIRouter(prefix="/external", tags=["external"])


async def _get_recipient(db: AsyncSession, user: User, recipient_id: int) -> ExternalRecipient:
    recipient = await db.get(ExternalRecipient, recipient_id)
    if recipient is None or recipient.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")
    return recipient


async def _get_gift(db: AsyncSession, user: User, gift_id: int) -> ExternalGift:
    gift = await db.get(ExternalGift, gift_id)
    if gift is None or gift.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gift not found")
    return gift


async def _resolve_profile(db: AsyncSession, user: User, username: str | None) -> User | None:
    if not username:
        return None
    profile = (
        await db.execute(select(User).where(User.username == username.strip().lower()))
    ).scalar_one_or_none()
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    if profile.id == user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot link your own profile")
    return profile


async def _recipient_public(db: AsyncSession, recipient: ExternalRecipient) -> ExternalRecipientPublic:
    count, total = (
        await db.execute(
            select(func.count(ExternalGift.id), func.coalesce(func.sum(ExternalGift.paid_amount), 0))
            .where(ExternalGift.recipient_id == recipient.id)
        )
    ).one()
    profile = await db.get(User, recipient.profile_id) if recipient.profile_id else None
    return ExternalRecipientPublic(
        id=recipient.id,
        name=recipient.name,
        profile_id=recipient.profile_id,
        profile_username=profile.username if profile else None,
        profile_display_name=profile.display_name if profile else None,
        gifts_count=count,
        total_spent=round(float(total), 2),
        created_at=recipient.created_at,
    )


def _gift_public(gift: ExternalGift, recipient_name: str | None) -> ExternalGiftPublic:
    return ExternalGiftPublic(
        id=gift.id,
        recipient_id=gift.recipient_id,
        recipient_name=recipient_name,
        description=gift.description,
        paid_amount=float(gift.paid_amount),
        purchase_date=gift.purchase_date,
        theme=gift.theme,
        notes=gift.notes,
        created_at=gift.created_at,
    )


@router.get("/recipients", response_model=list[ExternalRecipientPublic])
async def list_recipients(db: DbSessionDep, current_user: CurrentUserDep) -> list[ExternalRecipientPublic]:
    recipients = (
        await db.execute(
            select(ExternalRecipient)
            .where(ExternalRecipient.user_id == current_user.id)
            .order_by(ExternalRecipient.name)
        )
    ).scalars().all()
    return [await _recipient_public(db, recipient) for recipient in recipients]


@router.post("/recipients", response_model=ExternalRecipientPublic, status_code=status.HTTP_201_CREATED)
async def create_recipient(
    payload: ExternalRecipientCreate,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> ExternalRecipientPublic:
    profile = await _resolve_profile(db, current_user, payload.profile_username)
    recipient = ExternalRecipient(
        user_id=current_user.id,
        name=payload.name,
        profile_id=profile.id if profile else None,
    )
    db.add(recipient)
    await db.commit()
    await db.refresh(recipient)
    return await _recipient_public(db, recipient)


@router.put("/recipients/{recipient_id}", response_model=ExternalRecipientPublic)
async def update_recipient(
    recipient_id: int,
    payload: ExternalRecipientUpdate,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> ExternalRecipientPublic:
    recipient = await _get_recipient(db, current_user, recipient_id)
    if payload.name is not None:
        recipient.name = payload.name.strip()
    await db.commit()
    await db.refresh(recipient)
    return await _recipient_public(db, recipient)


@router.put("/recipients/{recipient_id}/link", response_model=ExternalRecipientPublic)
async def link_recipient(
    recipient_id: int,
    payload: RecipientLink,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> ExternalRecipientPublic:
    recipient = await _get_recipient(db, current_user, recipient_id)
    profile = await _resolve_profile(db, current_user, payload.profile_username)
    recipient.profile_id = profile.id if profile else None
    await db.commit()
    await db.refresh(recipient)
    logger.info("Recipient link recipient_id=%s profile_id=%s", recipient.id, recipient.profile_id)
    return await _recipient_public(db, recipient)


@router.delete("/recipients/{recipient_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recipient(recipient_id: int, db: DbSessionDep, current_user: CurrentUserDep) -> Response:
    recipient = await _get_recipient(db, current_user, recipient_id)
    await db.execute(delete(ExternalGift).where(ExternalGift.recipient_id == recipient.id))
    await db.execute(delete(ExternalRecipient).where(ExternalRecipient.id == recipient.id))
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/gifts", response_model=list[ExternalGiftPublic])
async def list_gifts(
    db: DbSessionDep,
    current_user: CurrentUserDep,
    recipient_id: int | None = Query(default=None),
    year: int | None = Query(default=None),
) -> list[ExternalGiftPublic]:
    query = (
        select(ExternalGift, ExternalRecipient.name)
        .join(ExternalRecipient, ExternalRecipient.id == ExternalGift.recipient_id)
        .where(ExternalGift.user_id == current_user.id)
    )
    if recipient_id is not None:
        query = query.where(ExternalGift.recipient_id == recipient_id)
    rows = (await db.execute(query.order_by(ExternalGift.purchase_date.desc(), ExternalGift.id.desc()))).all()
    return [
        _gift_public(gift, name)
        for gift, name in rows
        if year is None or gift.purchase_date.year == year
    ]


@router.post("/gifts", response_model=ExternalGiftPublic, status_code=status.HTTP_201_CREATED)
async def create_gift(payload: ExternalGiftCreate, db: DbSessionDep, current_user: CurrentUserDep) -> ExternalGiftPublic:
    recipient = await _get_recipient(db, current_user, payload.recipient_id)
    gift = ExternalGift(
        user_id=current_user.id,
        recipient_id=recipient.id,
        description=payload.description,
        paid_amount=payload.paid_amount,
        purchase_date=payload.purchase_date,
        theme=payload.theme.value,
        notes=payload.notes,
    )
    db.add(gift)
    await db.commit()
    await db.refresh(gift)
    return _gift_public(gift, recipient.name)


@router.put("/gifts/{gift_id}", response_model=ExternalGiftPublic)
async def update_gift(
    gift_id: int,
    payload: ExternalGiftUpdate,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> ExternalGiftPublic:
    gift = await _get_gift(db, current_user, gift_id)
    update_data = payload.model_dump(exclude_unset=True)
    if update_data.get("recipient_id") is not None:
        await _get_recipient(db, current_user, update_data["recipient_id"])
    for key in ("recipient_id", "paid_amount", "purchase_date", "theme"):
        if key in update_data and update_data[key] is None:
            update_data.pop(key)
    if "theme" in update_data:
        update_data["theme"] = update_data["theme"].value
    for key, value in update_data.items():
        setattr(gift, key, value)
    await db.commit()
    await db.refresh(gift)
    recipient = await db.get(ExternalRecipient, gift.recipient_id)
    return _gift_public(gift, recipient.name if recipient else None)


@router.delete("/gifts/{gift_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_gift(gift_id: int, db: DbSessionDep, current_user: CurrentUserDep) -> Response:
    gift = await _get_gift(db, current_user, gift_id)
    await db.execute(delete(ExternalGift).where(ExternalGift.id == gift.id))
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
