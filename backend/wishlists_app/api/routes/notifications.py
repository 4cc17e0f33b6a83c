from fastapi import APIRouter, HTTPException, Query, Response, status
from sqlalchemy import func, select, update

from wishlists_app.api.deps import CurrentUserDep, DbSessionDep
from wishlists_app.models.models import Notification
from wishlists_app.schemas.member import NotificationPublic, UnreadCount

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationPublic])
async def list_notifications(
    db: DbSessionDep,
    current_user: CurrentUserDep,
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == current_user.id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(db: DbSessionDep, current_user: CurrentUserDep) -> UnreadCount:
    count = await db.scalar(
        select(func.count(Notification.id))
        .where(Notification.user_id == current_user.id)
        .where(Notification.read.is_(False))
    )
    return UnreadCount(unread=count or 0)


@router.post("/read-all", response_model=UnreadCount)
async def mark_all_read(db: DbSessionDep, current_user: CurrentUserDep) -> UnreadCount:
    await db.execute(
        update(Notification)
        .where(Notification.user_id == current_user.id)
        .where(Notification.read.is_(False))
        .values(read=True)
    )
    await db.commit()
    return UnreadCount(unread=0)


@router.post("/{notification_id}/read", response_model=NotificationPublic)
async def mark_read(notification_id: int, db: DbSessionDep, current_user: CurrentUserDep) -> Notification:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification.read = True
    await db.commit()
    await db.refresh(notification)
    return notification


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(notification_id: int, db: DbSessionDep, current_user: CurrentUserDep) -> Response:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    await db.delete(notification)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
