import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from wishlists_app.core.config import settings
from wishlists_app.core.mailer import send_notification_email
from wishlists_app.models.models import Notification, NotificationTypeEnum, User

logger = logging.getLogger("wishlists.notifications")


def wishlist_link(slug: str | None) -> str:
    if not slug:
        return f"{settings.frontend_url}/dashboard"
    return f"{settings.frontend_url}/list/{slug}"


def notify(
    db: AsyncSession,
    recipient: User,
    kind: NotificationTypeEnum,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
    link: str | None = None,
    email: bool = False,
) -> Notification:
    """
    Queue an in-app notification on ``db``; the caller commits.

    With ``email`` set and the recipient's notifications enabled, the same
    text is mailed too.
    """
    notification = Notification(
        user_id=recipient.id,
        type=kind.value,
        title=title,
        message=message,
        data=data or {},
        read=False,
    )
    db.add(notification)
    logger.debug("Notification queued user_id=%s type=%s", recipient.id, kind.value)
    if email and recipient.notifications_enabled:
        send_notification_email(recipient.email, title, message, link)
    return notification
