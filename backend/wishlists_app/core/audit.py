"""Audit trail for authentication, claims and membership changes."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import Request


logger = logging.getLogger("wishlists.audit")

REDACTED = "***REDACTED***"
_SECRET_KEYS = {"password", "new_password", "current_password", "token", "secret", "key", "authorization"}


class AuditAction(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    LOGIN_FAILED = "login_failed"
    REGISTER = "register"
    PASSWORD_CHANGE = "password_change"
    PASSWORD_RESET_REQUEST = "password_reset_request"
    PASSWORD_RESET_COMPLETE = "password_reset_complete"
    EMAIL_VERIFY = "email_verify"

    WISHLIST_CREATE = "wishlist_create"
    WISHLIST_UPDATE = "wishlist_update"
    WISHLIST_DELETE = "wishlist_delete"

    CLAIM_RESERVE = "claim_reserve"
    CLAIM_RELEASE = "claim_release"
    CLAIM_PURCHASE = "claim_purchase"
    CLAIM_CONFLICT = "claim_conflict"

    MEMBER_INVITE = "member_invite"
    MEMBER_JOIN = "member_join"
    MEMBER_REQUEST = "member_request"
    MEMBER_APPROVE = "member_approve"
    MEMBER_REFUSE = "member_refuse"
    MEMBER_REMOVE = "member_remove"
    MEMBER_LEAVE = "member_leave"

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


def redact(details: dict[str, Any]) -> dict[str, Any]:
    return {key: (REDACTED if key.lower() in _SECRET_KEYS else value) for key, value in details.items()}


def audit_log(
    action: AuditAction,
    request: Request | None = None,
    user_id: int | str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> dict[str, Any]:
    """
    Emit one audit event on the ``wishlists.audit`` logger.

    Failed actions are logged at WARNING, the rest at INFO. Values under
    secret-looking keys are replaced before logging. The event dict is
    returned so callers and tests can inspect what was written.
    """
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "success": success,
    }
    if user_id is not None:
        event["user_id"] = str(user_id)

    if request is not None:
        client_host = request.client.host if request.client else None
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_host = forwarded.split(",")[0].strip()
        event["ip"] = client_host
        event["user_agent"] = request.headers.get("User-Agent", "")[:200]
        event["request_id"] = request.headers.get("X-Request-Id", "")

    if details:
        event["details"] = redact(details)

    if success:
        logger.info("AUDIT: %s", event)
    else:
        logger.warning("AUDIT: %s", event)
    return event


def audit_login_success(request: Request, user_id: int, email: str) -> None:
    audit_log(AuditAction.LOGIN, request=request, user_id=user_id, details={"email": email})


def audit_login_failed(request: Request, email: str, reason: str) -> None:
    audit_log(
        AuditAction.LOGIN_FAILED,
        request=request,
        details={"email": email, "reason": reason},
        success=False,
    )


def audit_logout(request: Request, user_id: int | None) -> None:
    audit_log(AuditAction.LOGOUT, request=request, user_id=user_id)


def audit_register(request: Request, user_id: int, email: str) -> None:
    audit_log(AuditAction.REGISTER, request=request, user_id=user_id, details={"email": email})


def audit_password_change(request: Request, user_id: int) -> None:
    audit_log(AuditAction.PASSWORD_CHANGE, request=request, user_id=user_id)


def audit_password_reset_request(request: Request, email: str, exists: bool) -> None:
    audit_log(
        AuditAction.PASSWORD_RESET_REQUEST,
        request=request,
        details={"email": email, "user_exists": exists},
    )


def audit_wishlist_action(
    action: AuditAction,
    request: Request,
    user_id: int,
    wishlist_id: int,
    details: dict[str, Any] | None = None,
) -> None:
    event_details: dict[str, Any] = {"wishlist_id": wishlist_id}
    if details:
        event_details.update(details)
    audit_log(action, request=request, user_id=user_id, details=event_details)


def audit_claim_action(
    action: AuditAction,
    request: Request,
    user_id: int,
    item_id: int,
    success: bool = True,
    details: dict[str, Any] | None = None,
) -> None:
    event_details: dict[str, Any] = {"item_id": item_id}
    if details:
        event_details.update(details)
    audit_log(action, request=request, user_id=user_id, details=event_details, success=success)


def audit_member_action(
    action: AuditAction,
    request: Request,
    user_id: int,
    wishlist_id: int,
    member: int | str | None = None,
) -> None:
    details: dict[str, Any] = {"wishlist_id": wishlist_id}
    if member is not None:
        details["member"] = member
    audit_log(action, request=request, user_id=user_id, details=details)


def audit_rate_limit_exceeded(request: Request, endpoint: str, retry_after: int) -> None:
    audit_log(
        AuditAction.RATE_LIMIT_EXCEEDED,
        request=request,
        details={"endpoint": endpoint, "retry_after": retry_after},
        success=False,
    )
