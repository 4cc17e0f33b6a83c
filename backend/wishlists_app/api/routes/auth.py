from typing import TypedDict
import logging

from fastapi import APIRouter, Cookie, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from wishlists_app.api.deps import CurrentUserDep, DbSessionDep
from wishlists_app.core.audit import (
    AuditAction,
    audit_log,
    audit_login_failed,
    audit_login_success,
    audit_logout,
    audit_password_change,
    audit_password_reset_request,
    audit_register,
)
from wishlists_app.core.config import settings
from wishlists_app.core.mailer import send_email_verification_email, send_password_reset_email
from wishlists_app.core.rate_limit import check_rate_limit
from wishlists_app.core.security import (
    create_access_token,
    create_email_verification_token,
    create_password_reset_token,
    create_refresh_token,
    decode_email_verification_token,
    decode_password_reset_token,
    decode_refresh_token,
    get_password_hash,
    verify_password,
)
from wishlists_app.core.slugs import unique_username
from wishlists_app.models.models import User, WishlistMember
from wishlists_app.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserPublic,
    UserUpdate,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("wishlists.auth")


class CookieOptions(TypedDict, total=False):
    samesite: str
    secure: bool


DEFAULT_SESSION_DAYS = 30
ALLOWED_SESSION_DAYS = {7, 30}
SESSION_COOKIES = ("access_token", "refresh_token", "remember_me", "session_days")


def _cookie_options() -> CookieOptions:
    """
    Local runs use lax, non-secure cookies over plain HTTP. Deployed
    frontends live on another origin, which needs SameSite=None and Secure.
    """
    environment = (settings.environment or "local").lower()
    if environment == "local":
        return {"samesite": "lax", "secure": False}
    return {"samesite": "none", "secure": True}


def _resolve_cookie_max_age(remember_me: bool, session_days: int | None) -> int | None:
    if not remember_me:
        return None
    days = session_days if session_days in ALLOWED_SESSION_DAYS else DEFAULT_SESSION_DAYS
    return days * 24 * 60 * 60


def _parse_session_days(raw: str | None) -> int:
    try:
        parsed = int(raw or "")
    except ValueError:
        parsed = DEFAULT_SESSION_DAYS
    return parsed if parsed in ALLOWED_SESSION_DAYS else DEFAULT_SESSION_DAYS


def _issue_session(response: Response, user_id: int | str, *, remember_me: bool, session_days: int | None) -> None:
    max_age = _resolve_cookie_max_age(remember_me, session_days)
    normalized_days = session_days if session_days in ALLOWED_SESSION_DAYS else DEFAULT_SESSION_DAYS
    options = _cookie_options()
    values = {
        "access_token": create_access_token(str(user_id)),
        "refresh_token": create_refresh_token(str(user_id)),
        "remember_me": "1" if remember_me else "0",
        "session_days": str(normalized_days),
    }
    for name, value in values.items():
        response.set_cookie(name, value, httponly=True, max_age=max_age, path="/", **options)


def _clear_session(response: Response) -> None:
    for name in SESSION_COOKIES:
        response.delete_cookie(name, path="/", **_cookie_options())


async def _link_pending_invitations(db: DbSessionDep, user: User) -> int:
    result = await db.execute(
        update(WishlistMember)
        .where(WishlistMember.email == user.email)
        .where(WishlistMember.user_id.is_(None))
        .values(user_id=user.id)
    )
    return result.rowcount or 0


@router.post("/register", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def register_user(
    payload: RegisterRequest,
    db: DbSessionDep,
    request: Request,
    response: Response,
) -> UserPublic:
    check_rate_limit(request, max_requests=5, window_seconds=300, key_suffix="register")

    email = payload.email.lower()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none():
        # same answer as a fresh signup, so the endpoint can't probe for accounts
        return JSONResponse(status_code=status.HTTP_201_CREATED, content={})

    user = User(
        email=email,
        hashed_password=get_password_hash(payload.password),
        display_name=payload.display_name,
        username=await unique_username(db, email),
    )
    db.add(user)
    try:
        await db.flush()
        linked = await _link_pending_invitations(db, user)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Register raced on unique email/username email=%s", email)
        return JSONResponse(status_code=status.HTTP_201_CREATED, content={})
    await db.refresh(user)
    if linked:
        logger.info("Register linked %s pending invitation(s) user_id=%s", linked, user.id)

    _issue_session(response, user.id, remember_me=payload.remember_me, session_days=payload.session_days)

    token = create_email_verification_token(user.email)
    send_email_verification_email(user.email, f"{settings.backend_url}/auth/verify-email?token={token}")
    audit_register(request, user.id, user.email)
    return UserPublic.model_validate(user)


@router.post("/login", response_model=UserPublic)
async def login_user(
    payload: LoginRequest,
    response: Response,
    db: DbSessionDep,
    request: Request,
) -> UserPublic:
    check_rate_limit(request, max_requests=settings.rate_limit_login_requests, window_seconds=60, key_suffix="login")

    request_id = request.headers.get("X-Request-Id")
    email = payload.email.lower()
    try:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
    except SQLAlchemyError:
        logger.exception("Auth login db error id=%s email=%s", request_id, email)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")

    if not user:
        logger.info("Auth login user not found id=%s email=%s", request_id, email)
        audit_login_failed(request, email, "user_not_found")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Utilisateur introuvable. Crée un compte.",
        )
    if not verify_password(payload.password, user.hashed_password):
        logger.info("Auth login invalid password id=%s user_id=%s", request_id, user.id)
        audit_login_failed(request, email, "invalid_password")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Mot de passe incorrect.")

    _issue_session(response, user.id, remember_me=payload.remember_me, session_days=payload.session_days)
    audit_login_success(request, user.id, user.email)
    logger.info("Auth login success id=%s user_id=%s", request_id, user.id)
    return UserPublic.model_validate(user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout_user(request: Request, response: Response) -> None:
    _clear_session(response)
    audit_logout(request, None)


@router.post("/refresh", status_code=status.HTTP_204_NO_CONTENT)
async def refresh_session(
    response: Response,
    db: DbSessionDep,
    refresh_token: str | None = Cookie(default=None, alias="refresh_token"),
    remember_me_cookie: str | None = Cookie(default="1", alias="remember_me"),
    session_days_cookie: str | None = Cookie(default=str(DEFAULT_SESSION_DAYS), alias="session_days"),
) -> None:
    if not refresh_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_refresh_token(refresh_token)
    subject = payload.get("sub") if payload else None
    if not isinstance(subject, str) or not subject.isdigit() or not await db.get(User, int(subject)):
        response.delete_cookie("refresh_token", path="/", **_cookie_options())
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    _issue_session(
        response,
        subject,
        remember_me=remember_me_cookie != "0",
        session_days=_parse_session_days(session_days_cookie),
    )


@router.get("/me", response_model=UserPublic)
async def get_me(current_user: CurrentUserDep) -> UserPublic:
    return UserPublic.model_validate(current_user)


@router.put("/me", response_model=UserPublic)
async def update_profile(
    payload: UserUpdate,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> UserPublic:
    update_data = payload.model_dump(exclude_unset=True)
    if "display_name" in update_data and not update_data["display_name"]:
        update_data.pop("display_name")
    username = update_data.pop("username", None)
    if username and username != current_user.username:
        taken = await db.execute(select(User.id).where(User.username == username))
        if taken.scalar_one_or_none():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already taken")
        current_user.username = username
    for key, value in update_data.items():
        setattr(current_user, key, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already taken") from None
    await db.refresh(current_user)
    return UserPublic.model_validate(current_user)


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    payload: ChangePasswordRequest,
    db: DbSessionDep,
    request: Request,
    current_user: CurrentUserDep,
) -> None:
    if not verify_password(payload.old_password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Incorrect old password")

    current_user.hashed_password = get_password_hash(payload.new_password)
    await db.commit()
    audit_password_change(request, current_user.id)


@router.get("/verify-email")
async def verify_email(request: Request, db: DbSessionDep, token: str = Query(...)) -> RedirectResponse:
    email = decode_email_verification_token(token)
    user = None
    if email:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
    if not user:
        return RedirectResponse(url=f"{settings.frontend_url}/auth/login?verified=0", status_code=302)

    if not user.is_email_verified:
        user.is_email_verified = True
        await db.commit()
        audit_log(AuditAction.EMAIL_VERIFY, request=request, user_id=user.id)

    return RedirectResponse(url=f"{settings.frontend_url}/auth/login?verified=1", status_code=302)


@router.post("/forgot-password", status_code=status.HTTP_204_NO_CONTENT)
async def forgot_password(
    payload: ForgotPasswordRequest,
    db: DbSessionDep,
    request: Request,
) -> None:
    check_rate_limit(request, max_requests=3, window_seconds=300, key_suffix="forgot")

    email = payload.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    audit_password_reset_request(request, email, exists=user is not None)
    if not user:
        return

    token = create_password_reset_token(user.email)
    send_password_reset_email(user.email, f"{settings.frontend_url}/auth/reset-password?token={token}")


@router.post("/reset-password", status_code=status.HTTP_204_NO_CONTENT)
async def reset_password(payload: ResetPasswordRequest, request: Request, db: DbSessionDep) -> None:
    email = decode_password_reset_token(payload.token)
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid reset request")

    user.hashed_password = get_password_hash(payload.new_password)
    await db.commit()
    audit_log(AuditAction.PASSWORD_RESET_COMPLETE, request=request, user_id=user.id)
