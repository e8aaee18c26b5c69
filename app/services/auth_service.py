import logging
from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import AccountSuspended, AlreadyExists, InvalidTransition, NotAuthorized, NotFound
from app.core.security import create_access_token, get_password_hash, verify_password
from app.core.timeutils import as_utc, utcnow
from app.db.models import ServiceProvider, User, UserRole
from app.schemas.actor import Actor
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from app.services.locking import atomic, for_update
from app.services.notification_service import (
    TARGET_CLIENT,
    TARGET_PROVIDER,
    Notice,
    NotificationDispatcher,
    dispatch,
)

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_DETAIL = "User with this email already exists"
SUSPENDED_DETAIL = "Account is suspended"


def actor_from_user(user: User) -> Actor:
    return Actor(id=user.id, role=UserRole(user.role))


def register_user(payload: RegisterRequest, db: Session) -> User:
    email = payload.email.lower()
    if db.scalar(select(User.id).where(User.email == email)) is not None:
        raise AlreadyExists(DUPLICATE_EMAIL_DETAIL)

    user = User(email=email, hashed_password=get_password_hash(payload.password), role=payload.role.value)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyExists(DUPLICATE_EMAIL_DETAIL) from None
    db.refresh(user)
    logger.info("user_registered user_id=%s role=%s", user.id, user.role)
    return user


def login_user(payload: LoginRequest, db: Session) -> TokenResponse:
    user = db.scalar(select(User).where(User.email == payload.email.lower()))
    if not user or not user.is_active or not verify_password(payload.password, user.hashed_password):
        logger.info("login_failed email=%s", payload.email.lower())
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    ensure_not_suspended(db, user)

    return TokenResponse(access_token=create_access_token(user_id=user.id, role=user.role))


def refresh_suspension(user: User, now: datetime) -> bool:
    if not user.suspension_expired(now):
        return False
    _clear_suspension(user, now)
    logger.info("account_suspension_lapsed user_id=%s", user.id)
    return True


def ensure_not_suspended(db: Session, user: User, now: datetime | None = None) -> None:
    now = now or utcnow()
    if refresh_suspension(user, now):
        db.commit()
    if user.suspended:
        logger.info("suspended_account_refused user_id=%s", user.id)
        raise AccountSuspended(SUSPENDED_DETAIL, user_id=user.id)


def _clear_suspension(user: User, now: datetime) -> None:
    user.suspended = False
    user.suspension_reason = None
    user.suspended_at = None
    user.suspension_end_date = None
    user.reinstated_at = now


def _account_notice(db: Session, user: User, type: str, message: str) -> Notice:
    provider_id = db.scalar(select(ServiceProvider.id).where(ServiceProvider.user_id == user.id))
    if provider_id is not None:
        target_role, target_id = TARGET_PROVIDER, provider_id
    else:
        target_role, target_id = TARGET_CLIENT, user.id
    return Notice(
        target_role=target_role,
        target_id=target_id,
        type=type,
        message=message,
        metadata={"user_id": user.id},
    )


def _lock_user(db: Session, user_id: int) -> User:
    user = db.scalar(for_update(db, select(User).where(User.id == user_id)))
    if user is None:
        raise NotFound("User not found", user_id=user_id)
    return user


def suspend_account(
    db: Session,
    actor: Actor,
    user_id: int,
    reason: str,
    dispatcher: NotificationDispatcher,
    end_date: datetime | None = None,
    now: datetime | None = None,
) -> User:
    if not actor.is_admin:
        raise NotAuthorized("Administrator role required", actor_id=actor.id)
    now = now or utcnow()
    if end_date is not None and as_utc(end_date) <= now:
        raise InvalidTransition("Suspension end date must be in the future", user_id=user_id)

    with atomic(db):
        user = _lock_user(db, user_id)
        if user.role == UserRole.ADMIN.value:
            raise NotAuthorized("Administrator accounts cannot be suspended", user_id=user_id)
        user.suspended = True
        user.suspension_reason = reason
        user.suspended_at = now
        user.suspension_end_date = end_date
        until = f" until {as_utc(end_date):%Y-%m-%d %H:%M} UTC" if end_date is not None else ""
        notice = _account_notice(db, user, "account_suspended", f"Your account has been suspended{until}: {reason}")

    logger.info("account_suspended user_id=%s admin_id=%s end_date=%s", user_id, actor.id, end_date)
    db.refresh(user)
    dispatch(dispatcher, [notice])
    return user


def reinstate_account(
    db: Session,
    actor: Actor,
    user_id: int,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> User:
    if not actor.is_admin:
        raise NotAuthorized("Administrator role required", actor_id=actor.id)
    now = now or utcnow()

    with atomic(db):
        user = _lock_user(db, user_id)
        if not user.suspended:
            raise InvalidTransition("Account is not suspended", user_id=user_id)
        _clear_suspension(user, now)
        notice = _account_notice(db, user, "account_reinstated", "Your account has been reinstated.")

    logger.info("account_reinstated user_id=%s admin_id=%s", user_id, actor.id)
    db.refresh(user)
    dispatch(dispatcher, [notice])
    return user
