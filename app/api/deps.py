from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.security import token_user_id
from app.db.models.user import User, UserRole
from app.db.session import get_db
from app.schemas.actor import Actor
from app.services.auth_service import actor_from_user, ensure_not_suspended
from app.services.notification_service import DatabaseNotificationDispatcher, NotificationDispatcher

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    unauthorized_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        user_id = token_user_id(token)
    except (ValueError, TypeError):
        raise unauthorized_exc from None

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise unauthorized_exc
    ensure_not_suspended(db, user)
    return user


def get_current_actor(current_user: User = Depends(get_current_user)) -> Actor:
    return actor_from_user(current_user)


def require_roles(*roles: UserRole) -> Callable[[Actor], Actor]:
    allowed_roles = set(roles)

    def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
            )
        return actor

    return checker


def get_notification_dispatcher(db: Session = Depends(get_db)) -> NotificationDispatcher:
    return DatabaseNotificationDispatcher(bind=db.get_bind())
