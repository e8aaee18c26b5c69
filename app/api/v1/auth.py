import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.rate_limiter import rate_limiter
from app.db.session import get_db
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from app.schemas.user import UserResponse
from app.services.auth_service import login_user, register_user

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def rate_limited(endpoint: str, limit: Callable[[], int]) -> Callable[[Request], None]:
    def dependency(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        allowed, retry_after = rate_limiter.allow(
            key=f"{endpoint}:{client_ip}",
            limit=limit(),
            window_seconds=settings.auth_rate_limit_window_seconds,
        )
        if not allowed:
            logger.warning("rate_limited endpoint=%s client_ip=%s retry_after=%s", endpoint, client_ip, retry_after)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later.",
                headers={"Retry-After": str(retry_after)},
            )

    return dependency


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited("register", lambda: settings.auth_register_max_attempts))],
)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> UserResponse:
    return UserResponse.model_validate(register_user(payload=payload, db=db))


@router.post(
    "/login",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(rate_limited("login", lambda: settings.auth_login_max_attempts))],
)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    return login_user(payload=payload, db=db)
