from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_notification_dispatcher, require_roles
from app.api.pagination import LimitParam, OffsetParam
from app.db.models import UserRole
from app.db.session import get_db
from app.schemas.actor import Actor
from app.schemas.booking import BookingResponse, CancellationDecisionRequest
from app.schemas.provider import ProviderResponse, ReliabilityResponse, ReliabilityScoreUpdateRequest
from app.schemas.user import AccountStatusResponse, SuspensionRequest
from app.services import auth_service, booking_service, provider_service, reliability_service
from app.services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/admin", tags=["admin"])

admin_only = require_roles(UserRole.ADMIN)


@router.get("/providers/pending", response_model=list[ProviderResponse], status_code=status.HTTP_200_OK)
def list_pending_providers(
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
) -> list[ProviderResponse]:
    providers = provider_service.list_unverified_providers(db, actor, limit=limit, offset=offset)
    return [ProviderResponse.model_validate(provider) for provider in providers]


@router.post("/providers/{provider_id}/verify", response_model=ProviderResponse, status_code=status.HTTP_200_OK)
def verify_provider(
    provider_id: int,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ProviderResponse:
    provider = provider_service.verify_provider(db, actor, provider_id, dispatcher=dispatcher)
    return ProviderResponse.model_validate(provider)


@router.post("/providers/{provider_id}/reject", response_model=ProviderResponse, status_code=status.HTTP_200_OK)
def reject_provider(
    provider_id: int,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ProviderResponse:
    provider = provider_service.reject_provider(db, actor, provider_id, dispatcher=dispatcher)
    return ProviderResponse.model_validate(provider)


@router.put(
    "/providers/{provider_id}/reliability-score",
    response_model=ReliabilityResponse,
    status_code=status.HTTP_200_OK,
)
def set_reliability_score(
    provider_id: int,
    payload: ReliabilityScoreUpdateRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
) -> ReliabilityResponse:
    return reliability_service.set_score(db, actor, provider_id, payload.score)


@router.post(
    "/providers/{provider_id}/reset-restrictions",
    response_model=ReliabilityResponse,
    status_code=status.HTTP_200_OK,
)
def reset_restrictions(
    provider_id: int,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
) -> ReliabilityResponse:
    return reliability_service.reset_restrictions(db, actor, provider_id)


@router.get("/cancellation-requests", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
def list_cancellation_requests(
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
) -> list[BookingResponse]:
    bookings = booking_service.list_pending_cancellations(db, actor, limit=limit, offset=offset)
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.post(
    "/bookings/{booking_id}/cancellation-decision",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
def decide_cancellation(
    booking_id: int,
    payload: CancellationDecisionRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingResponse:
    booking = booking_service.resolve_cancellation_as_admin(
        db=db,
        actor=actor,
        booking_id=booking_id,
        approve=payload.approve,
        dispatcher=dispatcher,
    )
    return BookingResponse.model_validate(booking)


@router.post("/users/{user_id}/suspend", response_model=AccountStatusResponse, status_code=status.HTTP_200_OK)
def suspend_user(
    user_id: int,
    payload: SuspensionRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> AccountStatusResponse:
    user = auth_service.suspend_account(
        db,
        actor,
        user_id,
        payload.reason,
        dispatcher,
        end_date=payload.end_date,
    )
    return AccountStatusResponse.model_validate(user)


@router.post("/users/{user_id}/reinstate", response_model=AccountStatusResponse, status_code=status.HTTP_200_OK)
def reinstate_user(
    user_id: int,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> AccountStatusResponse:
    user = auth_service.reinstate_account(db, actor, user_id, dispatcher)
    return AccountStatusResponse.model_validate(user)


@router.post(
    "/providers/{provider_id}/suspend",
    response_model=AccountStatusResponse,
    status_code=status.HTTP_200_OK,
)
def suspend_provider(
    provider_id: int,
    payload: SuspensionRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> AccountStatusResponse:
    user = provider_service.suspend_provider(
        db,
        actor,
        provider_id,
        payload.reason,
        dispatcher,
        end_date=payload.end_date,
    )
    return AccountStatusResponse.model_validate(user)


@router.post(
    "/providers/{provider_id}/reinstate",
    response_model=AccountStatusResponse,
    status_code=status.HTTP_200_OK,
)
def reinstate_provider(
    provider_id: int,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> AccountStatusResponse:
    user = provider_service.reinstate_provider(db, actor, provider_id, dispatcher)
    return AccountStatusResponse.model_validate(user)
