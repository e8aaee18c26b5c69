from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor, get_notification_dispatcher, require_roles
from app.api.pagination import LimitParam, OffsetParam
from app.db.models import BookingStatus, UserRole
from app.db.session import get_db
from app.schemas.actor import Actor
from app.schemas.booking import (
    BookingCancelRequest,
    BookingCreateRequest,
    BookingDeclineRequest,
    BookingResponse,
    CancellationResponseRequest,
)
from app.services import booking_service
from app.services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreateRequest,
    actor: Actor = Depends(require_roles(UserRole.CLIENT)),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingResponse:
    booking = booking_service.create_booking(db=db, actor=actor, payload=payload, dispatcher=dispatcher)
    return BookingResponse.model_validate(booking)


@router.get("/me", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
def list_my_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[BookingResponse]:
    if actor.role is UserRole.PROVIDER:
        bookings = booking_service.list_provider_bookings(db, actor, status=status_filter, limit=limit, offset=offset)
    else:
        bookings = booking_service.list_client_bookings(db, actor, status=status_filter, limit=limit, offset=offset)
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.get("/{booking_id}", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def get_booking(
    booking_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> BookingResponse:
    return BookingResponse.model_validate(booking_service.get_booking_for_actor(db, actor, booking_id))


@router.post("/{booking_id}/accept", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def accept_booking(
    booking_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingResponse:
    booking = booking_service.accept_booking(db=db, actor=actor, booking_id=booking_id, dispatcher=dispatcher)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/decline", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def decline_booking(
    booking_id: int,
    payload: BookingDeclineRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingResponse:
    booking = booking_service.decline_booking(
        db=db,
        actor=actor,
        booking_id=booking_id,
        dispatcher=dispatcher,
        reason=payload.reason,
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def cancel_booking(
    booking_id: int,
    payload: BookingCancelRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingResponse:
    booking = booking_service.cancel_booking_by_client(
        db=db,
        actor=actor,
        booking_id=booking_id,
        dispatcher=dispatcher,
        reason=payload.reason,
    )
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/cancellation-request",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
def request_cancellation(
    booking_id: int,
    payload: BookingCancelRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingResponse:
    booking = booking_service.request_cancellation(
        db=db,
        actor=actor,
        booking_id=booking_id,
        dispatcher=dispatcher,
        reason=payload.reason,
    )
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/cancellation-response",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
def respond_to_cancellation(
    booking_id: int,
    payload: CancellationResponseRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingResponse:
    booking = booking_service.respond_to_cancellation(
        db=db,
        actor=actor,
        booking_id=booking_id,
        accept=payload.accept,
        dispatcher=dispatcher,
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def complete_booking(
    booking_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingResponse:
    booking = booking_service.complete_booking(db=db, actor=actor, booking_id=booking_id, dispatcher=dispatcher)
    return BookingResponse.model_validate(booking)
