import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidTransition, NotAuthorized, NotFound, ProviderNotBookable, SlotUnavailable
from app.core.metrics import BOOKING_TRANSITIONS
from app.core.timeutils import utcnow
from app.db.models import (
    Booking,
    BookingState,
    BookingStatus,
    CancellationResolution,
    CancelledBy,
    Service,
    ServiceProvider,
    User,
    UserRole,
)
from app.schemas.actor import Actor
from app.schemas.booking import BookingCreateRequest
from app.services import auth_service, reliability_service
from app.services.availability_service import get_availability_record, resolve_slots
from app.services.locking import atomic, for_update
from app.services.notification_service import (
    TARGET_CLIENT,
    TARGET_PROVIDER,
    Notice,
    NotificationDispatcher,
    dispatch,
)

logger = logging.getLogger(__name__)

SECOND_ATTEMPT = 2
THIRD_STRIKE = 3

ALLOWED_SOURCE_STATES: dict[str, frozenset[BookingState]] = {
    "accept": frozenset({BookingState.PENDING_CONFIRMATION}),
    "decline": frozenset({BookingState.PENDING_CONFIRMATION}),
    "client_cancel": frozenset({BookingState.PENDING_CONFIRMATION, BookingState.CONFIRMED}),
    "request_cancellation": frozenset({BookingState.CONFIRMED, BookingState.CANCELLATION_REQUESTED}),
    "respond_to_cancellation": frozenset({BookingState.CANCELLATION_REQUESTED}),
    "resolve_cancellation": frozenset({BookingState.CANCELLATION_REQUESTED}),
    "complete": frozenset({BookingState.CONFIRMED}),
}

STATUS_STATES: dict[BookingStatus, tuple[BookingState, ...]] = {
    BookingStatus.PENDING_CONFIRMATION: (BookingState.PENDING_CONFIRMATION,),
    BookingStatus.CONFIRMED: (BookingState.CONFIRMED, BookingState.CANCELLATION_REQUESTED),
    BookingStatus.COMPLETED: (BookingState.COMPLETED,),
    BookingStatus.CANCELLED: (BookingState.CANCELLED,),
    BookingStatus.DECLINED: (BookingState.DECLINED,),
}


def _lock_booking(db: Session, booking_id: int) -> Booking:
    booking = db.scalar(for_update(db, select(Booking).where(Booking.id == booking_id)))
    if booking is None:
        raise NotFound("Booking not found", booking_id=booking_id)
    return booking


def _provider_owner_id(db: Session, provider_id: int) -> int | None:
    return db.scalar(select(ServiceProvider.user_id).where(ServiceProvider.id == provider_id))


def _authorize_client(actor: Actor, booking: Booking) -> None:
    if actor.role is not UserRole.CLIENT or booking.client_id != actor.id:
        raise NotAuthorized("Only the booking's client may do this", booking_id=booking.id, actor_id=actor.id)


def _authorize_provider(db: Session, actor: Actor, booking: Booking, allow_admin: bool = True) -> None:
    if allow_admin and actor.is_admin:
        return
    if actor.role is not UserRole.PROVIDER or _provider_owner_id(db, booking.provider_id) != actor.id:
        raise NotAuthorized("Only the booking's provider may do this", booking_id=booking.id, actor_id=actor.id)


def _authorize_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise NotAuthorized("Administrator role required", actor_id=actor.id)


def _ensure_transition(booking: Booking, operation: str) -> BookingState:
    current = booking.lifecycle_state
    if current not in ALLOWED_SOURCE_STATES[operation]:
        raise InvalidTransition(
            f"Cannot {operation.replace('_', ' ')} a booking in state {current.value}",
            booking_id=booking.id,
            state=current.value,
        )
    return current


def _move(booking: Booking, target: BookingState, now: datetime) -> None:
    booking.state = target.value
    booking.updated_at = now


def _metadata(booking: Booking, **extra) -> dict:
    return {"booking_id": booking.id, "date": booking.date.isoformat(), "time": booking.time, **extra}


def _client_notice(booking: Booking, type_: str, message: str, **extra) -> Notice:
    return Notice(
        target_role=TARGET_CLIENT,
        target_id=booking.client_id,
        type=type_,
        message=message,
        metadata=_metadata(booking, **extra),
    )


def _provider_notice(booking: Booking, type_: str, message: str, **extra) -> Notice:
    return Notice(
        target_role=TARGET_PROVIDER,
        target_id=booking.provider_id,
        type=type_,
        message=message,
        metadata=_metadata(booking, **extra),
    )


def _record_transition(operation: str, booking_id: int, source: BookingState | None, target: BookingState) -> None:
    BOOKING_TRANSITIONS.labels(operation=operation, target=target.value).inc()
    logger.info(
        "booking_transition booking_id=%s operation=%s from=%s to=%s",
        booking_id,
        operation,
        source.value if source else "-",
        target.value,
    )


def _finish(db: Session, booking: Booking, dispatcher: NotificationDispatcher, notices: list[Notice]) -> Booking:
    db.refresh(booking)
    dispatch(dispatcher, notices)
    return booking


def create_booking(
    db: Session,
    actor: Actor,
    payload: BookingCreateRequest,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> Booking:
    now = now or utcnow()
    if actor.role is not UserRole.CLIENT:
        raise NotAuthorized("Only clients can create bookings", actor_id=actor.id)

    # Runs (and commits) the lazy penalty expiry before the provider is judged bookable.
    penalized = reliability_service.is_in_penalty_period(db, payload.provider_id, now)

    with atomic(db):
        provider = db.get(ServiceProvider, payload.provider_id)
        if not provider.documents_verified:
            raise ProviderNotBookable("Provider is not verified", provider_id=provider.id)
        owner = db.get(User, provider.user_id)
        auth_service.refresh_suspension(owner, now)
        if owner.suspended:
            raise ProviderNotBookable("Provider account is suspended", provider_id=provider.id)
        if penalized:
            raise ProviderNotBookable("Provider is not accepting bookings", provider_id=provider.id)

        if payload.service_id is not None:
            service = db.scalar(
                select(Service).where(Service.id == payload.service_id, Service.provider_id == provider.id)
            )
            if service is None:
                raise NotFound("Service not found", service_id=payload.service_id)

        record = get_availability_record(db, provider.id)
        if payload.time not in resolve_slots(record, payload.date):
            raise SlotUnavailable(
                "Requested time is not available",
                provider_id=provider.id,
                date=payload.date.isoformat(),
                time=payload.time,
            )

        booking = Booking(
            client_id=actor.id,
            provider_id=provider.id,
            service_id=payload.service_id,
            date=payload.date,
            time=payload.time,
            location=payload.location,
            description=payload.description,
            state=BookingState.PENDING_CONFIRMATION.value,
            cancellation_attempts=0,
            updated_at=now,
        )
        db.add(booking)
        db.flush()
        notices = [
            _provider_notice(booking, "booking_request", f"New booking request for {booking.date} at {booking.time}.")
        ]

    _record_transition("create", booking.id, None, BookingState.PENDING_CONFIRMATION)
    return _finish(db, booking, dispatcher, notices)


def accept_booking(
    db: Session,
    actor: Actor,
    booking_id: int,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> Booking:
    now = now or utcnow()
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        _authorize_provider(db, actor, booking)
        source = _ensure_transition(booking, "accept")
        _move(booking, BookingState.CONFIRMED, now)
        notices = [_client_notice(booking, "booking_accepted", "Your booking has been accepted.")]

    _record_transition("accept", booking_id, source, BookingState.CONFIRMED)
    return _finish(db, booking, dispatcher, notices)


def decline_booking(
    db: Session,
    actor: Actor,
    booking_id: int,
    dispatcher: NotificationDispatcher,
    reason: str | None = None,
    now: datetime | None = None,
) -> Booking:
    now = now or utcnow()
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        _authorize_provider(db, actor, booking)
        source = _ensure_transition(booking, "decline")
        _move(booking, BookingState.DECLINED, now)
        booking.decline_reason = reason
        notices = [
            _client_notice(booking, "booking_declined", "Your booking request was declined.", reason=reason)
        ]

    _record_transition("decline", booking_id, source, BookingState.DECLINED)
    return _finish(db, booking, dispatcher, notices)


def cancel_booking_by_client(
    db: Session,
    actor: Actor,
    booking_id: int,
    dispatcher: NotificationDispatcher,
    reason: str = "",
    now: datetime | None = None,
) -> Booking:
    now = now or utcnow()
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        _authorize_client(actor, booking)
        source = _ensure_transition(booking, "client_cancel")
        _move(booking, BookingState.CANCELLED, now)
        booking.cancelled_by = CancelledBy.CLIENT.value
        booking.cancellation_reason = reason or None
        booking.cancelled_at = now
        notices = [
            _provider_notice(booking, "booking_cancelled_by_user", "A client cancelled their booking.", reason=reason)
        ]

    _record_transition("client_cancel", booking_id, source, BookingState.CANCELLED)
    return _finish(db, booking, dispatcher, notices)


def request_cancellation(
    db: Session,
    actor: Actor,
    booking_id: int,
    dispatcher: NotificationDispatcher,
    reason: str = "",
    now: datetime | None = None,
) -> Booking:
    now = now or utcnow()
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        _authorize_provider(db, actor, booking, allow_admin=False)
        source = _ensure_transition(booking, "request_cancellation")

        attempt = booking.cancellation_attempts + 1
        booking.cancellation_attempts = attempt
        booking.cancellation_reason = reason or None
        booking.cancellation_resolution = None
        booking.last_cancellation_attempt_at = now

        if attempt >= THIRD_STRIKE:
            provider = reliability_service.lock_provider(db, booking.provider_id)
            _move(booking, BookingState.CANCELLED, now)
            booking.cancelled_by = CancelledBy.PROVIDER.value
            booking.cancelled_at = now
            booking.cancellation_resolution = CancellationResolution.THIRD_STRIKE.value
            reliability_service.penalize_third_strike(provider, now)
            target = BookingState.CANCELLED
            notices = [
                _client_notice(
                    booking,
                    "booking_cancelled_by_provider",
                    "Your booking was cancelled by the provider.",
                    attempt=attempt,
                    reason=reason,
                )
            ]
        else:
            if attempt == SECOND_ATTEMPT:
                provider = reliability_service.lock_provider(db, booking.provider_id)
                reliability_service.penalize_second_attempt(provider)
            _move(booking, BookingState.CANCELLATION_REQUESTED, now)
            booking.cancellation_requested_at = now
            target = BookingState.CANCELLATION_REQUESTED
            notices = [
                _client_notice(
                    booking,
                    "booking_cancellation_requested",
                    "The provider asked to cancel your booking. Please accept or decline.",
                    attempt=attempt,
                    reason=reason,
                )
            ]

    _record_transition("request_cancellation", booking_id, source, target)
    return _finish(db, booking, dispatcher, notices)


def respond_to_cancellation(
    db: Session,
    actor: Actor,
    booking_id: int,
    accept: bool,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> Booking:
    now = now or utcnow()
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        _authorize_client(actor, booking)
        source = _ensure_transition(booking, "respond_to_cancellation")

        if accept:
            _move(booking, BookingState.CANCELLED, now)
            booking.cancelled_by = CancelledBy.PROVIDER.value
            booking.cancelled_at = now
            booking.cancellation_resolution = CancellationResolution.ACCEPTED_BY_CLIENT.value
            operation, target = "accept_cancellation", BookingState.CANCELLED
            notices = [
                _provider_notice(
                    booking, "cancellation_accepted_by_user", "The client accepted your cancellation request."
                )
            ]
        else:
            _move(booking, BookingState.CONFIRMED, now)
            booking.cancellation_resolution = CancellationResolution.DECLINED_BY_CLIENT.value
            operation, target = "decline_cancellation", BookingState.CONFIRMED
            notices = [
                _provider_notice(
                    booking, "cancellation_declined_by_user", "The client declined your cancellation request."
                )
            ]

    _record_transition(operation, booking_id, source, target)
    return _finish(db, booking, dispatcher, notices)


def resolve_cancellation_as_admin(
    db: Session,
    actor: Actor,
    booking_id: int,
    approve: bool,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> Booking:
    now = now or utcnow()
    _authorize_admin(actor)
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        source = _ensure_transition(booking, "resolve_cancellation")

        if approve:
            refund_amount = settings.cancellation_refund_amount
            _move(booking, BookingState.CANCELLED, now)
            booking.cancelled_by = CancelledBy.ADMIN.value
            booking.cancelled_at = now
            booking.refund_amount = refund_amount
            booking.refunded_at = now
            booking.cancellation_resolution = CancellationResolution.APPROVED_BY_ADMIN.value
            operation, target = "approve_cancellation", BookingState.CANCELLED
            notices = [
                _client_notice(
                    booking,
                    "cancellation_approved",
                    "Your booking was cancelled by an administrator and a refund was issued.",
                    refund_amount=refund_amount,
                ),
                _provider_notice(
                    booking,
                    "cancellation_approved",
                    "An administrator approved your cancellation request.",
                    refund_amount=refund_amount,
                ),
            ]
        else:
            _move(booking, BookingState.CONFIRMED, now)
            booking.cancellation_resolution = CancellationResolution.REJECTED_BY_ADMIN.value
            operation, target = "reject_cancellation", BookingState.CONFIRMED
            notices = [
                _client_notice(booking, "cancellation_rejected", "Your booking stays confirmed."),
                _provider_notice(
                    booking, "cancellation_rejected", "An administrator rejected your cancellation request."
                ),
            ]

    _record_transition(operation, booking_id, source, target)
    logger.info("admin_cancellation_decision booking_id=%s approve=%s admin_id=%s", booking_id, approve, actor.id)
    return _finish(db, booking, dispatcher, notices)


def complete_booking(
    db: Session,
    actor: Actor,
    booking_id: int,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> Booking:
    now = now or utcnow()
    with atomic(db):
        booking = _lock_booking(db, booking_id)
        _authorize_provider(db, actor, booking)
        source = _ensure_transition(booking, "complete")
        provider = reliability_service.lock_provider(db, booking.provider_id)
        _move(booking, BookingState.COMPLETED, now)
        booking.completed_at = now
        reliability_service.reward_completion(provider)
        notices = [_client_notice(booking, "booking_completed", "Your booking has been completed.")]

    _record_transition("complete", booking_id, source, BookingState.COMPLETED)
    return _finish(db, booking, dispatcher, notices)


def get_booking_for_actor(db: Session, actor: Actor, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found", booking_id=booking_id)
    if actor.is_admin or booking.client_id == actor.id:
        return booking
    if _provider_owner_id(db, booking.provider_id) == actor.id:
        return booking
    raise NotAuthorized("Booking belongs to another user", booking_id=booking_id)


def _status_filter(query, status: BookingStatus | None):
    if status is None:
        return query
    return query.where(Booking.state.in_([state.value for state in STATUS_STATES[status]]))


def list_client_bookings(
    db: Session,
    actor: Actor,
    status: BookingStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Booking]:
    query = _status_filter(select(Booking).where(Booking.client_id == actor.id), status)
    query = query.order_by(Booking.date.desc(), Booking.time.desc(), Booking.id.desc()).limit(limit).offset(offset)
    return list(db.scalars(query).all())


def list_provider_bookings(
    db: Session,
    actor: Actor,
    status: BookingStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Booking]:
    provider_id = db.scalar(select(ServiceProvider.id).where(ServiceProvider.user_id == actor.id))
    if provider_id is None:
        raise NotFound("Provider profile not found", user_id=actor.id)
    query = _status_filter(select(Booking).where(Booking.provider_id == provider_id), status)
    query = query.order_by(Booking.date.desc(), Booking.time.desc(), Booking.id.desc()).limit(limit).offset(offset)
    return list(db.scalars(query).all())


def list_pending_cancellations(db: Session, actor: Actor, limit: int = 20, offset: int = 0) -> list[Booking]:
    _authorize_admin(actor)
    query = (
        select(Booking)
        .where(Booking.state == BookingState.CANCELLATION_REQUESTED.value)
        .order_by(Booking.cancellation_requested_at, Booking.id)
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(query).all())
