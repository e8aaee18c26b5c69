from datetime import date, timedelta

import pytest

from app.core.config import settings
from app.core.errors import (
    InvalidTransition,
    NotAuthorized,
    NotFound,
    ProviderNotBookable,
    SlotUnavailable,
)
from app.core.timeutils import as_utc, utcnow
from app.db.models import BookingState, BookingStatus, CancelledBy, ServiceProvider, UserRole
from app.schemas.booking import BookingCreateRequest
from app.schemas.service import ServiceCreateRequest
from app.services import booking_service, reliability_service
from app.services.notification_service import NotificationDispatcher
from app.services.provider_service import create_service

MONDAY = date(2026, 11, 2)
SUNDAY = date(2026, 11, 8)


class ExplodingDispatcher(NotificationDispatcher):
    def __init__(self) -> None:
        self.calls = 0

    def notify(self, target_role, target_id, message, type, metadata) -> None:
        self.calls += 1
        raise RuntimeError("notification backend is down")


def _score(db_session, provider_id: int) -> int:
    return reliability_service.get_reliability(db_session, provider_id).reliability_score


def test_create_booking_starts_pending(db_session, make_booking, dispatcher):
    client, _, booking = make_booking(confirmed=False)

    assert booking.status is BookingStatus.PENDING_CONFIRMATION
    assert booking.client_id == client.id
    assert booking.cancellation_attempts == 0
    assert booking.cancellation_requested is False
    assert dispatcher.types() == ["booking_request"]
    assert dispatcher.sent[0].target_role == "provider"
    assert dispatcher.sent[0].metadata == {"booking_id": booking.id, "date": "2026-11-02", "time": "10:00"}


def test_create_booking_outside_slots_fails(db_session, make_user, make_provider, dispatcher):
    client = make_user()
    _, provider = make_provider()

    for day, time in [(MONDAY, "08:30"), (MONDAY, "17:00"), (MONDAY, "10:15"), (SUNDAY, "10:00")]:
        with pytest.raises(SlotUnavailable):
            booking_service.create_booking(
                db_session,
                client,
                BookingCreateRequest(provider_id=provider.id, date=day, time=time),
                dispatcher,
            )
    assert dispatcher.sent == []


def test_create_booking_requires_verified_provider(db_session, make_user, make_provider, dispatcher):
    client = make_user()
    _, provider = make_provider(verified=False)

    with pytest.raises(ProviderNotBookable):
        booking_service.create_booking(
            db_session,
            client,
            BookingCreateRequest(provider_id=provider.id, date=MONDAY, time="10:00"),
            dispatcher,
        )


def test_create_booking_for_unknown_provider(db_session, make_user, dispatcher):
    with pytest.raises(NotFound):
        booking_service.create_booking(
            db_session,
            make_user(),
            BookingCreateRequest(provider_id=404, date=MONDAY, time="10:00"),
            dispatcher,
        )


def test_only_clients_create_bookings(db_session, make_provider, dispatcher):
    provider_actor, provider = make_provider()

    with pytest.raises(NotAuthorized):
        booking_service.create_booking(
            db_session,
            provider_actor,
            BookingCreateRequest(provider_id=provider.id, date=MONDAY, time="10:00"),
            dispatcher,
        )


def test_accept_and_complete(db_session, make_user, make_booking, dispatcher):
    _, provider_actor, booking = make_booking()
    assert booking.status is BookingStatus.CONFIRMED

    reliability_service.set_score(db_session, make_user(UserRole.ADMIN), booking.provider_id, 90)
    completed = booking_service.complete_booking(db_session, provider_actor, booking.id, dispatcher)

    assert completed.status is BookingStatus.COMPLETED
    assert completed.completed_at is not None
    assert _score(db_session, booking.provider_id) == 91
    assert dispatcher.types()[-1] == "booking_completed"


def test_decline_records_reason(db_session, make_booking, dispatcher):
    _, provider_actor, booking = make_booking(confirmed=False)

    declined = booking_service.decline_booking(db_session, provider_actor, booking.id, dispatcher, reason="Fully booked")

    assert declined.status is BookingStatus.DECLINED
    assert declined.decline_reason == "Fully booked"
    with pytest.raises(InvalidTransition):
        booking_service.accept_booking(db_session, provider_actor, booking.id, dispatcher)


def test_decline_after_accept_is_invalid(db_session, make_booking, dispatcher):
    _, provider_actor, booking = make_booking()

    with pytest.raises(InvalidTransition):
        booking_service.decline_booking(db_session, provider_actor, booking.id, dispatcher)


def test_client_cancels_pending_booking_without_penalty(db_session, make_booking, dispatcher):
    client, _, booking = make_booking(confirmed=False)

    cancelled = booking_service.cancel_booking_by_client(db_session, client, booking.id, dispatcher, reason="Plans changed")

    assert cancelled.status is BookingStatus.CANCELLED
    assert cancelled.cancelled_by == CancelledBy.CLIENT.value
    assert cancelled.cancellation_reason == "Plans changed"
    assert cancelled.cancelled_at is not None
    assert _score(db_session, booking.provider_id) == 100
    assert dispatcher.types()[-1] == "booking_cancelled_by_user"


def test_client_cannot_cancel_while_cancellation_is_requested(db_session, make_booking, dispatcher):
    client, provider_actor, booking = make_booking()
    booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher, reason="Sick")

    with pytest.raises(InvalidTransition):
        booking_service.cancel_booking_by_client(db_session, client, booking.id, dispatcher)


def test_three_strike_protocol(db_session, make_booking, dispatcher):
    _, provider_actor, booking = make_booking()
    provider_id = booking.provider_id

    first = booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher, reason="Sick")
    assert first.status is BookingStatus.CONFIRMED
    assert first.cancellation_requested is True
    assert first.cancellation_attempts == 1
    assert first.pending_cancellation.reason == "Sick"
    assert _score(db_session, provider_id) == 100

    second = booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher, reason="Still sick")
    assert second.status is BookingStatus.CONFIRMED
    assert second.cancellation_requested is True
    assert second.cancellation_attempts == 2
    assert _score(db_session, provider_id) == 95

    now = utcnow()
    third = booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher, now=now)
    assert third.status is BookingStatus.CANCELLED
    assert third.lifecycle_state is BookingState.CANCELLED
    assert third.third_strike_cancellation is True
    assert third.cancellation_requested is False
    assert third.cancelled_by == CancelledBy.PROVIDER.value

    reliability = reliability_service.get_reliability(db_session, provider_id, now=now)
    assert reliability.reliability_score == 80
    assert reliability.booking_enabled is False
    assert as_utc(reliability.penalty_end_date) == now + timedelta(days=7)

    assert dispatcher.types()[-3:] == [
        "booking_cancellation_requested",
        "booking_cancellation_requested",
        "booking_cancelled_by_provider",
    ]
    assert dispatcher.sent[-1].metadata["attempt"] == 3


def test_second_attempt_penalty_applies_after_client_declined(db_session, make_booking, dispatcher):
    client, provider_actor, booking = make_booking()
    booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)
    declined = booking_service.respond_to_cancellation(db_session, client, booking.id, False, dispatcher)

    assert declined.status is BookingStatus.CONFIRMED
    assert declined.cancellation_requested is False
    assert declined.cancellation_declined is True

    again = booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)
    assert again.cancellation_attempts == 2
    assert again.cancellation_declined is False
    assert _score(db_session, booking.provider_id) == 95


def test_client_accepts_cancellation_request(db_session, make_booking, dispatcher):
    client, provider_actor, booking = make_booking()
    booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)

    accepted = booking_service.respond_to_cancellation(db_session, client, booking.id, True, dispatcher)

    assert accepted.status is BookingStatus.CANCELLED
    assert accepted.cancellation_requested is False
    assert accepted.cancelled_by == CancelledBy.PROVIDER.value
    assert dispatcher.types()[-1] == "cancellation_accepted_by_user"


def test_responding_without_pending_request_is_invalid(db_session, make_booking, dispatcher):
    client, _, booking = make_booking()

    with pytest.raises(InvalidTransition):
        booking_service.respond_to_cancellation(db_session, client, booking.id, True, dispatcher)


def test_provider_cannot_request_cancellation_of_pending_booking(db_session, make_booking, dispatcher):
    _, provider_actor, booking = make_booking(confirmed=False)

    with pytest.raises(InvalidTransition):
        booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)


def test_complete_requires_plain_confirmed(db_session, make_booking, dispatcher):
    _, provider_actor, booking = make_booking()
    booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)

    with pytest.raises(InvalidTransition):
        booking_service.complete_booking(db_session, provider_actor, booking.id, dispatcher)


def test_wrong_party_is_rejected(db_session, make_user, make_provider, make_booking, dispatcher):
    client, provider_actor, booking = make_booking(confirmed=False)
    stranger = make_user()
    other_provider, _ = make_provider()

    with pytest.raises(NotAuthorized):
        booking_service.accept_booking(db_session, client, booking.id, dispatcher)
    with pytest.raises(NotAuthorized):
        booking_service.accept_booking(db_session, other_provider, booking.id, dispatcher)
    with pytest.raises(NotAuthorized):
        booking_service.cancel_booking_by_client(db_session, stranger, booking.id, dispatcher)
    with pytest.raises(NotAuthorized):
        booking_service.cancel_booking_by_client(db_session, provider_actor, booking.id, dispatcher)
    with pytest.raises(NotAuthorized):
        booking_service.get_booking_for_actor(db_session, stranger, booking.id)

    assert booking_service.get_booking_for_actor(db_session, provider_actor, booking.id).id == booking.id


def test_authorization_is_checked_before_state(db_session, make_user, make_booking, dispatcher):
    _, provider_actor, booking = make_booking()
    booking_service.complete_booking(db_session, provider_actor, booking.id, dispatcher)

    with pytest.raises(NotAuthorized):
        booking_service.accept_booking(db_session, make_user(), booking.id, dispatcher)


def test_missing_booking_is_not_found(db_session, make_user, dispatcher):
    with pytest.raises(NotFound):
        booking_service.accept_booking(db_session, make_user(UserRole.PROVIDER), 12345, dispatcher)


def test_admin_approves_cancellation_with_refund(db_session, make_user, make_booking, dispatcher):
    _, provider_actor, booking = make_booking()
    booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)
    admin = make_user(UserRole.ADMIN)

    pending = booking_service.list_pending_cancellations(db_session, admin)
    assert [item.id for item in pending] == [booking.id]

    approved = booking_service.resolve_cancellation_as_admin(db_session, admin, booking.id, True, dispatcher)

    assert approved.status is BookingStatus.CANCELLED
    assert approved.cancelled_by == CancelledBy.ADMIN.value
    assert approved.refund_amount == settings.cancellation_refund_amount == 35
    assert approved.refunded_at is not None
    assert [notice.target_role for notice in dispatcher.sent[-2:]] == ["client", "provider"]
    assert dispatcher.sent[-1].metadata["refund_amount"] == 35
    assert booking_service.list_pending_cancellations(db_session, admin) == []


def test_admin_rejects_cancellation(db_session, make_user, make_booking, dispatcher):
    _, provider_actor, booking = make_booking()
    booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)
    admin = make_user(UserRole.ADMIN)

    rejected = booking_service.resolve_cancellation_as_admin(db_session, admin, booking.id, False, dispatcher)

    assert rejected.status is BookingStatus.CONFIRMED
    assert rejected.cancellation_requested is False
    assert rejected.cancellation_declined is False
    assert dispatcher.types()[-2:] == ["cancellation_rejected", "cancellation_rejected"]


def test_non_admin_cannot_resolve_cancellation(db_session, make_booking, dispatcher):
    client, provider_actor, booking = make_booking()
    booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)

    with pytest.raises(NotAuthorized):
        booking_service.resolve_cancellation_as_admin(db_session, client, booking.id, True, dispatcher)
    with pytest.raises(NotAuthorized):
        booking_service.list_pending_cancellations(db_session, provider_actor)


def test_admin_bypasses_ownership(db_session, make_user, make_booking, dispatcher):
    _, _, booking = make_booking(confirmed=False)
    admin = make_user(UserRole.ADMIN)

    assert booking_service.accept_booking(db_session, admin, booking.id, dispatcher).status is BookingStatus.CONFIRMED


def test_admin_cannot_drive_strike_protocol(db_session, make_user, make_booking, dispatcher):
    _, _, booking = make_booking()
    admin = make_user(UserRole.ADMIN)

    for _ in range(3):
        with pytest.raises(NotAuthorized):
            booking_service.request_cancellation(db_session, admin, booking.id, dispatcher)

    db_session.expire_all()
    stored = booking_service.get_booking_for_actor(db_session, admin, booking.id)
    assert stored.status is BookingStatus.CONFIRMED
    assert stored.cancellation_attempts == 0
    reliability = reliability_service.get_reliability(db_session, booking.provider_id)
    assert reliability.reliability_score == 100
    assert reliability.booking_enabled is True


def test_admin_cannot_act_as_client(db_session, make_user, make_booking, dispatcher):
    _, provider_actor, booking = make_booking()
    admin = make_user(UserRole.ADMIN)

    with pytest.raises(NotAuthorized):
        booking_service.cancel_booking_by_client(db_session, admin, booking.id, dispatcher)

    booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)
    with pytest.raises(NotAuthorized):
        booking_service.respond_to_cancellation(db_session, admin, booking.id, True, dispatcher)

    db_session.expire_all()
    stored = booking_service.get_booking_for_actor(db_session, admin, booking.id)
    assert stored.cancelled_by is None
    assert stored.cancellation_requested is True


def test_notification_failure_does_not_undo_transition(db_session, make_booking):
    _, provider_actor, booking = make_booking(confirmed=False)
    broken = ExplodingDispatcher()

    accepted = booking_service.accept_booking(db_session, provider_actor, booking.id, broken)

    assert broken.calls == 1
    assert accepted.status is BookingStatus.CONFIRMED
    db_session.expire_all()
    assert booking_service.get_booking_for_actor(db_session, provider_actor, booking.id).status is BookingStatus.CONFIRMED


def test_failed_precondition_writes_nothing(db_session, make_booking, dispatcher):
    client, provider_actor, booking = make_booking()
    booking_service.complete_booking(db_session, provider_actor, booking.id, dispatcher)

    with pytest.raises(InvalidTransition):
        booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher, reason="late")

    db_session.expire_all()
    stored = booking_service.get_booking_for_actor(db_session, client, booking.id)
    assert stored.cancellation_attempts == 0
    assert stored.cancellation_reason is None


def test_suspended_provider_cannot_be_booked_until_penalty_expires(db_session, make_user, make_booking, dispatcher):
    _, provider_actor, booking = make_booking()
    struck_at = utcnow() - timedelta(days=3)
    for _ in range(3):
        booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher, now=struck_at)

    request = BookingCreateRequest(provider_id=booking.provider_id, date=MONDAY, time="11:00")
    with pytest.raises(ProviderNotBookable):
        booking_service.create_booking(db_session, make_user(), request, dispatcher)

    later = struck_at + timedelta(days=7, minutes=1)
    created = booking_service.create_booking(db_session, make_user(), request, dispatcher, now=later)

    assert created.status is BookingStatus.PENDING_CONFIRMATION
    provider = db_session.get(ServiceProvider, booking.provider_id)
    assert provider.booking_enabled is True
    assert provider.penalty_end_date is None


def test_booking_may_reference_own_service_only(db_session, make_user, make_provider, dispatcher):
    provider_actor, provider = make_provider()
    other_actor, _ = make_provider()
    own = create_service(db_session, provider_actor, ServiceCreateRequest(title="Leak fix", duration_minutes=60, price="50.00"))
    foreign = create_service(db_session, other_actor, ServiceCreateRequest(title="Rewire", duration_minutes=60, price="80.00"))
    client = make_user()

    booking = booking_service.create_booking(
        db_session,
        client,
        BookingCreateRequest(provider_id=provider.id, date=MONDAY, time="09:00", service_id=own.id),
        dispatcher,
    )
    assert booking.service_id == own.id

    with pytest.raises(NotFound):
        booking_service.create_booking(
            db_session,
            client,
            BookingCreateRequest(provider_id=provider.id, date=MONDAY, time="09:30", service_id=foreign.id),
            dispatcher,
        )


def test_status_filter_groups_pending_cancellation_with_confirmed(db_session, make_booking, dispatcher):
    client, provider_actor, booking = make_booking()
    booking_service.request_cancellation(db_session, provider_actor, booking.id, dispatcher)

    confirmed = booking_service.list_client_bookings(db_session, client, status=BookingStatus.CONFIRMED)
    cancelled = booking_service.list_client_bookings(db_session, client, status=BookingStatus.CANCELLED)

    assert [item.id for item in confirmed] == [booking.id]
    assert cancelled == []
    assert [item.id for item in booking_service.list_provider_bookings(db_session, provider_actor)] == [booking.id]
