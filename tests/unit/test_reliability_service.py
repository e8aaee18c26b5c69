from datetime import timedelta

import pytest

from app.core.errors import NotAuthorized, NotFound
from app.core.timeutils import as_utc, utcnow
from app.db.models import ServiceProvider, UserRole
from app.services import reliability_service


def test_new_provider_starts_with_full_score(db_session, make_provider):
    _, provider = make_provider()

    snapshot = reliability_service.get_reliability(db_session, provider.id)

    assert snapshot.reliability_score == 100
    assert snapshot.booking_enabled is True
    assert snapshot.cancellation_count == 0


def test_record_is_initialized_on_first_read(db_session, make_provider):
    _, provider = make_provider()
    provider.reliability_score = None
    db_session.commit()

    snapshot = reliability_service.get_reliability(db_session, provider.id)

    assert snapshot.reliability_score == 100
    db_session.refresh(provider)
    assert provider.reliability_score == 100


def test_unknown_provider_is_not_found(db_session):
    with pytest.raises(NotFound):
        reliability_service.get_reliability(db_session, 9999)


def test_second_attempt_penalty(db_session, make_provider):
    _, provider = make_provider()

    snapshot = reliability_service.apply_second_attempt_penalty(db_session, provider.id)

    assert snapshot.reliability_score == 95
    assert snapshot.booking_enabled is True


def test_third_strike_penalty_suspends_for_a_week(db_session, make_provider):
    _, provider = make_provider()
    now = utcnow()

    snapshot = reliability_service.apply_third_strike_penalty(db_session, provider.id, now=now)

    assert snapshot.reliability_score == 85
    assert snapshot.booking_enabled is False
    assert snapshot.cancellation_count == 1
    assert snapshot.recent_cancellations == 1
    assert as_utc(snapshot.penalty_end_date) == now + timedelta(days=7)
    assert reliability_service.is_in_penalty_period(db_session, provider.id, now=now) is True


def test_score_never_drops_below_zero(db_session, make_provider):
    _, provider = make_provider()
    provider.reliability_score = 10
    db_session.commit()

    snapshot = reliability_service.apply_third_strike_penalty(db_session, provider.id)

    assert snapshot.reliability_score == 0


def test_completion_bonus_is_capped(db_session, make_provider):
    _, provider = make_provider()
    provider.reliability_score = 99
    db_session.commit()

    assert reliability_service.increase_score_on_completion(db_session, provider.id).reliability_score == 100
    assert reliability_service.increase_score_on_completion(db_session, provider.id).reliability_score == 100


def test_expired_penalty_is_lifted_on_read(db_session, make_provider):
    _, provider = make_provider()
    struck_at = utcnow() - timedelta(days=8)
    reliability_service.apply_third_strike_penalty(db_session, provider.id, now=struck_at)

    assert reliability_service.is_in_penalty_period(db_session, provider.id) is False

    stored = db_session.get(ServiceProvider, provider.id)
    db_session.refresh(stored)
    assert stored.booking_enabled is True
    assert stored.penalty_end_date is None
    assert stored.reliability_score == 85


def test_penalty_still_running_is_kept(db_session, make_provider):
    _, provider = make_provider()
    reliability_service.apply_third_strike_penalty(db_session, provider.id, now=utcnow() - timedelta(days=6))

    assert reliability_service.is_in_penalty_period(db_session, provider.id) is True


def test_admin_disabled_provider_without_end_date_stays_in_penalty(db_session, make_provider):
    _, provider = make_provider()
    provider.booking_enabled = False
    db_session.commit()

    assert reliability_service.is_in_penalty_period(db_session, provider.id) is True


def test_admin_set_score_is_clamped(db_session, make_user, make_provider):
    admin = make_user(UserRole.ADMIN)
    _, provider = make_provider()

    assert reliability_service.set_score(db_session, admin, provider.id, 150).reliability_score == 100
    assert reliability_service.set_score(db_session, admin, provider.id, -20).reliability_score == 0
    assert reliability_service.set_score(db_session, admin, provider.id, 42).reliability_score == 42


def test_only_admin_may_set_score(db_session, make_provider):
    provider_actor, provider = make_provider()

    with pytest.raises(NotAuthorized):
        reliability_service.set_score(db_session, provider_actor, provider.id, 100)


def test_admin_reset_lifts_restrictions(db_session, make_user, make_provider):
    admin = make_user(UserRole.ADMIN)
    _, provider = make_provider()
    reliability_service.apply_third_strike_penalty(db_session, provider.id)

    snapshot = reliability_service.reset_restrictions(db_session, admin, provider.id)

    assert snapshot.booking_enabled is True
    assert snapshot.penalty_end_date is None
    assert snapshot.recent_cancellations == 0
    assert snapshot.cancellation_count == 1
    assert snapshot.reliability_score == 85
