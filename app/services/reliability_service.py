import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import NotAuthorized, NotFound
from app.core.metrics import RELIABILITY_PENALTIES
from app.core.timeutils import utcnow
from app.db.models import ServiceProvider
from app.schemas.actor import Actor
from app.schemas.provider import ReliabilityResponse
from app.services.locking import atomic, for_update

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100


def clamp_score(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, value))


def lock_provider(db: Session, provider_id: int) -> ServiceProvider:
    provider = db.scalar(for_update(db, select(ServiceProvider).where(ServiceProvider.id == provider_id)))
    if provider is None:
        raise NotFound("Provider not found", provider_id=provider_id)
    ensure_initialized(provider)
    return provider


def ensure_initialized(provider: ServiceProvider) -> None:
    if provider.reliability_score is not None:
        return
    provider.reliability_score = settings.initial_reliability_score
    provider.cancellation_count = 0
    provider.recent_cancellations = 0
    provider.last_penalty_date = None
    provider.booking_enabled = True


def refresh_penalty(provider: ServiceProvider, now: datetime) -> bool:
    if not provider.penalty_expired(now):
        return False
    provider.booking_enabled = True
    provider.penalty_end_date = None
    logger.info("penalty_expired provider_id=%s", provider.id)
    return True


def penalize_second_attempt(provider: ServiceProvider) -> None:
    ensure_initialized(provider)
    provider.reliability_score = clamp_score(provider.reliability_score - settings.second_attempt_penalty)
    RELIABILITY_PENALTIES.labels(kind="second_attempt").inc()
    logger.info(
        "reliability_penalty kind=second_attempt provider_id=%s score=%s",
        provider.id,
        provider.reliability_score,
    )


def penalize_third_strike(provider: ServiceProvider, now: datetime) -> None:
    ensure_initialized(provider)
    provider.reliability_score = clamp_score(provider.reliability_score - settings.third_strike_penalty)
    provider.cancellation_count += 1
    provider.recent_cancellations += 1
    provider.last_penalty_date = now
    provider.penalty_end_date = now + timedelta(days=settings.suspension_days)
    provider.booking_enabled = False
    RELIABILITY_PENALTIES.labels(kind="third_strike").inc()
    logger.warning(
        "reliability_penalty kind=third_strike provider_id=%s score=%s penalty_end_date=%s",
        provider.id,
        provider.reliability_score,
        provider.penalty_end_date.isoformat(),
    )


def reward_completion(provider: ServiceProvider) -> None:
    ensure_initialized(provider)
    if provider.reliability_score >= MAX_SCORE:
        return
    provider.reliability_score = clamp_score(provider.reliability_score + settings.completion_bonus)


def in_penalty(provider: ServiceProvider) -> bool:
    return not provider.booking_enabled


def to_reliability_response(provider: ServiceProvider) -> ReliabilityResponse:
    return ReliabilityResponse(
        provider_id=provider.id,
        reliability_score=provider.reliability_score,
        cancellation_count=provider.cancellation_count,
        recent_cancellations=provider.recent_cancellations,
        last_penalty_date=provider.last_penalty_date,
        penalty_end_date=provider.penalty_end_date,
        booking_enabled=provider.booking_enabled,
    )


def get_reliability(db: Session, provider_id: int, now: datetime | None = None) -> ReliabilityResponse:
    now = now or utcnow()
    with atomic(db):
        provider = lock_provider(db, provider_id)
        refresh_penalty(provider, now)
        snapshot = to_reliability_response(provider)
    return snapshot


def is_in_penalty_period(db: Session, provider_id: int, now: datetime | None = None) -> bool:
    now = now or utcnow()
    with atomic(db):
        provider = lock_provider(db, provider_id)
        refresh_penalty(provider, now)
        penalized = in_penalty(provider)
    return penalized


def apply_second_attempt_penalty(db: Session, provider_id: int) -> ReliabilityResponse:
    with atomic(db):
        provider = lock_provider(db, provider_id)
        penalize_second_attempt(provider)
        snapshot = to_reliability_response(provider)
    return snapshot


def apply_third_strike_penalty(db: Session, provider_id: int, now: datetime | None = None) -> ReliabilityResponse:
    now = now or utcnow()
    with atomic(db):
        provider = lock_provider(db, provider_id)
        penalize_third_strike(provider, now)
        snapshot = to_reliability_response(provider)
    return snapshot


def increase_score_on_completion(db: Session, provider_id: int) -> ReliabilityResponse:
    with atomic(db):
        provider = lock_provider(db, provider_id)
        reward_completion(provider)
        snapshot = to_reliability_response(provider)
    return snapshot


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise NotAuthorized("Administrator role required", actor_id=actor.id)


def set_score(db: Session, actor: Actor, provider_id: int, value: int) -> ReliabilityResponse:
    _require_admin(actor)
    score = clamp_score(value)
    with atomic(db):
        provider = lock_provider(db, provider_id)
        provider.reliability_score = score
        snapshot = to_reliability_response(provider)
    logger.info("reliability_score_set provider_id=%s score=%s admin_id=%s", provider_id, score, actor.id)
    return snapshot


def reset_restrictions(db: Session, actor: Actor, provider_id: int) -> ReliabilityResponse:
    _require_admin(actor)
    with atomic(db):
        provider = lock_provider(db, provider_id)
        provider.booking_enabled = True
        provider.penalty_end_date = None
        provider.recent_cancellations = 0
        snapshot = to_reliability_response(provider)
    logger.info("reliability_restrictions_reset provider_id=%s admin_id=%s", provider_id, actor.id)
    return snapshot
