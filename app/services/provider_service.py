import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AlreadyExists, NotAuthorized, NotFound
from app.core.timeutils import utcnow
from app.db.models import Service, ServiceProvider, User, UserRole
from app.schemas.actor import Actor
from app.schemas.provider import ProviderCreateRequest
from app.schemas.service import ServiceCreateRequest
from app.services import auth_service, reliability_service
from app.services.availability_service import build_default_availability
from app.services.locking import atomic, for_update
from app.services.notification_service import TARGET_PROVIDER, Notice, NotificationDispatcher, dispatch

logger = logging.getLogger(__name__)


def create_provider_profile(db: Session, actor: Actor, payload: ProviderCreateRequest) -> ServiceProvider:
    if actor.role is not UserRole.PROVIDER:
        raise NotAuthorized("Only provider accounts can create a provider profile", actor_id=actor.id)

    existing = db.scalar(select(ServiceProvider.id).where(ServiceProvider.user_id == actor.id))
    if existing is not None:
        raise AlreadyExists("Provider profile already exists", provider_id=existing)

    provider = ServiceProvider(
        user_id=actor.id,
        display_name=payload.display_name,
        profession=payload.profession,
        location=payload.location,
        description=payload.description,
        documents_verified=False,
        documents_rejected=False,
        reliability_score=settings.initial_reliability_score,
        cancellation_count=0,
        recent_cancellations=0,
        booking_enabled=True,
    )
    db.add(provider)
    try:
        db.flush()
        db.add(build_default_availability(provider.id))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyExists("Provider profile already exists", user_id=actor.id) from None

    db.refresh(provider)
    logger.info("provider_created provider_id=%s user_id=%s", provider.id, actor.id)
    return provider


def get_provider(db: Session, provider_id: int) -> ServiceProvider:
    provider = db.get(ServiceProvider, provider_id)
    if provider is None:
        raise NotFound("Provider not found", provider_id=provider_id)
    return provider


def get_provider_for_actor(db: Session, actor: Actor) -> ServiceProvider:
    provider = db.scalar(select(ServiceProvider).where(ServiceProvider.user_id == actor.id))
    if provider is None:
        raise NotFound("Provider profile not found", user_id=actor.id)
    return provider


def search_providers(
    db: Session,
    profession: str | None = None,
    limit: int = 20,
    offset: int = 0,
    now: datetime | None = None,
) -> list[ServiceProvider]:
    now = now or utcnow()
    query = (
        select(ServiceProvider)
        .join(User, User.id == ServiceProvider.user_id)
        .where(ServiceProvider.documents_verified.is_(True))
    )
    if profession:
        query = query.where(ServiceProvider.profession.ilike(f"%{profession.strip()}%"))

    suspended = db.scalars(
        query.where(
            ServiceProvider.booking_enabled.is_(False),
            ServiceProvider.penalty_end_date.is_not(None),
        )
    ).all()
    for provider in suspended:
        if provider.penalty_expired(now):
            reliability_service.is_in_penalty_period(db, provider.id, now)

    lapsed = 0
    suspended_owners = db.scalars(
        select(User)
        .join(ServiceProvider, ServiceProvider.user_id == User.id)
        .where(User.suspended.is_(True), User.suspension_end_date.is_not(None))
    ).all()
    for owner in suspended_owners:
        lapsed += auth_service.refresh_suspension(owner, now)
    if lapsed:
        db.commit()

    query = query.where(ServiceProvider.booking_enabled.is_(True), User.suspended.is_(False))
    return list(db.scalars(query.order_by(ServiceProvider.id).limit(limit).offset(offset)).all())


def list_unverified_providers(db: Session, actor: Actor, limit: int = 20, offset: int = 0) -> list[ServiceProvider]:
    if not actor.is_admin:
        raise NotAuthorized("Administrator role required", actor_id=actor.id)
    query = (
        select(ServiceProvider)
        .where(ServiceProvider.documents_verified.is_(False), ServiceProvider.documents_rejected.is_(False))
        .order_by(ServiceProvider.created_at, ServiceProvider.id)
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(query).all())


def _moderate(
    db: Session,
    actor: Actor,
    provider_id: int,
    approve: bool,
    dispatcher: NotificationDispatcher,
    now: datetime | None,
) -> ServiceProvider:
    if not actor.is_admin:
        raise NotAuthorized("Administrator role required", actor_id=actor.id)
    now = now or utcnow()

    with atomic(db):
        provider = db.scalar(for_update(db, select(ServiceProvider).where(ServiceProvider.id == provider_id)))
        if provider is None:
            raise NotFound("Provider not found", provider_id=provider_id)
        if approve:
            provider.documents_verified = True
            provider.documents_rejected = False
            provider.verified_at = now
            notice = Notice(
                target_role=TARGET_PROVIDER,
                target_id=provider.id,
                type="account_verified",
                message="Your account has been verified. You can now receive bookings.",
                metadata={"provider_id": provider.id},
            )
        else:
            provider.documents_verified = False
            provider.documents_rejected = True
            provider.rejected_at = now
            notice = Notice(
                target_role=TARGET_PROVIDER,
                target_id=provider.id,
                type="account_rejected",
                message="Your verification documents were rejected.",
                metadata={"provider_id": provider.id},
            )

    logger.info("provider_moderated provider_id=%s approve=%s admin_id=%s", provider_id, approve, actor.id)
    db.refresh(provider)
    dispatch(dispatcher, [notice])
    return provider


def verify_provider(
    db: Session,
    actor: Actor,
    provider_id: int,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> ServiceProvider:
    return _moderate(db, actor, provider_id, True, dispatcher, now)


def reject_provider(
    db: Session,
    actor: Actor,
    provider_id: int,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> ServiceProvider:
    return _moderate(db, actor, provider_id, False, dispatcher, now)


def suspend_provider(
    db: Session,
    actor: Actor,
    provider_id: int,
    reason: str,
    dispatcher: NotificationDispatcher,
    end_date: datetime | None = None,
    now: datetime | None = None,
) -> User:
    provider = get_provider(db, provider_id)
    return auth_service.suspend_account(db, actor, provider.user_id, reason, dispatcher, end_date=end_date, now=now)


def reinstate_provider(
    db: Session,
    actor: Actor,
    provider_id: int,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> User:
    provider = get_provider(db, provider_id)
    return auth_service.reinstate_account(db, actor, provider.user_id, dispatcher, now=now)


def create_service(db: Session, actor: Actor, payload: ServiceCreateRequest) -> Service:
    provider = get_provider_for_actor(db, actor)
    service = Service(
        provider_id=provider.id,
        title=payload.title,
        description=payload.description,
        duration_minutes=payload.duration_minutes,
        price=payload.price,
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def list_services(db: Session, provider_id: int, limit: int = 20, offset: int = 0) -> list[Service]:
    get_provider(db, provider_id)
    query = select(Service).where(Service.provider_id == provider_id).order_by(Service.id).limit(limit).offset(offset)
    return list(db.scalars(query).all())
