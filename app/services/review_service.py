import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import AlreadyExists, NotAuthorized
from app.db.models import Booking, BookingState, Review, UserRole
from app.schemas.actor import Actor
from app.schemas.review import RatingSummaryResponse, ReviewCreateRequest
from app.services.notification_service import TARGET_PROVIDER, Notice, NotificationDispatcher, dispatch
from app.services.provider_service import get_provider

logger = logging.getLogger(__name__)

DUPLICATE_REVIEW_DETAIL = "You have already reviewed this provider"


def create_review(
    db: Session,
    actor: Actor,
    provider_id: int,
    payload: ReviewCreateRequest,
    dispatcher: NotificationDispatcher,
) -> Review:
    if actor.role is not UserRole.CLIENT:
        raise NotAuthorized("Only clients can review providers", actor_id=actor.id)
    provider = get_provider(db, provider_id)

    booking_id = db.scalar(
        select(Booking.id)
        .where(
            Booking.client_id == actor.id,
            Booking.provider_id == provider.id,
            Booking.state == BookingState.COMPLETED.value,
        )
        .order_by(Booking.completed_at, Booking.id)
        .limit(1)
    )
    if booking_id is None:
        raise NotAuthorized(
            "You can only review providers after completing a booking with them",
            provider_id=provider.id,
            actor_id=actor.id,
        )

    existing = db.scalar(select(Review.id).where(Review.client_id == actor.id, Review.provider_id == provider.id))
    if existing is not None:
        raise AlreadyExists(DUPLICATE_REVIEW_DETAIL, review_id=existing)

    review = Review(
        provider_id=provider.id,
        client_id=actor.id,
        booking_id=booking_id,
        rating=payload.rating,
        comment=payload.comment,
    )
    db.add(review)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyExists(DUPLICATE_REVIEW_DETAIL, provider_id=provider.id) from None
    db.refresh(review)

    logger.info("review_created review_id=%s provider_id=%s rating=%s", review.id, provider.id, review.rating)
    dispatch(
        dispatcher,
        [
            Notice(
                target_role=TARGET_PROVIDER,
                target_id=provider.id,
                type="review_received",
                message=f"You received a new {review.rating}-star review.",
                metadata={"review_id": review.id, "booking_id": booking_id},
            )
        ],
    )
    return review


def list_reviews(db: Session, provider_id: int, limit: int = 20, offset: int = 0) -> list[Review]:
    get_provider(db, provider_id)
    query = (
        select(Review)
        .where(Review.provider_id == provider_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(query).all())


def rating_summary(db: Session, provider_id: int) -> RatingSummaryResponse:
    get_provider(db, provider_id)
    rows = db.execute(
        select(Review.rating, func.count(Review.id)).where(Review.provider_id == provider_id).group_by(Review.rating)
    ).all()
    counts = {star: 0 for star in range(1, 6)}
    for rating, count in rows:
        counts[rating] = count

    total = sum(counts.values())
    average = round(sum(star * count for star, count in counts.items()) / total, 2) if total else None
    return RatingSummaryResponse(
        provider_id=provider_id,
        review_count=total,
        average_rating=average,
        rating_counts=counts,
    )
