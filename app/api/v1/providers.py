from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_notification_dispatcher, require_roles
from app.api.pagination import LimitParam, OffsetParam
from app.core.timeutils import utcnow
from app.db.models import UserRole
from app.db.session import get_db
from app.schemas.actor import Actor
from app.schemas.availability import AvailabilityDayResponse, AvailabilityRecord, SlotsResponse
from app.schemas.provider import ProviderCreateRequest, ProviderResponse, ReliabilityResponse
from app.schemas.review import RatingSummaryResponse, ReviewCreateRequest, ReviewResponse
from app.schemas.service import ServiceCreateRequest, ServiceResponse
from app.services import availability_service, provider_service, reliability_service, review_service
from app.services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/providers", tags=["providers"])

provider_only = require_roles(UserRole.PROVIDER)


@router.post("/me", response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
def create_my_profile(
    payload: ProviderCreateRequest,
    actor: Actor = Depends(provider_only),
    db: Session = Depends(get_db),
) -> ProviderResponse:
    provider = provider_service.create_provider_profile(db=db, actor=actor, payload=payload)
    return ProviderResponse.model_validate(provider)


@router.get("/me", response_model=ProviderResponse, status_code=status.HTTP_200_OK)
def get_my_profile(
    actor: Actor = Depends(provider_only),
    db: Session = Depends(get_db),
) -> ProviderResponse:
    return ProviderResponse.model_validate(provider_service.get_provider_for_actor(db=db, actor=actor))


@router.get("/me/availability", response_model=AvailabilityRecord, status_code=status.HTTP_200_OK)
def get_my_availability(
    actor: Actor = Depends(provider_only),
    db: Session = Depends(get_db),
) -> AvailabilityRecord:
    provider = provider_service.get_provider_for_actor(db=db, actor=actor)
    return availability_service.get_availability_record(db=db, provider_id=provider.id)


@router.put("/me/availability", response_model=AvailabilityRecord, status_code=status.HTTP_200_OK)
def replace_my_availability(
    payload: AvailabilityRecord,
    actor: Actor = Depends(provider_only),
    db: Session = Depends(get_db),
) -> AvailabilityRecord:
    return availability_service.replace_availability(db=db, actor=actor, record=payload)


@router.post("/me/services", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_my_service(
    payload: ServiceCreateRequest,
    actor: Actor = Depends(provider_only),
    db: Session = Depends(get_db),
) -> ServiceResponse:
    return ServiceResponse.model_validate(provider_service.create_service(db=db, actor=actor, payload=payload))


@router.get("", response_model=list[ProviderResponse], status_code=status.HTTP_200_OK)
def search_providers(
    profession: str | None = Query(default=None, max_length=120),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    db: Session = Depends(get_db),
) -> list[ProviderResponse]:
    providers = provider_service.search_providers(db=db, profession=profession, limit=limit, offset=offset)
    return [ProviderResponse.model_validate(provider) for provider in providers]


@router.get("/{provider_id}", response_model=ProviderResponse, status_code=status.HTTP_200_OK)
def get_provider(provider_id: int, db: Session = Depends(get_db)) -> ProviderResponse:
    return ProviderResponse.model_validate(provider_service.get_provider(db=db, provider_id=provider_id))


@router.get("/{provider_id}/services", response_model=list[ServiceResponse], status_code=status.HTTP_200_OK)
def list_provider_services(
    provider_id: int,
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    db: Session = Depends(get_db),
) -> list[ServiceResponse]:
    services = provider_service.list_services(db=db, provider_id=provider_id, limit=limit, offset=offset)
    return [ServiceResponse.model_validate(service) for service in services]


@router.get("/{provider_id}/reliability", response_model=ReliabilityResponse, status_code=status.HTTP_200_OK)
def get_provider_reliability(provider_id: int, db: Session = Depends(get_db)) -> ReliabilityResponse:
    return reliability_service.get_reliability(db=db, provider_id=provider_id)


@router.get("/{provider_id}/slots", response_model=SlotsResponse, status_code=status.HTTP_200_OK)
def get_provider_slots(
    provider_id: int,
    date_filter: date = Query(alias="date"),
    db: Session = Depends(get_db),
) -> SlotsResponse:
    record = availability_service.get_availability_record(db=db, provider_id=provider_id)
    return SlotsResponse(
        provider_id=provider_id,
        date=date_filter,
        slots=availability_service.resolve_slots(record, date_filter),
    )


@router.get(
    "/{provider_id}/availability",
    response_model=list[AvailabilityDayResponse],
    status_code=status.HTTP_200_OK,
)
def get_provider_calendar(
    provider_id: int,
    date_from: date | None = Query(default=None),
    days: int = Query(default=7, ge=1, le=availability_service.MAX_CALENDAR_DAYS),
    db: Session = Depends(get_db),
) -> list[AvailabilityDayResponse]:
    record = availability_service.get_availability_record(db=db, provider_id=provider_id)
    start_date = date_from or utcnow().date()
    return [
        AvailabilityDayResponse(date=day, available_slots=count)
        for day, count in availability_service.summarize_availability(record, start_date, days)
    ]


@router.post("/{provider_id}/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    provider_id: int,
    payload: ReviewCreateRequest,
    actor: Actor = Depends(require_roles(UserRole.CLIENT)),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ReviewResponse:
    review = review_service.create_review(db, actor, provider_id, payload, dispatcher)
    return ReviewResponse.model_validate(review)


@router.get("/{provider_id}/reviews", response_model=list[ReviewResponse], status_code=status.HTTP_200_OK)
def list_provider_reviews(
    provider_id: int,
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    db: Session = Depends(get_db),
) -> list[ReviewResponse]:
    reviews = review_service.list_reviews(db=db, provider_id=provider_id, limit=limit, offset=offset)
    return [ReviewResponse.model_validate(review) for review in reviews]


@router.get(
    "/{provider_id}/reviews/summary",
    response_model=RatingSummaryResponse,
    status_code=status.HTTP_200_OK,
)
def get_provider_rating_summary(provider_id: int, db: Session = Depends(get_db)) -> RatingSummaryResponse:
    return review_service.rating_summary(db=db, provider_id=provider_id)
