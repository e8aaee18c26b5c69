from datetime import date, datetime

from pydantic import BaseModel, Field

from app.db.models.booking import BookingStatus


class BookingCreateRequest(BaseModel):
    provider_id: int
    date: date
    time: str = Field(min_length=4, max_length=5)
    location: str = Field(default="", max_length=255)
    description: str = Field(default="", max_length=1000)
    service_id: int | None = None


class BookingDeclineRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class BookingCancelRequest(BaseModel):
    reason: str = Field(default="", max_length=500)


class CancellationResponseRequest(BaseModel):
    accept: bool


class CancellationDecisionRequest(BaseModel):
    approve: bool


class BookingResponse(BaseModel):
    id: int
    client_id: int
    provider_id: int
    service_id: int | None
    date: date
    time: str
    location: str
    description: str
    status: BookingStatus
    cancellation_requested: bool
    cancellation_attempts: int
    cancellation_reason: str | None
    cancellation_declined: bool
    third_strike_cancellation: bool
    cancelled_by: str | None
    decline_reason: str | None
    refund_amount: int | None
    created_at: datetime
    updated_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None

    model_config = {"from_attributes": True}
