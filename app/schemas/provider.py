from datetime import datetime

from pydantic import BaseModel, Field


class ProviderCreateRequest(BaseModel):
    display_name: str = Field(min_length=2, max_length=120)
    profession: str = Field(min_length=2, max_length=120)
    location: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=500)


class ProviderResponse(BaseModel):
    id: int
    user_id: int
    display_name: str
    profession: str
    location: str | None
    description: str | None
    documents_verified: bool
    reliability_score: int | None
    booking_enabled: bool

    model_config = {"from_attributes": True}


class ReliabilityResponse(BaseModel):
    provider_id: int
    reliability_score: int
    cancellation_count: int
    recent_cancellations: int
    last_penalty_date: datetime | None
    penalty_end_date: datetime | None
    booking_enabled: bool


class ReliabilityScoreUpdateRequest(BaseModel):
    score: int
