from datetime import datetime

from pydantic import BaseModel, Field, field_validator

MIN_COMMENT_LENGTH = 10


class ReviewCreateRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str = Field(max_length=1000)

    @field_validator("comment")
    @classmethod
    def require_meaningful_comment(cls, value: str) -> str:
        value = value.strip()
        if len(value) < MIN_COMMENT_LENGTH:
            raise ValueError(f"comment must be at least {MIN_COMMENT_LENGTH} characters")
        return value


class ReviewResponse(BaseModel):
    id: int
    provider_id: int
    client_id: int
    booking_id: int
    rating: int
    comment: str
    created_at: datetime

    model_config = {"from_attributes": True}


class RatingSummaryResponse(BaseModel):
    provider_id: int
    review_count: int
    average_rating: float | None
    rating_counts: dict[int, int]
