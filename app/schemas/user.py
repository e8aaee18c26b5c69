from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from app.db.models.user import UserRole


class UserResponse(BaseModel):
    id: int
    email: EmailStr
    role: UserRole
    is_active: bool
    suspended: bool
    suspension_end_date: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SuspensionRequest(BaseModel):
    reason: str = Field(min_length=3, max_length=500)
    end_date: datetime | None = None


class AccountStatusResponse(BaseModel):
    id: int
    role: UserRole
    suspended: bool
    suspension_reason: str | None
    suspended_at: datetime | None
    suspension_end_date: datetime | None
    reinstated_at: datetime | None

    model_config = {"from_attributes": True}
