from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: int
    target_role: str
    target_id: int
    type: str
    message: str
    metadata: dict[str, Any] = Field(validation_alias="payload")
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}
