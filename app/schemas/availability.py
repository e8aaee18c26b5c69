from datetime import date

from pydantic import AliasChoices, BaseModel, Field

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class WeeklyDay(BaseModel):
    start: str | None = Field(default=None, validation_alias=AliasChoices("start", "startTime"))
    end: str | None = Field(default=None, validation_alias=AliasChoices("end", "endTime"))
    available: bool = True


class SpecialDate(BaseModel):
    available: bool
    start: str | None = Field(default=None, validation_alias=AliasChoices("start", "startTime"))
    end: str | None = Field(default=None, validation_alias=AliasChoices("end", "endTime"))
    reason: str | None = Field(default=None, max_length=255)


class AvailabilityRecord(BaseModel):
    weekly_schedule: dict[str, WeeklyDay]
    special_dates: dict[str, SpecialDate] = Field(default_factory=dict)
    time_slot_duration: int = Field(default=60, ge=5, le=480)
    buffer_time: int = Field(default=15, ge=0, le=240)

    model_config = {"from_attributes": True}


class SlotsResponse(BaseModel):
    provider_id: int
    date: date
    slots: list[str]


class AvailabilityDayResponse(BaseModel):
    date: date
    available_slots: int
