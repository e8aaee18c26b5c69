import logging
import re
from datetime import date, timedelta

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidAvailabilityConfig, NotAuthorized, NotFound
from app.db.models import ProviderAvailability, ServiceProvider
from app.schemas.actor import Actor
from app.schemas.availability import WEEKDAYS, AvailabilityRecord, WeeklyDay

logger = logging.getLogger(__name__)

_CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MAX_CALENDAR_DAYS = 31


def parse_clock(value: str) -> int:
    match = _CLOCK_PATTERN.match(value or "")
    if not match:
        raise InvalidAvailabilityConfig(f"Malformed time of day: {value!r}", value=value)
    return int(match.group(1)) * 60 + int(match.group(2))


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def generate_slots(start: str, end: str, step_minutes: int) -> list[str]:
    if step_minutes <= 0:
        raise InvalidAvailabilityConfig(f"Slot step must be positive, got {step_minutes}")
    start_minutes = parse_clock(start)
    end_minutes = parse_clock(end)
    return [format_clock(minutes) for minutes in range(start_minutes, end_minutes, step_minutes)]


def weekday_key(target_date: date) -> str:
    return WEEKDAYS[target_date.weekday()]


def resolve_slots(
    record: AvailabilityRecord,
    target_date: date,
    step_minutes: int | None = None,
) -> list[str]:
    step = step_minutes if step_minutes is not None else settings.slot_step_minutes

    special = record.special_dates.get(target_date.isoformat())
    if special is not None:
        if not special.available:
            return []
        if special.start and special.end:
            return generate_slots(special.start, special.end, step)
        # Marked available without custom hours: the weekday template decides.

    weekly = record.weekly_schedule.get(weekday_key(target_date))
    if weekly is None:
        return generate_slots(settings.default_window_start, settings.default_window_end, step)
    if not weekly.available:
        return []
    return generate_slots(
        weekly.start or settings.default_window_start,
        weekly.end or settings.default_window_end,
        step,
    )


def default_availability_record() -> AvailabilityRecord:
    weekday_hours = {"start": "09:00", "end": "17:00", "available": True}
    return AvailabilityRecord(
        weekly_schedule={
            "monday": WeeklyDay(**weekday_hours),
            "tuesday": WeeklyDay(**weekday_hours),
            "wednesday": WeeklyDay(**weekday_hours),
            "thursday": WeeklyDay(**weekday_hours),
            "friday": WeeklyDay(**weekday_hours),
            "saturday": WeeklyDay(start="10:00", end="14:00", available=True),
            "sunday": WeeklyDay(start="00:00", end="00:00", available=False),
        },
        special_dates={},
        time_slot_duration=60,
        buffer_time=15,
    )


def _validate_window(label: str, start: str | None, end: str | None) -> None:
    if start is None and end is None:
        return
    if start is None or end is None:
        raise InvalidAvailabilityConfig(f"{label}: start and end must be given together")
    if parse_clock(start) >= parse_clock(end):
        raise InvalidAvailabilityConfig(f"{label}: start must be before end", start=start, end=end)


def validate_availability_record(record: AvailabilityRecord) -> None:
    missing = set(WEEKDAYS) - set(record.weekly_schedule)
    unknown = set(record.weekly_schedule) - set(WEEKDAYS)
    if missing or unknown:
        raise InvalidAvailabilityConfig(
            "Weekly schedule must have exactly the seven weekday keys",
            missing=sorted(missing),
            unknown=sorted(unknown),
        )

    for day, entry in record.weekly_schedule.items():
        if entry.available:
            _validate_window(day, entry.start, entry.end)
        else:
            if entry.start is not None:
                parse_clock(entry.start)
            if entry.end is not None:
                parse_clock(entry.end)

    for key, special in record.special_dates.items():
        try:
            date.fromisoformat(key)
        except ValueError:
            raise InvalidAvailabilityConfig(f"Special date key is not an ISO date: {key!r}") from None
        if special.available:
            _validate_window(key, special.start, special.end)


def to_record(availability: ProviderAvailability) -> AvailabilityRecord:
    try:
        return AvailabilityRecord.model_validate(availability)
    except ValidationError as exc:
        raise InvalidAvailabilityConfig(
            "Stored availability record is malformed",
            provider_id=availability.provider_id,
            errors=exc.errors(include_url=False),
        ) from None


def get_availability_record(db: Session, provider_id: int) -> AvailabilityRecord:
    availability = db.get(ProviderAvailability, provider_id)
    if availability is None:
        raise NotFound("Availability record not found", provider_id=provider_id)
    return to_record(availability)


def build_default_availability(provider_id: int) -> ProviderAvailability:
    record = default_availability_record()
    return ProviderAvailability(
        provider_id=provider_id,
        weekly_schedule={day: entry.model_dump() for day, entry in record.weekly_schedule.items()},
        special_dates={},
        time_slot_duration=record.time_slot_duration,
        buffer_time=record.buffer_time,
    )


def replace_availability(db: Session, actor: Actor, record: AvailabilityRecord) -> AvailabilityRecord:
    provider = db.scalar(select(ServiceProvider).where(ServiceProvider.user_id == actor.id))
    if provider is None:
        raise NotFound("Provider profile not found", user_id=actor.id)
    if provider.user_id != actor.id:
        raise NotAuthorized("Only the provider may change their availability")

    validate_availability_record(record)

    availability = db.get(ProviderAvailability, provider.id)
    if availability is None:
        availability = ProviderAvailability(provider_id=provider.id)
        db.add(availability)

    availability.weekly_schedule = {
        day: entry.model_dump() for day, entry in record.weekly_schedule.items()
    }
    availability.special_dates = {
        key: entry.model_dump(exclude_none=True) for key, entry in record.special_dates.items()
    }
    availability.time_slot_duration = record.time_slot_duration
    availability.buffer_time = record.buffer_time
    db.commit()
    db.refresh(availability)

    logger.info(
        "availability_replaced provider_id=%s special_dates=%s",
        provider.id,
        len(record.special_dates),
    )
    return to_record(availability)


def summarize_availability(
    record: AvailabilityRecord,
    start_date: date,
    days: int,
) -> list[tuple[date, int]]:
    if not 1 <= days <= MAX_CALENDAR_DAYS:
        raise InvalidAvailabilityConfig(f"Calendar window must be 1..{MAX_CALENDAR_DAYS} days")
    summary: list[tuple[date, int]] = []
    for offset in range(days):
        day = start_date + timedelta(days=offset)
        summary.append((day, len(resolve_slots(record, day))))
    return summary
