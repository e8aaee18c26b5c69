from datetime import date, timedelta

import pytest

from app.core.errors import InvalidAvailabilityConfig
from app.schemas.availability import AvailabilityRecord, SpecialDate, WeeklyDay
from app.services.availability_service import (
    default_availability_record,
    generate_slots,
    resolve_slots,
    summarize_availability,
    validate_availability_record,
)

MONDAY = date(2026, 11, 2)
SATURDAY = date(2026, 11, 7)
SUNDAY = date(2026, 11, 8)


def _record(**overrides) -> AvailabilityRecord:
    record = default_availability_record()
    return record.model_copy(update=overrides)


def test_one_hour_window_with_thirty_minute_step():
    assert generate_slots("09:00", "10:00", 30) == ["09:00", "09:30"]


def test_start_not_before_end_yields_no_slots():
    assert generate_slots("10:00", "10:00", 30) == []
    assert generate_slots("12:00", "10:00", 30) == []


@pytest.mark.parametrize("bad", ["9:00", "24:00", "09:60", "nine", ""])
def test_malformed_clock_is_rejected(bad):
    with pytest.raises(InvalidAvailabilityConfig):
        generate_slots(bad, "10:00", 30)


def test_default_weekday_template():
    slots = resolve_slots(default_availability_record(), MONDAY)
    assert slots[0] == "09:00"
    assert slots[-1] == "16:30"
    assert len(slots) == 16


def test_saturday_uses_short_hours():
    assert resolve_slots(default_availability_record(), SATURDAY) == [
        "10:00",
        "10:30",
        "11:00",
        "11:30",
        "12:00",
        "12:30",
        "13:00",
        "13:30",
    ]


def test_unavailable_weekday_is_closed_every_week():
    record = default_availability_record()
    for week in range(5):
        assert resolve_slots(record, SUNDAY + timedelta(weeks=week)) == []


def test_closed_special_date_overrides_open_weekday():
    record = _record(special_dates={MONDAY.isoformat(): SpecialDate(available=False, start="09:00", end="17:00")})
    assert resolve_slots(record, MONDAY) == []
    assert resolve_slots(record, MONDAY + timedelta(weeks=1)) != []


def test_special_date_custom_hours_win():
    record = _record(special_dates={MONDAY.isoformat(): SpecialDate(available=True, start="13:00", end="14:00")})
    assert resolve_slots(record, MONDAY) == ["13:00", "13:30"]


def test_special_date_accepts_start_time_aliases():
    special = SpecialDate.model_validate({"available": True, "startTime": "08:00", "endTime": "09:00"})
    record = _record(special_dates={MONDAY.isoformat(): special})
    assert resolve_slots(record, MONDAY) == ["08:00", "08:30"]


def test_special_date_without_hours_borrows_weekday_hours():
    record = _record(special_dates={SATURDAY.isoformat(): SpecialDate(available=True)})
    assert resolve_slots(record, SATURDAY) == resolve_slots(default_availability_record(), SATURDAY)


def test_special_date_without_hours_on_closed_weekday_stays_closed():
    record = _record(special_dates={SUNDAY.isoformat(): SpecialDate(available=True)})
    assert resolve_slots(record, SUNDAY) == []


def test_missing_weekday_entry_falls_back_to_default_window():
    schedule = dict(default_availability_record().weekly_schedule)
    del schedule["monday"]
    record = _record(weekly_schedule=schedule)
    slots = resolve_slots(record, MONDAY)
    assert slots[0] == "09:00"
    assert slots[-1] == "16:30"


def test_step_is_configurable():
    assert resolve_slots(default_availability_record(), SATURDAY, step_minutes=60) == [
        "10:00",
        "11:00",
        "12:00",
        "13:00",
    ]


def test_resolution_is_repeatable():
    record = _record(special_dates={MONDAY.isoformat(): SpecialDate(available=True, start="11:00", end="12:30")})
    assert resolve_slots(record, MONDAY) == resolve_slots(record, MONDAY)
    assert record.special_dates[MONDAY.isoformat()].start == "11:00"


def test_calendar_counts_slots_per_day():
    summary = summarize_availability(default_availability_record(), MONDAY, 7)
    assert [count for _, count in summary] == [16, 16, 16, 16, 16, 8, 0]
    assert summary[0][0] == MONDAY


def test_calendar_window_is_bounded():
    with pytest.raises(InvalidAvailabilityConfig):
        summarize_availability(default_availability_record(), MONDAY, 32)


def test_validation_requires_all_weekdays():
    schedule = dict(default_availability_record().weekly_schedule)
    del schedule["sunday"]
    with pytest.raises(InvalidAvailabilityConfig):
        validate_availability_record(_record(weekly_schedule=schedule))


def test_validation_rejects_inverted_window():
    schedule = dict(default_availability_record().weekly_schedule)
    schedule["monday"] = WeeklyDay(start="17:00", end="09:00", available=True)
    with pytest.raises(InvalidAvailabilityConfig):
        validate_availability_record(_record(weekly_schedule=schedule))


def test_validation_rejects_bad_special_date_key():
    record = _record(special_dates={"next monday": SpecialDate(available=False)})
    with pytest.raises(InvalidAvailabilityConfig):
        validate_availability_record(record)


def test_default_record_is_valid():
    validate_availability_record(default_availability_record())
