"""Slot availability for one doctor on one date.

Everything here is pure: the caller fetches the doctor's schedule and the
appointments already booked, and decides when "now" is. Malformed input
degrades to "no slots" / "not blocked" instead of raising, because these
functions back interactive booking forms.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, tzinfo
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.scheduling.blocked_dates import (
    find_blocked_entry,
    normalize_blocked_dates,
    reason_for,
    resolve_timezone,
)

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Appointments in these states no longer hold their slot.
FREE_SLOT_STATUSES = frozenset({"cancelled", "canceled", "declined"})

_TWELVE_HOUR_RE = re.compile(r"^(\d{1,2})(?:[:\-.]?(\d{2}))?(AM|PM)$")
_TWENTY_FOUR_HOUR_RE = re.compile(r"^(\d{1,2})[:\-.](\d{2})(?::\d{2})?$")


def _as_time_string(value: Any) -> str | None:
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, str):
        return value
    return None


def _as_date_string(value: Any) -> str | None:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value
    return None


class DoctorScheduleConfig(BaseModel):
    """A doctor's schedule as consumed by the slot calculator.

    Accepts both snake_case and the camelCase keys used by stored documents
    (workingDays, startTime, slotDurationMinutes, blockedDates, ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    doctor_id: str | None = None
    working_days: list[Any] = Field(default_factory=list)
    start_time: str | None = None
    end_time: str | None = None
    slot_duration_minutes: int | None = None
    break_start: str | None = None
    break_end: str | None = None
    blocked_dates: list[Any] = Field(default_factory=list)

    @field_validator("doctor_id", mode="before")
    @classmethod
    def _doctor_id(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    @field_validator("start_time", "end_time", "break_start", "break_end", mode="before")
    @classmethod
    def _times(cls, v: Any) -> str | None:
        return _as_time_string(v)

    @field_validator("slot_duration_minutes", mode="before")
    @classmethod
    def _duration(cls, v: Any) -> int | None:
        # Anything that is not a whole number becomes None, which yields no slots.
        if isinstance(v, bool):
            return None
        if isinstance(v, int):
            return v
        if isinstance(v, float) and v.is_integer():
            return int(v)
        if isinstance(v, str) and v.strip().lstrip("-").isdigit():
            return int(v.strip())
        return None

    @field_validator("working_days", "blocked_dates", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[Any]:
        if v is None:
            return []
        if isinstance(v, str | Mapping):
            return [v]
        if isinstance(v, Iterable):
            return list(v)
        return []


class ExistingAppointment(BaseModel):
    """The fields of a booked appointment that decide slot occupancy."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", from_attributes=True
    )

    doctor_id: str | None = None
    appointment_date: str | None = None
    appointment_time: str | None = None
    status: str | None = None

    @field_validator("doctor_id", "status", mode="before")
    @classmethod
    def _strings(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    @field_validator("appointment_date", mode="before")
    @classmethod
    def _date(cls, v: Any) -> str | None:
        return _as_date_string(v)

    @field_validator("appointment_time", mode="before")
    @classmethod
    def _time(cls, v: Any) -> str | None:
        return _as_time_string(v)

    @property
    def occupies_slot(self) -> bool:
        return (self.status or "").strip().lower() not in FREE_SLOT_STATUSES


def _as_config(doctor_config: Any) -> DoctorScheduleConfig | None:
    if isinstance(doctor_config, DoctorScheduleConfig):
        return doctor_config
    try:
        if isinstance(doctor_config, Mapping):
            return DoctorScheduleConfig.model_validate(doctor_config)
        return DoctorScheduleConfig.model_validate(doctor_config, from_attributes=True)
    except ValidationError:
        logger.debug("Unreadable doctor schedule config: %r", doctor_config)
        return None


def _as_appointment(raw: Any) -> ExistingAppointment | None:
    if isinstance(raw, ExistingAppointment):
        return raw
    try:
        if isinstance(raw, Mapping):
            return ExistingAppointment.model_validate(raw)
        return ExistingAppointment.model_validate(raw, from_attributes=True)
    except ValidationError:
        logger.debug("Ignoring unreadable appointment: %r", raw)
        return None


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def normalize_time(value: Any) -> str | None:
    """Normalize "9:00", "09-00", "9:00 am" or "12:30PM" to "HH:mm"; None if unreadable."""
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if not isinstance(value, str):
        return None
    compact = re.sub(r"\s+", "", value).upper()
    match = _TWELVE_HOUR_RE.match(compact)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        if not 1 <= hours <= 12 or minutes > 59:
            return None
        if match.group(3) == "PM" and hours != 12:
            hours += 12
        elif match.group(3) == "AM" and hours == 12:
            hours = 0
        return f"{hours:02d}:{minutes:02d}"
    match = _TWENTY_FOUR_HOUR_RE.match(compact)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            return None
        return f"{hours:02d}:{minutes:02d}"
    return None


def time_to_minutes(value: Any) -> int | None:
    normalized = normalize_time(value)
    if normalized is None:
        return None
    hours, minutes = normalized.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _weekday_index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 <= value <= 6 else None
    if isinstance(value, str):
        key = value.strip().lower()
        for index, name in enumerate(WEEKDAY_NAMES):
            if key in (name, name[:3]):
                return index
    return None


def _working_weekdays(config: DoctorScheduleConfig) -> set[int]:
    if not config.working_days:
        return set(range(7))
    return {i for i in map(_weekday_index, config.working_days) if i is not None}


def _break_window(config: DoctorScheduleConfig) -> tuple[int, int] | None:
    start = time_to_minutes(config.break_start)
    end = time_to_minutes(config.break_end)
    if start is None or end is None or start >= end:
        return None
    return start, end


def _working_window(config: DoctorScheduleConfig) -> tuple[int, int] | None:
    start = time_to_minutes(config.start_time)
    end = time_to_minutes(config.end_time)
    if start is None or end is None or start >= end:
        return None
    return start, end


def generate_time_slots(doctor_config: Any) -> list[str]:
    """Every slot start of the working window, ignoring dates and bookings.

    Slots step from start_time by slot_duration_minutes and must end by
    end_time; slots overlapping the break are dropped.
    """
    config = _as_config(doctor_config)
    if config is None:
        return []
    duration = config.slot_duration_minutes
    window = _working_window(config)
    if duration is None or duration <= 0 or window is None:
        return []
    start, end = window
    pause = _break_window(config)
    slots: list[str] = []
    minute = start
    while minute + duration <= end:
        if pause is None or not (minute < pause[1] and minute + duration > pause[0]):
            slots.append(minutes_to_time(minute))
        minute += duration
    return slots


def is_doctor_available_on_date(doctor_config: Any, target_date: Any) -> bool:
    """True when target_date falls on one of the doctor's working days."""
    config = _as_config(doctor_config)
    day = _as_date(target_date)
    if config is None or day is None:
        return False
    return day.weekday() in _working_weekdays(config)


def is_date_blocked(doctor_config: Any, target_date: Any, tz: tzinfo | str | None = None) -> bool:
    config = _as_config(doctor_config)
    day = _as_date(target_date)
    if config is None or day is None:
        return False
    return day.isoformat() in normalize_blocked_dates(config.blocked_dates, tz)


def get_blocked_date_info(
    doctor_config: Any, target_date: Any, tz: tzinfo | str | None = None
) -> dict[str, str] | None:
    """{"date", "reason"} for a blocked date, None when the date is bookable."""
    config = _as_config(doctor_config)
    day = _as_date(target_date)
    if config is None or day is None:
        return None
    entry = find_blocked_entry(config.blocked_dates, day.isoformat(), tz)
    if entry is None:
        return None
    return {"date": day.isoformat(), "reason": reason_for(entry)}


def _booked_times(
    config: DoctorScheduleConfig, day: date, existing_appointments: Iterable[Any] | None
) -> set[str]:
    booked: set[str] = set()
    for raw in existing_appointments or ():
        appointment = _as_appointment(raw)
        if appointment is None or not appointment.occupies_slot:
            continue
        if config.doctor_id is not None and appointment.doctor_id != config.doctor_id:
            continue
        if _as_date(appointment.appointment_date) != day:
            continue
        slot = normalize_time(appointment.appointment_time)
        if slot is not None:
            booked.add(slot)
    return booked


def get_available_time_slots(
    doctor_config: Any,
    target_date: Any,
    existing_appointments: Iterable[Any] | None,
    tz: tzinfo | str | None = None,
) -> list[str]:
    """Bookable "HH:mm" slots for the doctor on target_date, ascending.

    Empty when the date is blocked, is not a working day, or the schedule is
    unusable. Appointments are matched to the doctor and date here; a slot is
    taken when a non-cancelled appointment has exactly that start label.
    Past-time filtering for today is left to filter_past_slots.
    """
    config = _as_config(doctor_config)
    day = _as_date(target_date)
    if config is None or day is None:
        return []
    if is_date_blocked(config, day, tz) or not is_doctor_available_on_date(config, day):
        return []
    booked = _booked_times(config, day, existing_appointments)
    return [slot for slot in generate_time_slots(config) if slot not in booked]


def _now_in(zone: tzinfo, now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(zone)
    if now.tzinfo is not None:
        return now.astimezone(zone)
    return now


def is_slot_in_past(
    slot: Any, slot_date: Any, now: datetime | None = None, tz: tzinfo | str | None = None
) -> bool:
    """True when slot_date is today and the slot starts at or before the current minute.

    A naive `now` is taken to be wall-clock time in `tz` already. Slots on any
    other date are never considered past here.
    """
    current = _now_in(resolve_timezone(tz), now)
    day = _as_date(slot_date)
    minutes = time_to_minutes(slot)
    if day is None or minutes is None or day != current.date():
        return False
    return minutes <= current.hour * 60 + current.minute


def filter_past_slots(
    slots: Iterable[str], slot_date: Any, now: datetime | None = None, tz: tzinfo | str | None = None
) -> list[str]:
    zone = resolve_timezone(tz)
    current = _now_in(zone, now)
    return [slot for slot in slots if not is_slot_in_past(slot, slot_date, current, zone)]


def format_time_display(slot: Any) -> str:
    """24-hour slot to a 12-hour label, e.g. 09:30 -> 9:30 AM. Unreadable input comes back unchanged."""
    minutes = time_to_minutes(slot)
    if minutes is None:
        return slot if isinstance(slot, str) else ""
    hours, mins = divmod(minutes, 60)
    period = "PM" if hours >= 12 else "AM"
    return f"{hours % 12 or 12}:{mins:02d} {period}"


def get_availability_days(doctor_config: Any) -> list[str]:
    """Short names of the days the doctor sees patients, Monday first."""
    config = _as_config(doctor_config)
    if config is None or not generate_time_slots(config):
        return []
    weekdays = _working_weekdays(config)
    return [name[:3].capitalize() for i, name in enumerate(WEEKDAY_NAMES) if i in weekdays]


def get_visiting_hours_text(doctor_config: Any, target_date: Any = None) -> str:
    config = _as_config(doctor_config)
    if config is None:
        return "Closed"
    window = _working_window(config)
    if window is None or not generate_time_slots(config):
        return "Closed"
    if target_date is not None and not is_doctor_available_on_date(config, target_date):
        return "Closed"
    start, end = window
    ranges = [(start, end)]
    pause = _break_window(config)
    if pause is not None and start < pause[1] and pause[0] < end:
        ranges = [(s, e) for s, e in ((start, pause[0]), (pause[1], end)) if s < e]
    return ", ".join(
        f"{format_time_display(minutes_to_time(s))} - {format_time_display(minutes_to_time(e))}"
        for s, e in ranges
    )
