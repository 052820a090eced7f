from datetime import date as date_type, datetime
from typing import Any

from pydantic import field_validator, model_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from app.core.config import settings
from app.models.common import timestamp_column, utc_now
from app.scheduling.time_slots import WEEKDAY_NAMES, normalize_time


def _parse_time(value: str) -> str:
    normalized = normalize_time(value)
    if normalized is None:
        raise ValueError(f"invalid time {value!r}, expected HH:mm")
    return normalized


class Doctor(SQLModel, table=True):
    __tablename__ = "doctors"
    id: int | None = Field(default=None, primary_key=True)
    full_name: str
    specialization: str | None = None
    start_time: str = "09:00"
    end_time: str = "17:00"
    slot_duration_minutes: int = 15
    break_start: str | None = None
    break_end: str | None = None
    # Lowercase weekday names; empty means every day
    working_days: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    # {"date": "YYYY-MM-DD", "reason": ...}; legacy rows may hold other shapes
    blocked_dates: list[Any] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())


class DoctorSchedule(SQLModel):
    """Validated schedule fields shared by create and update requests."""

    start_time: str = Field(default_factory=lambda: settings.default_start_time)
    end_time: str = Field(default_factory=lambda: settings.default_end_time)
    slot_duration_minutes: int = Field(
        default_factory=lambda: settings.default_slot_duration_minutes, gt=0, le=480
    )
    break_start: str | None = None
    break_end: str | None = None
    working_days: list[str] = []

    @field_validator("start_time", "end_time")
    @classmethod
    def _required_time(cls, v: str) -> str:
        return _parse_time(v)

    @field_validator("break_start", "break_end")
    @classmethod
    def _optional_time(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return _parse_time(v)

    @field_validator("working_days")
    @classmethod
    def _weekdays(cls, v: list[str]) -> list[str]:
        days: list[str] = []
        for raw in v:
            key = raw.strip().lower()
            name = next((n for n in WEEKDAY_NAMES if key in (n, n[:3])), None)
            if name is None:
                raise ValueError(f"unknown weekday {raw!r}")
            if name not in days:
                days.append(name)
        return sorted(days, key=WEEKDAY_NAMES.index)

    @model_validator(mode="after")
    def _ranges(self) -> "DoctorSchedule":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("break_start and break_end must be set together")
        if self.break_start is not None and self.break_start >= self.break_end:
            raise ValueError("break_start must be before break_end")
        return self


class DoctorCreate(DoctorSchedule):
    full_name: str
    specialization: str | None = None


class BlockedDateCreate(SQLModel):
    date: date_type
    reason: str | None = None


class DoctorPublic(SQLModel):
    id: int
    full_name: str
    specialization: str | None = None
    start_time: str
    end_time: str
    slot_duration_minutes: int
    break_start: str | None = None
    break_end: str | None = None
    working_days: list[str]
    blocked_dates: list[Any]
    is_active: bool
    availability_days: list[str] = []
    visiting_hours: str = "Closed"
