from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.doctor import Doctor, DoctorCreate, DoctorPublic, DoctorSchedule
from app.scheduling.blocked_dates import normalize_blocked_dates
from app.scheduling.time_slots import (
    DoctorScheduleConfig,
    get_availability_days,
    get_visiting_hours_text,
)


def to_schedule_config(doctor: Doctor) -> DoctorScheduleConfig:
    """Calculator input for a stored doctor."""
    return DoctorScheduleConfig(
        doctor_id=doctor.id,
        working_days=doctor.working_days,
        start_time=doctor.start_time,
        end_time=doctor.end_time,
        slot_duration_minutes=doctor.slot_duration_minutes,
        break_start=doctor.break_start,
        break_end=doctor.break_end,
        blocked_dates=doctor.blocked_dates,
    )


def doctor_to_public(doctor: Doctor) -> DoctorPublic:
    config = to_schedule_config(doctor)
    return DoctorPublic(
        id=doctor.id,
        full_name=doctor.full_name,
        specialization=doctor.specialization,
        start_time=doctor.start_time,
        end_time=doctor.end_time,
        slot_duration_minutes=doctor.slot_duration_minutes,
        break_start=doctor.break_start,
        break_end=doctor.break_end,
        working_days=list(doctor.working_days or []),
        blocked_dates=list(doctor.blocked_dates or []),
        is_active=doctor.is_active,
        availability_days=get_availability_days(config),
        visiting_hours=get_visiting_hours_text(config),
    )


async def get_doctor(session: AsyncSession, doctor_id: int) -> Doctor | None:
    result = await session.execute(select(Doctor).where(Doctor.id == doctor_id))
    return result.scalar_one_or_none()


async def create_doctor(session: AsyncSession, data: DoctorCreate) -> Doctor:
    doctor = Doctor(
        full_name=data.full_name,
        specialization=data.specialization,
        start_time=data.start_time,
        end_time=data.end_time,
        slot_duration_minutes=data.slot_duration_minutes,
        break_start=data.break_start,
        break_end=data.break_end,
        working_days=list(data.working_days),
        blocked_dates=[],
    )
    session.add(doctor)
    await session.flush()
    await session.refresh(doctor)
    return doctor


async def update_schedule(session: AsyncSession, doctor: Doctor, schedule: DoctorSchedule) -> Doctor:
    doctor.start_time = schedule.start_time
    doctor.end_time = schedule.end_time
    doctor.slot_duration_minutes = schedule.slot_duration_minutes
    doctor.break_start = schedule.break_start
    doctor.break_end = schedule.break_end
    doctor.working_days = list(schedule.working_days)
    session.add(doctor)
    await session.flush()
    await session.refresh(doctor)
    return doctor


def _without_day(blocked_dates: list[Any], day: str) -> list[Any]:
    """Entries whose canonical date differs from `day`. Unreadable entries are kept as-is."""
    kept: list[Any] = []
    for entry in blocked_dates or []:
        if normalize_blocked_dates([entry], settings.timezone) == [day]:
            continue
        kept.append(entry)
    return kept


async def add_blocked_date(
    session: AsyncSession, doctor: Doctor, day: date, reason: str | None = None
) -> Doctor:
    iso = day.isoformat()
    entry: dict[str, str] = {"date": iso}
    if reason:
        entry["reason"] = reason
    # Reassign: in-place JSON mutation is not tracked
    doctor.blocked_dates = sorted(
        [*_without_day(doctor.blocked_dates, iso), entry],
        key=lambda e: e.get("date", "") if isinstance(e, dict) else str(e),
    )
    session.add(doctor)
    await session.flush()
    await session.refresh(doctor)
    return doctor


async def remove_blocked_date(session: AsyncSession, doctor: Doctor, day: date) -> bool:
    """Drop every entry for `day`. Returns False when nothing was blocked on it."""
    remaining = _without_day(doctor.blocked_dates, day.isoformat())
    if len(remaining) == len(doctor.blocked_dates or []):
        return False
    doctor.blocked_dates = remaining
    session.add(doctor)
    await session.flush()
    return True
