from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.appointment import STATUS_CANCELLED, Appointment, AppointmentSlot
from app.models.doctor import Doctor
from app.scheduling.blocked_dates import resolve_timezone
from app.scheduling.time_slots import (
    ExistingAppointment,
    filter_past_slots,
    get_available_time_slots,
    get_blocked_date_info,
)
from app.services.doctor_service import to_schedule_config


def hospital_now() -> datetime:
    """Current wall-clock time in the hospital's timezone."""
    return datetime.now(resolve_timezone(settings.timezone))


async def get_appointments_for_doctor_on_date(
    session: AsyncSession, doctor_id: int, d: date
) -> list[Appointment]:
    result = await session.execute(
        select(Appointment)
        .where(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == d.isoformat(),
        )
        .order_by(Appointment.appointment_time)
    )
    return list(result.scalars().all())


def _as_existing(appointment: Appointment) -> ExistingAppointment:
    return ExistingAppointment(
        doctor_id=appointment.doctor_id,
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_time,
        status=appointment.status,
    )


async def get_available_slots_for_date(
    session: AsyncSession, doctor: Doctor, d: date, now: datetime | None = None
) -> list[str]:
    """Bookable slots for the doctor on `d`, with slots already past today removed.

    Dates before today in hospital time have no slots.
    """
    current = now or hospital_now()
    if current.tzinfo is not None:
        current = current.astimezone(resolve_timezone(settings.timezone))
    if d < current.date():
        return []
    appointments = await get_appointments_for_doctor_on_date(session, doctor.id, d)
    slots = get_available_time_slots(
        to_schedule_config(doctor),
        d,
        [_as_existing(a) for a in appointments],
        tz=settings.timezone,
    )
    return filter_past_slots(slots, d, now=current, tz=settings.timezone)


def get_blocked_info(doctor: Doctor, d: date) -> dict[str, str] | None:
    return get_blocked_date_info(to_schedule_config(doctor), d, tz=settings.timezone)


async def is_slot_taken(session: AsyncSession, doctor_id: int, d: date, slot: str) -> bool:
    result = await session.execute(
        select(AppointmentSlot.id).where(
            AppointmentSlot.doctor_id == doctor_id,
            AppointmentSlot.appointment_date == d.isoformat(),
            AppointmentSlot.appointment_time == slot,
        )
    )
    return result.first() is not None


async def get_patient_appointment_count_on_date(
    session: AsyncSession, patient_id: str, doctor_id: int, d: date, exclude_id: int | None = None
) -> int:
    """Active (non-cancelled) appointments the patient holds with this doctor on `d`."""
    q = select(func.count(Appointment.id)).where(
        Appointment.patient_id == patient_id,
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == d.isoformat(),
        Appointment.status != STATUS_CANCELLED,
    )
    if exclude_id is not None:
        q = q.where(Appointment.id != exclude_id)
    result = await session.execute(q)
    return int(result.scalar_one())
