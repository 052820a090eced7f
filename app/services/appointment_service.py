import logging
from datetime import date, datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.appointment import (
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    Appointment,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentSlot,
)
from app.models.common import utc_now
from app.models.doctor import Doctor
from app.scheduling.time_slots import format_time_display, normalize_time
from app.services.doctor_service import get_doctor
from app.services.errors import (
    AppointmentNotFoundError,
    DoctorNotFoundError,
    InvalidSlotError,
    NotAppointmentOwnerError,
    PatientDailyLimitError,
    SlotAlreadyBookedError,
)
from app.services.slot_service import (
    get_available_slots_for_date,
    get_blocked_info,
    get_patient_appointment_count_on_date,
    is_slot_taken,
)

logger = logging.getLogger(__name__)


def appointment_to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic(
        id=a.id,
        doctor_id=a.doctor_id,
        patient_id=a.patient_id,
        appointment_date=a.appointment_date,
        appointment_time=a.appointment_time,
        time_label=format_time_display(a.appointment_time),
        status=a.status,
        notes=a.notes,
        created_at=a.created_at,
    )


def parse_slot(appointment_date: str | date, appointment_time: str) -> tuple[date, str]:
    """Validate a requested date and time; the time comes back as an HH:mm slot label."""
    if isinstance(appointment_date, date):
        d = appointment_date
    else:
        try:
            d = date.fromisoformat(appointment_date.strip())
        except ValueError:
            raise InvalidSlotError(f"Invalid date {appointment_date!r}, expected YYYY-MM-DD") from None
    slot = normalize_time(appointment_time)
    if slot is None:
        raise InvalidSlotError(f"Invalid time {appointment_time!r}, expected HH:mm")
    return d, slot


async def _get_bookable_doctor(session: AsyncSession, doctor_id: int) -> Doctor:
    doctor = await get_doctor(session, doctor_id)
    if doctor is None or not doctor.is_active:
        raise DoctorNotFoundError(f"Doctor {doctor_id} not found")
    return doctor


async def ensure_slot_bookable(
    session: AsyncSession,
    doctor: Doctor,
    d: date,
    slot: str,
    patient_id: str | None = None,
    now: datetime | None = None,
    exclude_appointment_id: int | None = None,
) -> None:
    """Raise a BookingError unless `slot` on `d` can be booked with this doctor (by this patient)."""
    blocked = get_blocked_info(doctor, d)
    if blocked:
        raise InvalidSlotError(f"Doctor is not available on {d.isoformat()}: {blocked['reason']}")
    if await is_slot_taken(session, doctor.id, d, slot):
        raise SlotAlreadyBookedError("This slot was just booked. Please choose another time.")
    available = await get_available_slots_for_date(session, doctor, d, now=now)
    if slot not in available:
        raise InvalidSlotError(f"{format_time_display(slot)} on {d.isoformat()} is not an available slot")
    if patient_id is None:
        return
    count = await get_patient_appointment_count_on_date(
        session, patient_id, doctor.id, d, exclude_id=exclude_appointment_id
    )
    if count >= settings.max_appointments_per_patient_per_day:
        raise PatientDailyLimitError("You already have an appointment with this doctor on this day.")


async def _hold_slot(session: AsyncSession, appointment: Appointment) -> None:
    session.add(
        AppointmentSlot(
            doctor_id=appointment.doctor_id,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
            appointment_id=appointment.id,
        )
    )
    try:
        await session.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent booking; the caller's session rolls back
        logger.info(
            "Slot conflict for doctor %s on %s at %s",
            appointment.doctor_id,
            appointment.appointment_date,
            appointment.appointment_time,
        )
        raise SlotAlreadyBookedError("This slot was just booked. Please choose another time.") from e


async def _release_slot(session: AsyncSession, appointment_id: int) -> None:
    await session.execute(delete(AppointmentSlot).where(AppointmentSlot.appointment_id == appointment_id))
    await session.flush()


async def create_appointment(
    session: AsyncSession, data: AppointmentCreate, now: datetime | None = None
) -> Appointment:
    doctor = await _get_bookable_doctor(session, data.doctor_id)
    d, slot = parse_slot(data.appointment_date, data.appointment_time)
    await ensure_slot_bookable(session, doctor, d, slot, patient_id=data.patient_id, now=now)
    appointment = Appointment(
        doctor_id=doctor.id,
        patient_id=data.patient_id,
        appointment_date=d.isoformat(),
        appointment_time=slot,
        status=STATUS_CONFIRMED,
        notes=data.notes,
    )
    session.add(appointment)
    await session.flush()
    await _hold_slot(session, appointment)
    await session.refresh(appointment)
    logger.info("Booked appointment %s: doctor %s %s %s", appointment.id, doctor.id, d.isoformat(), slot)
    return appointment


async def get_appointment(session: AsyncSession, appointment_id: int) -> Appointment | None:
    result = await session.execute(select(Appointment).where(Appointment.id == appointment_id))
    return result.scalar_one_or_none()


async def _get_owned_appointment(
    session: AsyncSession, appointment_id: int, patient_id: str | None
) -> Appointment:
    appointment = await get_appointment(session, appointment_id)
    if appointment is None:
        raise AppointmentNotFoundError(f"Appointment {appointment_id} not found")
    if patient_id is not None and appointment.patient_id != patient_id:
        raise NotAppointmentOwnerError("You cannot modify this appointment")
    return appointment


async def reschedule_appointment(
    session: AsyncSession,
    appointment_id: int,
    new_date: str | date,
    new_time: str,
    patient_id: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    appointment = await _get_owned_appointment(session, appointment_id, patient_id)
    if appointment.status == STATUS_CANCELLED:
        raise InvalidSlotError("Cancelled appointments cannot be rescheduled")
    d, slot = parse_slot(new_date, new_time)
    if appointment.appointment_date == d.isoformat() and appointment.appointment_time == slot:
        return appointment
    doctor = await _get_bookable_doctor(session, appointment.doctor_id)
    await ensure_slot_bookable(
        session,
        doctor,
        d,
        slot,
        patient_id=appointment.patient_id,
        now=now,
        exclude_appointment_id=appointment.id,
    )
    await _release_slot(session, appointment.id)
    appointment.appointment_date = d.isoformat()
    appointment.appointment_time = slot
    appointment.updated_at = utc_now()
    session.add(appointment)
    await session.flush()
    await _hold_slot(session, appointment)
    await session.refresh(appointment)
    return appointment


async def cancel_appointment(
    session: AsyncSession, appointment_id: int, patient_id: str | None = None
) -> Appointment:
    appointment = await _get_owned_appointment(session, appointment_id, patient_id)
    if appointment.status != STATUS_CANCELLED:
        appointment.status = STATUS_CANCELLED
        appointment.updated_at = utc_now()
        session.add(appointment)
        await _release_slot(session, appointment.id)
    return appointment


async def list_appointments_for_patient(
    session: AsyncSession, patient_id: str, from_date: date | None = None
) -> list[Appointment]:
    q = (
        select(Appointment)
        .where(Appointment.patient_id == patient_id)
        .order_by(Appointment.appointment_date, Appointment.appointment_time)
    )
    if from_date:
        q = q.where(Appointment.appointment_date >= from_date.isoformat())
    result = await session.execute(q)
    return list(result.scalars().all())
