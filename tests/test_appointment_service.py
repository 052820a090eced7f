from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.appointment import Appointment, AppointmentCreate, AppointmentSlot
from app.models.doctor import Doctor, DoctorCreate
from app.services import appointment_service
from app.services.appointment_service import (
    cancel_appointment,
    create_appointment,
    list_appointments_for_patient,
    reschedule_appointment,
)
from app.services.doctor_service import add_blocked_date, create_doctor, remove_blocked_date
from app.services.errors import (
    AppointmentNotFoundError,
    DoctorNotFoundError,
    InvalidSlotError,
    NotAppointmentOwnerError,
    PatientDailyLimitError,
    SlotAlreadyBookedError,
)
from app.services.slot_service import get_available_slots_for_date


async def _doctor(session: AsyncSession, **overrides) -> Doctor:
    values = {"full_name": "Dr. Rao", "start_time": "09:00", "end_time": "12:00", "slot_duration_minutes": 30}
    values.update(overrides)
    return await create_doctor(session, DoctorCreate(**values))


def _booking(doctor: Doctor, day: date, time: str, patient_id: str = "patient-1") -> AppointmentCreate:
    return AppointmentCreate(
        doctor_id=doctor.id,
        patient_id=patient_id,
        appointment_date=day.isoformat(),
        appointment_time=time,
    )


async def test_booked_slot_disappears_from_availability(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    await create_appointment(session, _booking(doctor, future_day, "10:00"))

    slots = await get_available_slots_for_date(session, doctor, future_day)
    assert slots == ["09:00", "09:30", "10:30", "11:00", "11:30"]


async def test_same_slot_cannot_be_booked_twice(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    await create_appointment(session, _booking(doctor, future_day, "10:00"))

    with pytest.raises(SlotAlreadyBookedError):
        await create_appointment(session, _booking(doctor, future_day, "10:00", patient_id="patient-2"))


async def test_time_is_normalized_before_booking(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    appointment = await create_appointment(session, _booking(doctor, future_day, "9:30 am"))
    assert appointment.appointment_time == "09:30"

    with pytest.raises(SlotAlreadyBookedError):
        await create_appointment(session, _booking(doctor, future_day, "09:30", patient_id="patient-2"))


async def test_patient_gets_one_slot_per_doctor_per_day(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    other = await _doctor(session, full_name="Dr. Iyer")
    await create_appointment(session, _booking(doctor, future_day, "09:00"))

    with pytest.raises(PatientDailyLimitError):
        await create_appointment(session, _booking(doctor, future_day, "11:00"))

    # A different doctor or a different day is fine
    await create_appointment(session, _booking(other, future_day, "11:00"))
    await create_appointment(session, _booking(doctor, future_day + timedelta(days=1), "11:00"))


async def test_cancel_frees_the_slot(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    appointment = await create_appointment(session, _booking(doctor, future_day, "10:00"))

    cancelled = await cancel_appointment(session, appointment.id, patient_id="patient-1")
    assert cancelled.status == "cancelled"
    assert "10:00" in await get_available_slots_for_date(session, doctor, future_day)

    rebooked = await create_appointment(session, _booking(doctor, future_day, "10:00", patient_id="patient-2"))
    assert rebooked.status == "confirmed"


async def test_cancel_checks_owner_and_existence(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    appointment = await create_appointment(session, _booking(doctor, future_day, "10:00"))

    with pytest.raises(NotAppointmentOwnerError):
        await cancel_appointment(session, appointment.id, patient_id="someone-else")
    with pytest.raises(AppointmentNotFoundError):
        await cancel_appointment(session, 9999)


async def test_blocked_date_rejects_booking(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    await add_blocked_date(session, doctor, future_day, "Conference")

    assert await get_available_slots_for_date(session, doctor, future_day) == []
    with pytest.raises(InvalidSlotError, match="Conference"):
        await create_appointment(session, _booking(doctor, future_day, "10:00"))

    assert await remove_blocked_date(session, doctor, future_day)
    assert not await remove_blocked_date(session, doctor, future_day)
    await create_appointment(session, _booking(doctor, future_day, "10:00"))


async def test_blocking_the_same_date_twice_keeps_one_entry(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    await add_blocked_date(session, doctor, future_day, "Leave")
    doctor = await add_blocked_date(session, doctor, future_day, "Conference")
    assert doctor.blocked_dates == [{"date": future_day.isoformat(), "reason": "Conference"}]


@pytest.mark.parametrize("time", ["09:10", "12:00", "08:30", "later"])
async def test_times_that_are_not_offered_are_rejected(session: AsyncSession, future_day: date, time: str) -> None:
    doctor = await _doctor(session)
    with pytest.raises(InvalidSlotError):
        await create_appointment(session, _booking(doctor, future_day, time))


async def test_break_and_working_days_are_enforced(session: AsyncSession, future_day: date) -> None:
    weekday = future_day.strftime("%A").lower()
    doctor = await _doctor(session, end_time="13:00", break_start="11:00", break_end="12:00", working_days=[weekday])

    with pytest.raises(InvalidSlotError):
        await create_appointment(session, _booking(doctor, future_day, "11:30"))
    with pytest.raises(InvalidSlotError):
        await create_appointment(session, _booking(doctor, future_day + timedelta(days=1), "09:00"))
    await create_appointment(session, _booking(doctor, future_day, "12:00"))


async def test_past_slots_today_cannot_be_booked(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    # Pretend "today" is future_day at 10:05 hospital time
    now = datetime(future_day.year, future_day.month, future_day.day, 10, 5)

    assert await get_available_slots_for_date(session, doctor, future_day, now=now) == ["10:30", "11:00", "11:30"]
    with pytest.raises(InvalidSlotError):
        await create_appointment(session, _booking(doctor, future_day, "09:30"), now=now)
    await create_appointment(session, _booking(doctor, future_day, "10:30"), now=now)


async def test_dates_before_today_have_no_slots(session: AsyncSession) -> None:
    doctor = await _doctor(session)
    assert await get_available_slots_for_date(session, doctor, date.today() - timedelta(days=7)) == []


async def test_unknown_doctor_is_rejected(session: AsyncSession, future_day: date) -> None:
    with pytest.raises(DoctorNotFoundError):
        await create_appointment(
            session,
            AppointmentCreate(
                doctor_id=404,
                patient_id="patient-1",
                appointment_date=future_day.isoformat(),
                appointment_time="09:00",
            ),
        )


async def test_reschedule_moves_the_held_slot(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    appointment = await create_appointment(session, _booking(doctor, future_day, "09:00"))

    moved = await reschedule_appointment(session, appointment.id, future_day.isoformat(), "11:00", patient_id="patient-1")
    assert moved.appointment_time == "11:00"

    slots = await get_available_slots_for_date(session, doctor, future_day)
    assert "09:00" in slots
    assert "11:00" not in slots
    await create_appointment(session, _booking(doctor, future_day, "09:00", patient_id="patient-2"))


async def test_reschedule_onto_taken_slot_is_rejected(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    mine = await create_appointment(session, _booking(doctor, future_day, "09:00"))
    await create_appointment(session, _booking(doctor, future_day, "10:00", patient_id="patient-2"))

    with pytest.raises(SlotAlreadyBookedError):
        await reschedule_appointment(session, mine.id, future_day.isoformat(), "10:00")
    with pytest.raises(NotAppointmentOwnerError):
        await reschedule_appointment(session, mine.id, future_day.isoformat(), "11:00", patient_id="patient-2")


async def test_reschedule_to_same_slot_is_a_no_op(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    appointment = await create_appointment(session, _booking(doctor, future_day, "09:00"))
    same = await reschedule_appointment(session, appointment.id, future_day, "9:00")
    assert same.appointment_time == "09:00"


async def test_cancelled_appointment_cannot_be_rescheduled(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    appointment = await create_appointment(session, _booking(doctor, future_day, "09:00"))
    await cancel_appointment(session, appointment.id)

    with pytest.raises(InvalidSlotError):
        await reschedule_appointment(session, appointment.id, future_day.isoformat(), "10:00")


async def test_list_for_patient_is_ordered(session: AsyncSession, future_day: date) -> None:
    doctor = await _doctor(session)
    later = future_day + timedelta(days=1)
    await create_appointment(session, _booking(doctor, later, "09:00"))
    await create_appointment(session, _booking(doctor, future_day, "11:00"))

    appointments = await list_appointments_for_patient(session, "patient-1")
    assert [(a.appointment_date, a.appointment_time) for a in appointments] == [
        (future_day.isoformat(), "11:00"),
        (later.isoformat(), "09:00"),
    ]
    assert await list_appointments_for_patient(session, "patient-1", from_date=later) == appointments[1:]


async def test_slot_row_constraint_catches_a_lost_race(
    session_maker: async_sessionmaker[AsyncSession], future_day: date, monkeypatch: pytest.MonkeyPatch
) -> None:
    async with session_maker() as s:
        doctor = await _doctor(s)
        await create_appointment(s, _booking(doctor, future_day, "10:00"))
        await s.commit()

    # A concurrent request that passed its checks before the first booking committed
    async def _not_taken(*args, **kwargs) -> bool:
        return False

    async def _offered(*args, **kwargs) -> list[str]:
        return ["10:00"]

    async def _no_bookings(*args, **kwargs) -> int:
        return 0

    monkeypatch.setattr(appointment_service, "is_slot_taken", _not_taken)
    monkeypatch.setattr(appointment_service, "get_available_slots_for_date", _offered)
    monkeypatch.setattr(appointment_service, "get_patient_appointment_count_on_date", _no_bookings)

    async with session_maker() as s:
        with pytest.raises(SlotAlreadyBookedError):
            await create_appointment(s, _booking(doctor, future_day, "10:00", patient_id="patient-2"))
        await s.rollback()

    async with session_maker() as s:
        appointments = (await s.execute(select(Appointment))).scalars().all()
        held = (await s.execute(select(AppointmentSlot))).scalars().all()
    assert [a.patient_id for a in appointments] == ["patient-1"]
    assert [(h.appointment_time, h.appointment_id) for h in held] == [("10:00", appointments[0].id)]
