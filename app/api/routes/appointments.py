import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import booking_http_error, get_doctor_or_404, get_session
from app.api.schemas.appointment import BookAppointmentRequest, CancelRequest, RescheduleRequest
from app.models.appointment import AppointmentCreate, AppointmentPublic
from app.models.doctor import Doctor
from app.services.appointment_service import (
    appointment_to_public,
    cancel_appointment,
    create_appointment,
    list_appointments_for_patient,
    reschedule_appointment,
)
from app.services.errors import BookingError
from app.services.slot_service import get_appointments_for_doctor_on_date

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    body: BookAppointmentRequest,
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    data = AppointmentCreate(
        doctor_id=body.doctor_id,
        patient_id=body.patient_id,
        appointment_date=body.appointment_date,
        appointment_time=body.appointment_time,
        notes=body.notes,
    )
    try:
        appointment = await create_appointment(session, data)
    except BookingError as e:
        logger.info("Booking rejected for patient %s: %s", body.patient_id, e)
        raise booking_http_error(e) from e
    return appointment_to_public(appointment)


@router.get("", response_model=list[AppointmentPublic])
async def list_patient_appointments(
    patient_id: str = Query(...),
    from_date: date | None = Query(None, alias="from_date"),
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentPublic]:
    try:
        appointments = await list_appointments_for_patient(session, patient_id, from_date=from_date)
        return [appointment_to_public(a) for a in appointments]
    except Exception as e:
        logger.exception("List appointments failed: %s", e)
        raise HTTPException(status_code=500, detail=f"{type(e).__name__}: {e}") from e


@router.get("/doctor/{doctor_id}", response_model=list[AppointmentPublic])
async def list_doctor_appointments(
    date_param: date = Query(..., alias="date"),
    doctor: Doctor = Depends(get_doctor_or_404),
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentPublic]:
    """The doctor's appointments for one day, cancelled ones included, in slot order."""
    appointments = await get_appointments_for_doctor_on_date(session, doctor.id, date_param)
    return [appointment_to_public(a) for a in appointments]


@router.post("/{appointment_id}/reschedule", response_model=AppointmentPublic)
async def reschedule(
    appointment_id: int,
    body: RescheduleRequest,
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    try:
        appointment = await reschedule_appointment(
            session,
            appointment_id,
            body.appointment_date,
            body.appointment_time,
            patient_id=body.patient_id,
        )
    except BookingError as e:
        logger.info("Reschedule of appointment %s rejected: %s", appointment_id, e)
        raise booking_http_error(e) from e
    return appointment_to_public(appointment)


@router.post("/{appointment_id}/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def cancel(
    appointment_id: int,
    body: CancelRequest | None = None,
    session: AsyncSession = Depends(get_session),
) -> None:
    try:
        await cancel_appointment(session, appointment_id, patient_id=body.patient_id if body else None)
    except BookingError as e:
        raise booking_http_error(e) from e
