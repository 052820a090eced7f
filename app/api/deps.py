from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.models.doctor import Doctor
from app.services.doctor_service import get_doctor
from app.services.errors import (
    AppointmentNotFoundError,
    BookingError,
    DoctorNotFoundError,
    NotAppointmentOwnerError,
    PatientDailyLimitError,
    SlotAlreadyBookedError,
)

__all__ = ["get_session", "get_doctor_or_404", "get_active_doctor_or_404", "booking_http_error"]


async def get_doctor_or_404(
    doctor_id: int,
    session: AsyncSession = Depends(get_session),
) -> Doctor:
    doctor = await get_doctor(session, doctor_id)
    if not doctor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Doctor {doctor_id} not found",
        )
    return doctor


async def get_active_doctor_or_404(doctor: Doctor = Depends(get_doctor_or_404)) -> Doctor:
    """Doctors that take bookings; an inactive doctor offers no slots."""
    if not doctor.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Doctor {doctor.id} not found",
        )
    return doctor


def booking_http_error(exc: BookingError) -> HTTPException:
    """Map a service-level booking failure to the HTTP status the client sees."""
    if isinstance(exc, DoctorNotFoundError | AppointmentNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, NotAppointmentOwnerError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, SlotAlreadyBookedError | PatientDailyLimitError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail=str(exc))
