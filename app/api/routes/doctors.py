from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_doctor_or_404, get_session
from app.models.doctor import BlockedDateCreate, Doctor, DoctorCreate, DoctorPublic, DoctorSchedule
from app.services.doctor_service import (
    add_blocked_date,
    create_doctor,
    doctor_to_public,
    remove_blocked_date,
    update_schedule,
)

router = APIRouter(prefix="/doctors", tags=["doctors"])


@router.post("", response_model=DoctorPublic, status_code=status.HTTP_201_CREATED)
async def create(
    body: DoctorCreate,
    session: AsyncSession = Depends(get_session),
) -> DoctorPublic:
    doctor = await create_doctor(session, body)
    return doctor_to_public(doctor)


@router.get("/{doctor_id}", response_model=DoctorPublic)
async def read(doctor: Doctor = Depends(get_doctor_or_404)) -> DoctorPublic:
    return doctor_to_public(doctor)


@router.put("/{doctor_id}/schedule", response_model=DoctorPublic)
async def replace_schedule(
    body: DoctorSchedule,
    doctor: Doctor = Depends(get_doctor_or_404),
    session: AsyncSession = Depends(get_session),
) -> DoctorPublic:
    """Replace working hours, break, slot length and working days. Existing bookings are kept."""
    doctor = await update_schedule(session, doctor, body)
    return doctor_to_public(doctor)


@router.post("/{doctor_id}/blocked-dates", response_model=DoctorPublic, status_code=status.HTTP_201_CREATED)
async def block_date(
    body: BlockedDateCreate,
    doctor: Doctor = Depends(get_doctor_or_404),
    session: AsyncSession = Depends(get_session),
) -> DoctorPublic:
    doctor = await add_blocked_date(session, doctor, body.date, body.reason)
    return doctor_to_public(doctor)


@router.delete("/{doctor_id}/blocked-dates/{blocked_date}", status_code=status.HTTP_204_NO_CONTENT)
async def unblock_date(
    blocked_date: date,
    doctor: Doctor = Depends(get_doctor_or_404),
    session: AsyncSession = Depends(get_session),
) -> None:
    removed = await remove_blocked_date(session, doctor, blocked_date)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{blocked_date.isoformat()} is not blocked",
        )
