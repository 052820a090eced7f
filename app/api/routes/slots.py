from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import booking_http_error, get_active_doctor_or_404, get_session
from app.api.schemas.appointment import AvailableSlotsResponse, SlotCheckResponse, SlotInfo
from app.models.doctor import Doctor
from app.scheduling.time_slots import format_time_display, get_visiting_hours_text
from app.services.appointment_service import ensure_slot_bookable, parse_slot
from app.services.doctor_service import to_schedule_config
from app.services.errors import BookingError
from app.services.slot_service import get_available_slots_for_date, get_blocked_info

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/available", response_model=AvailableSlotsResponse)
async def available_slots(
    date_param: date = Query(..., alias="date"),
    doctor: Doctor = Depends(get_active_doctor_or_404),
    session: AsyncSession = Depends(get_session),
) -> AvailableSlotsResponse:
    """Bookable slots for the doctor on the given date (hospital time); past slots today are left out."""
    blocked = get_blocked_info(doctor, date_param)
    slots = await get_available_slots_for_date(session, doctor, date_param)
    return AvailableSlotsResponse(
        doctor_id=doctor.id,
        date=date_param.isoformat(),
        blocked=blocked is not None,
        blocked_reason=blocked["reason"] if blocked else None,
        visiting_hours=get_visiting_hours_text(to_schedule_config(doctor), date_param),
        slots=[SlotInfo(time=s, label=format_time_display(s)) for s in slots],
    )


@router.get("/check", response_model=SlotCheckResponse)
async def check_slot(
    date_param: str = Query(..., alias="date"),
    time_param: str = Query(..., alias="time"),
    doctor: Doctor = Depends(get_active_doctor_or_404),
    session: AsyncSession = Depends(get_session),
) -> SlotCheckResponse:
    """Check a single slot before the booking form is submitted. 409 when it is taken."""
    try:
        d, slot = parse_slot(date_param, time_param)
        await ensure_slot_bookable(session, doctor, d, slot)
    except BookingError as e:
        raise booking_http_error(e) from e
    return SlotCheckResponse(available=True)
