from pydantic import BaseModel


class SlotInfo(BaseModel):
    time: str  # HH:mm
    label: str  # 9:30 AM


class AvailableSlotsResponse(BaseModel):
    doctor_id: int
    date: str  # YYYY-MM-DD
    blocked: bool = False
    blocked_reason: str | None = None
    visiting_hours: str
    slots: list[SlotInfo]


class SlotCheckResponse(BaseModel):
    available: bool


class BookAppointmentRequest(BaseModel):
    doctor_id: int
    patient_id: str
    appointment_date: str  # YYYY-MM-DD
    appointment_time: str  # HH:mm
    notes: str | None = None


class RescheduleRequest(BaseModel):
    appointment_date: str
    appointment_time: str
    patient_id: str | None = None


class CancelRequest(BaseModel):
    patient_id: str | None = None
