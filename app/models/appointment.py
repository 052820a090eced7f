from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from app.models.common import timestamp_column, utc_now


STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
STATUS_NOT_ATTENDED = "not_attended"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    doctor_id: int = Field(foreign_key="doctors.id", index=True)
    patient_id: str = Field(index=True)
    appointment_date: str = Field(index=True)  # YYYY-MM-DD in hospital time
    appointment_time: str  # HH:mm slot label
    status: str = STATUS_CONFIRMED
    notes: str | None = None
    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())
    updated_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())


class AppointmentSlot(SQLModel, table=True):
    """One row per held slot; the unique constraint is what stops double booking."""

    __tablename__ = "appointment_slots"
    __table_args__ = (
        UniqueConstraint("doctor_id", "appointment_date", "appointment_time", name="uq_appointment_slot"),
    )
    id: int | None = Field(default=None, primary_key=True)
    doctor_id: int = Field(foreign_key="doctors.id", index=True)
    appointment_date: str
    appointment_time: str
    appointment_id: int = Field(foreign_key="appointments.id", unique=True)
    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())


class AppointmentCreate(SQLModel):
    doctor_id: int
    patient_id: str
    appointment_date: str
    appointment_time: str
    notes: str | None = None


class AppointmentPublic(SQLModel):
    id: int
    doctor_id: int
    patient_id: str
    appointment_date: str
    appointment_time: str
    time_label: str
    status: str
    notes: str | None = None
    created_at: datetime
