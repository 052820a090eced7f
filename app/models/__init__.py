from app.models.doctor import BlockedDateCreate, Doctor, DoctorCreate, DoctorPublic, DoctorSchedule
from app.models.appointment import Appointment, AppointmentCreate, AppointmentPublic, AppointmentSlot

__all__ = [
    "Doctor",
    "DoctorCreate",
    "DoctorPublic",
    "DoctorSchedule",
    "BlockedDateCreate",
    "Appointment",
    "AppointmentCreate",
    "AppointmentPublic",
    "AppointmentSlot",
]
