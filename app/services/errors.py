class BookingError(Exception):
    """Base for booking failures that map to a client error."""


class DoctorNotFoundError(BookingError):
    pass


class InvalidSlotError(BookingError):
    """The requested date/time is not a slot the doctor offers (blocked, off-grid, break, past...)."""


class SlotAlreadyBookedError(BookingError):
    pass


class PatientDailyLimitError(BookingError):
    pass


class AppointmentNotFoundError(BookingError):
    pass


class NotAppointmentOwnerError(BookingError):
    pass
