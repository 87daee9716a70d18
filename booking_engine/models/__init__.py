from booking_engine.models.host import Agency, Host, HostPublic
from booking_engine.models.schedule import (
    AvailabilityPublic,
    AvailabilitySchedule,
    AvailabilityUpdate,
    DateException,
    DateExceptionPublic,
    DateExceptionUpdate,
    TimeRange,
    WeeklySchedule,
)
from booking_engine.models.booking_type import (
    AssignmentType,
    BookingType,
    BookingTypeCreate,
    BookingTypeHost,
    BookingTypePublic,
    BookingTypeUpdate,
)
from booking_engine.models.appointment import (
    NON_TERMINAL_STATUSES,
    Actor,
    Appointment,
    AppointmentPublic,
    AppointmentStatus,
    GuestDetails,
)

__all__ = [
    "Agency",
    "Host",
    "HostPublic",
    "AvailabilityPublic",
    "AvailabilitySchedule",
    "AvailabilityUpdate",
    "DateException",
    "DateExceptionPublic",
    "DateExceptionUpdate",
    "TimeRange",
    "WeeklySchedule",
    "AssignmentType",
    "BookingType",
    "BookingTypeCreate",
    "BookingTypeHost",
    "BookingTypePublic",
    "BookingTypeUpdate",
    "NON_TERMINAL_STATUSES",
    "Actor",
    "Appointment",
    "AppointmentPublic",
    "AppointmentStatus",
    "GuestDetails",
]
