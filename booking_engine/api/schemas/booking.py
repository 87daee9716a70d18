from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, field_validator

from booking_engine.models.appointment import AppointmentPublic, utc_aware
from booking_engine.models.booking_type import BookingTypePublic
from booking_engine.models.host import HostPublic


class SlotInfo(BaseModel):
    start_utc: datetime
    end_utc: datetime
    start_local: str  # HH:MM in the booking timezone
    end_local: str
    host_ids: list[int]


class BookingTypeInfoResponse(BaseModel):
    booking_type: BookingTypePublic
    timezone: str
    hosts: list[HostPublic]
    host: HostPublic | None = None  # set for host-prefixed links


class AvailableDaysResponse(BookingTypeInfoResponse):
    month: str  # YYYY-MM
    available_days: list[date]


class AvailableSlotsResponse(BookingTypeInfoResponse):
    date: str  # YYYY-MM-DD
    slots: list[SlotInfo]


class BookAppointmentRequest(BaseModel):
    start_time: datetime
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    guest_company: str | None = None
    notes: str | None = None
    guest_timezone: str | None = None


class BookingConfirmation(BaseModel):
    appointment: AppointmentPublic
    timezone: str
    start_local: str
    end_local: str
    manage_token: str


class StatusUpdateRequest(BaseModel):
    status: Literal["CONFIRMED", "CANCELLED", "COMPLETED", "NO_SHOW"]
    reason: str | None = None


class RescheduleRequest(BaseModel):
    start_time: datetime


class CancelRequest(BaseModel):
    reason: str | None = None


class GuestAppointmentView(BaseModel):
    id: int
    start_time: datetime
    end_time: datetime
    status: str
    booking_type: str
    host: HostPublic | None = None
    guest_name: str
    guest_email: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _aware_utc(cls, v: datetime) -> datetime:
        return utc_aware(v)
