from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy import Column, Index, String
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def utc_aware(value: datetime) -> datetime:
    """Stored naive UTC back to aware UTC, so API output carries a Z."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULED = "RESCHEDULED"


# Only these block overlapping bookings
NON_TERMINAL_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)


class Actor(str, Enum):
    HOST = "HOST"
    GUEST = "GUEST"
    SYSTEM = "SYSTEM"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (Index("ix_appointments_host_start", "host_id", "start_time"),)
    id: int | None = Field(default=None, primary_key=True)
    agency_id: int = Field(foreign_key="agencies.id", index=True)
    host_id: int = Field(foreign_key="hosts.id")
    booking_type_id: int = Field(foreign_key="booking_types.id", index=True)
    start_time: datetime  # naive UTC
    end_time: datetime  # naive UTC, start_time + duration
    status: str = Field(
        default=AppointmentStatus.SCHEDULED.value,
        sa_column=Column(String(20), nullable=False, index=True),
    )
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    guest_company: str | None = None
    guest_notes: str | None = None
    guest_timezone: str | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    rescheduled_to_id: int | None = Field(default=None, foreign_key="appointments.id")
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)


class GuestDetails(BaseModel):
    name: str
    email: EmailStr
    phone: str | None = None
    company: str | None = None
    notes: str | None = None
    timezone: str | None = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class AppointmentPublic(SQLModel):
    id: int
    host_id: int
    booking_type_id: int
    start_time: datetime
    end_time: datetime
    status: str
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    guest_company: str | None = None
    guest_notes: str | None = None
    guest_timezone: str | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    rescheduled_to_id: int | None = None
    created_at: datetime

    @field_validator("start_time", "end_time", "created_at")
    @classmethod
    def _aware_utc(cls, v: datetime) -> datetime:
        return utc_aware(v)
