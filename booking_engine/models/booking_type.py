from enum import Enum

from pydantic import field_validator
from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel


class AssignmentType(str, Enum):
    ROUND_ROBIN = "ROUND_ROBIN"
    SPECIFIC = "SPECIFIC"


class BookingType(SQLModel, table=True):
    __tablename__ = "booking_types"
    id: int | None = Field(default=None, primary_key=True)
    agency_id: int = Field(foreign_key="agencies.id", index=True)
    name: str
    slug: str = Field(unique=True, index=True)
    description: str | None = None
    duration_minutes: int
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    min_notice_minutes: int = 0
    max_future_days: int | None = None
    is_active: bool = True
    auto_confirm: bool = False
    assignment_type: str = Field(
        default=AssignmentType.ROUND_ROBIN.value,
        sa_column=Column(String(20), nullable=False),
    )
    specific_host_id: int | None = Field(default=None, foreign_key="hosts.id")


class BookingTypeHost(SQLModel, table=True):
    __tablename__ = "booking_type_hosts"
    booking_type_id: int = Field(foreign_key="booking_types.id", primary_key=True)
    host_id: int = Field(foreign_key="hosts.id", primary_key=True)
    priority: int = 0


class BookingTypeCreate(SQLModel):
    name: str
    description: str | None = None
    duration_minutes: int | None = None
    buffer_before_minutes: int | None = None
    buffer_after_minutes: int | None = None
    min_notice_minutes: int | None = None
    max_future_days: int | None = None
    is_active: bool = True
    auto_confirm: bool = False
    assignment_type: AssignmentType = AssignmentType.ROUND_ROBIN
    specific_host_id: int | None = None
    assigned_host_ids: list[int] = []

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("duration_minutes")
    @classmethod
    def _positive_duration(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("Duration must be positive")
        return v

    @field_validator("buffer_before_minutes", "buffer_after_minutes", "min_notice_minutes", "max_future_days")
    @classmethod
    def _not_negative(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("Must not be negative")
        return v


class BookingTypeUpdate(SQLModel):
    name: str | None = None
    description: str | None = None
    duration_minutes: int | None = None
    buffer_before_minutes: int | None = None
    buffer_after_minutes: int | None = None
    min_notice_minutes: int | None = None
    max_future_days: int | None = None
    is_active: bool | None = None
    auto_confirm: bool | None = None
    assignment_type: AssignmentType | None = None
    specific_host_id: int | None = None
    assigned_host_ids: list[int] | None = None

    @field_validator("duration_minutes")
    @classmethod
    def _positive_duration(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("Duration must be positive")
        return v

    @field_validator("buffer_before_minutes", "buffer_after_minutes", "min_notice_minutes", "max_future_days")
    @classmethod
    def _not_negative(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("Must not be negative")
        return v


class BookingTypePublic(SQLModel):
    id: int
    name: str
    slug: str
    description: str | None = None
    duration_minutes: int
    buffer_before_minutes: int
    buffer_after_minutes: int
    min_notice_minutes: int
    max_future_days: int | None = None
    is_active: bool
    auto_confirm: bool
    assignment_type: str
    specific_host_id: int | None = None
