import re
from datetime import UTC, date, datetime

from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_HHMM = re.compile(r"^([01]\d|2[0-4]):([0-5]\d)$")


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def hhmm_to_minutes(value: str) -> int:
    """'09:30' -> 570. '24:00' is accepted as the end of the day."""
    match = _HHMM.match(value)
    if not match:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours == 24 and minutes != 0:
        raise ValueError(f"Invalid time {value!r}")
    return hours * 60 + minutes


class TimeRange(BaseModel):
    """Wall-clock range in the owner's timezone, half-open [start, end)."""

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _check_format(cls, v: str) -> str:
        hhmm_to_minutes(v)
        return v

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.start == "24:00":
            raise ValueError("Range cannot start at 24:00")
        if hhmm_to_minutes(self.start) >= hhmm_to_minutes(self.end):
            raise ValueError(f"Range start {self.start} must be before end {self.end}")
        return self

    @property
    def start_minutes(self) -> int:
        return hhmm_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return hhmm_to_minutes(self.end)


def check_ranges(ranges: list[TimeRange]) -> list[TimeRange]:
    """Sort ranges and reject overlaps. Touching ranges are allowed."""
    ordered = sorted(ranges, key=lambda r: r.start_minutes)
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.start_minutes < prev.end_minutes:
            raise ValueError(f"Ranges {prev.start}-{prev.end} and {cur.start}-{cur.end} overlap")
    return ordered


class WeeklySchedule(BaseModel):
    monday: list[TimeRange] = []
    tuesday: list[TimeRange] = []
    wednesday: list[TimeRange] = []
    thursday: list[TimeRange] = []
    friday: list[TimeRange] = []
    saturday: list[TimeRange] = []
    sunday: list[TimeRange] = []

    @field_validator(*WEEKDAYS)
    @classmethod
    def _non_overlapping(cls, v: list[TimeRange]) -> list[TimeRange]:
        return check_ranges(v)

    @classmethod
    def default(cls) -> "WeeklySchedule":
        office_hours = [TimeRange(start="09:00", end="18:00")]
        return cls(
            monday=office_hours,
            tuesday=office_hours,
            wednesday=office_hours,
            thursday=office_hours,
            friday=office_hours,
        )


class AvailabilitySchedule(SQLModel, table=True):
    """Weekly hours and timezone of one scheduling owner (an agency or a host override)."""

    __tablename__ = "availability_schedules"
    id: int | None = Field(default=None, primary_key=True)
    agency_id: int | None = Field(default=None, foreign_key="agencies.id", unique=True, index=True)
    host_id: int | None = Field(default=None, foreign_key="hosts.id", unique=True, index=True)
    timezone: str
    weekly_schedule: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    updated_at: datetime = Field(default_factory=_utc_naive_now)


class DateException(SQLModel, table=True):
    """Holiday or one-off override replacing the weekly hours for one date."""

    __tablename__ = "date_exceptions"
    __table_args__ = (UniqueConstraint("schedule_id", "date", name="uq_date_exceptions_schedule_date"),)
    id: int | None = Field(default=None, primary_key=True)
    schedule_id: int = Field(foreign_key="availability_schedules.id", index=True)
    date: date
    is_closed: bool = True
    ranges: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    reason: str | None = None


class DateExceptionUpdate(BaseModel):
    is_closed: bool = True
    ranges: list[TimeRange] = []
    reason: str | None = None

    @model_validator(mode="after")
    def _closed_or_ranges(self) -> "DateExceptionUpdate":
        if self.is_closed and self.ranges:
            raise ValueError("A closed date cannot carry opening ranges")
        if not self.is_closed and not self.ranges:
            raise ValueError("An open override needs at least one range")
        self.ranges = check_ranges(self.ranges)
        return self


class DateExceptionPublic(BaseModel):
    date: date
    is_closed: bool
    ranges: list[TimeRange]
    reason: str | None = None


class AvailabilityUpdate(BaseModel):
    timezone: str
    weekly_schedule: WeeklySchedule


class AvailabilityPublic(BaseModel):
    owner: str  # "agency" or "host"
    timezone: str
    weekly_schedule: WeeklySchedule
    exceptions: list[DateExceptionPublic] = []
