"""Open availability intervals for a host.

Merges the weekly schedule with date exceptions and converts the resulting
wall-clock ranges into UTC intervals, one list per calendar date.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import ScheduleIntegrityError
from booking_engine.models.host import Host
from booking_engine.models.schedule import WEEKDAYS, AvailabilitySchedule, DateException, TimeRange
from booking_engine.services.store import get_date_exceptions, get_weekly_schedule
from booking_engine.services.timezone_service import get_zone, wall_to_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Interval:
    """Half-open [start, end) between two aware UTC instants."""

    start: datetime
    end: datetime


def parse_day_ranges(raw: list, where: str) -> list[TimeRange]:
    """Stored JSON ranges -> sorted TimeRanges.

    Malformed or overlapping data means the write-side validation was bypassed;
    it is reported, never repaired.
    """
    try:
        ranges = [TimeRange.model_validate(item) for item in raw or []]
    except PydanticValidationError as e:
        raise ScheduleIntegrityError(f"Malformed time range in {where}: {e.errors()[0]['msg']}") from e
    ranges.sort(key=lambda r: r.start_minutes)
    for prev, cur in zip(ranges, ranges[1:]):
        if cur.start_minutes < prev.end_minutes:
            raise ScheduleIntegrityError(
                f"Overlapping ranges {prev.start}-{prev.end} and {cur.start}-{cur.end} in {where}"
            )
    return ranges


def ranges_for_date(
    schedule: AvailabilitySchedule, exception: DateException | None, day: date
) -> list[TimeRange]:
    """Wall-clock ranges that apply on `day`; a date exception wins over the weekly hours."""
    if exception is not None:
        if exception.is_closed:
            return []
        return parse_day_ranges(exception.ranges, f"date exception {day.isoformat()}")
    weekday = WEEKDAYS[day.weekday()]
    weekly = schedule.weekly_schedule or {}
    if not isinstance(weekly, dict):
        raise ScheduleIntegrityError(f"Weekly schedule of schedule {schedule.id} is not a mapping")
    return parse_day_ranges(weekly.get(weekday, []), f"weekly schedule ({weekday})")


def open_intervals_for_date(
    schedule: AvailabilitySchedule, exception: DateException | None, day: date
) -> list[Interval]:
    intervals = [
        Interval(
            start=wall_to_utc(schedule.timezone, day, r.start),
            end=wall_to_utc(schedule.timezone, day, r.end),
        )
        for r in ranges_for_date(schedule, exception, day)
    ]
    # Wall ranges are disjoint, but a fall-back transition can still fold them together
    for prev, cur in zip(intervals, intervals[1:]):
        if cur.start < prev.end:
            raise ScheduleIntegrityError(
                f"Ranges on {day.isoformat()} overlap once converted to UTC in {schedule.timezone}"
            )
    return intervals


async def resolve_open_intervals(
    session: AsyncSession, host: Host, start: date, end: date
) -> tuple[AvailabilitySchedule, dict[date, list[Interval]]]:
    """Open UTC intervals for every local date in [start, end], keyed by date.

    Returns the governing schedule too, so callers can render times in its zone.
    """
    schedule = await get_weekly_schedule(session, host)
    # Invalid zone is fatal even when no date in range has opening hours
    get_zone(schedule.timezone)
    exceptions = await get_date_exceptions(session, schedule.id, start, end)
    result: dict[date, list[Interval]] = {}
    day = start
    while day <= end:
        result[day] = open_intervals_for_date(schedule, exceptions.get(day), day)
        day += timedelta(days=1)
    logger.debug(
        "Resolved availability for host %s %s..%s: %d open day(s)",
        host.id, start, end, sum(1 for v in result.values() if v),
    )
    return schedule, result
