import calendar
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import ConfigurationError, ValidationError
from booking_engine.models.appointment import Appointment
from booking_engine.models.booking_type import AssignmentType, BookingType, BookingTypeHost
from booking_engine.models.host import Host
from booking_engine.services.availability_service import Interval, resolve_open_intervals
from booking_engine.services.store import (
    get_agency_schedule,
    get_booking_type,
    get_host_by_slug,
    get_weekly_schedule,
    list_non_terminal_appointments,
)
from booking_engine.services.timezone_service import as_utc, local_date

logger = logging.getLogger(__name__)

_YEAR_MONTH = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass
class AvailableSlot:
    start: datetime
    end: datetime
    host_ids: list[int] = field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Slot generation and conflict filtering (pure)
# ---------------------------------------------------------------------------


def generate_slots(
    intervals: Iterable[Interval],
    duration_minutes: int,
    *,
    now: datetime,
    buffer_after_minutes: int = 0,
    lead_time_minutes: int = 0,
    horizon: datetime | None = None,
) -> list[Interval]:
    """Slice open intervals into consecutive fixed-length slots.

    A slot is emitted only while a full `duration` still fits in the interval;
    the remainder is left unused. Each step advances by duration plus the
    trailing buffer. Slots starting before now + lead time, or after the
    horizon, are dropped.
    """
    if duration_minutes <= 0:
        raise ConfigurationError("Booking duration must be positive")
    duration = timedelta(minutes=duration_minutes)
    step = duration + timedelta(minutes=buffer_after_minutes)
    earliest = as_utc(now) + timedelta(minutes=lead_time_minutes)
    slots: list[Interval] = []
    for interval in intervals:
        current = interval.start
        while current + duration <= interval.end:
            if current >= earliest and (horizon is None or current <= horizon):
                slots.append(Interval(start=current, end=current + duration))
            current += step
    return slots


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap; touching intervals do not overlap."""
    return a_start < b_end and a_end > b_start


def filter_conflicts(
    slots: Iterable[Interval],
    busy: Iterable[Interval],
    *,
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
) -> list[Interval]:
    """Keep slots that overlap none of the busy intervals (padded by the buffers)."""
    before = timedelta(minutes=buffer_before_minutes)
    after = timedelta(minutes=buffer_after_minutes)
    padded = [(b.start - before, b.end + after) for b in busy]
    return [
        slot for slot in slots
        if not any(overlaps(slot.start, slot.end, start, end) for start, end in padded)
    ]


def busy_intervals(appointments: Iterable[Appointment]) -> list[Interval]:
    return [Interval(start=as_utc(a.start_time), end=as_utc(a.end_time)) for a in appointments]


# ---------------------------------------------------------------------------
# Booking type / host lookup
# ---------------------------------------------------------------------------


async def get_active_booking_type(session: AsyncSession, slug: str) -> BookingType:
    booking_type = await get_booking_type(session, slug=slug)
    if booking_type is None or not booking_type.is_active:
        raise ConfigurationError(f"Booking type {slug!r} not found")
    return booking_type


async def candidate_hosts(
    session: AsyncSession, booking_type: BookingType, host_slug: str | None = None
) -> list[Host]:
    """Hosts that may take this booking type, in assignment priority order."""
    if host_slug is not None:
        host = await get_host_by_slug(session, host_slug)
        if host is None or not host.is_active or host.agency_id != booking_type.agency_id:
            raise ConfigurationError(f"Host {host_slug!r} not found")
        return [host]

    if booking_type.assignment_type == AssignmentType.SPECIFIC and booking_type.specific_host_id:
        result = await session.execute(
            select(Host).where(Host.id == booking_type.specific_host_id, Host.is_active.is_(True))
        )
        return list(result.scalars().all())

    result = await session.execute(
        select(Host)
        .join(BookingTypeHost, BookingTypeHost.host_id == Host.id)
        .where(BookingTypeHost.booking_type_id == booking_type.id, Host.is_active.is_(True))
        .order_by(BookingTypeHost.priority, Host.id)
    )
    hosts = list(result.scalars().all())
    if hosts:
        return hosts

    # No explicit assignment: every active host of the agency
    result = await session.execute(
        select(Host)
        .where(Host.agency_id == booking_type.agency_id, Host.is_active.is_(True))
        .order_by(Host.id)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Per-host free slots
# ---------------------------------------------------------------------------


def _horizon(booking_type: BookingType, now: datetime) -> datetime | None:
    if booking_type.max_future_days is None:
        return None
    return as_utc(now) + timedelta(days=booking_type.max_future_days)


async def free_slots_for_host(
    session: AsyncSession,
    booking_type: BookingType,
    host: Host,
    start: date,
    end: date,
    now: datetime,
) -> dict[date, list[Interval]]:
    """Free slots of one host for each owner-local date in [start, end]."""
    _, open_by_day = await resolve_open_intervals(session, host, start, end)
    all_intervals = [i for intervals in open_by_day.values() for i in intervals]
    if not all_intervals:
        return {day: [] for day in open_by_day}

    window_start = min(i.start for i in all_intervals) - timedelta(minutes=booking_type.buffer_after_minutes)
    window_end = max(i.end for i in all_intervals) + timedelta(minutes=booking_type.buffer_before_minutes)
    busy = busy_intervals(
        await list_non_terminal_appointments(session, [host.id], window_start, window_end)
    )
    horizon = _horizon(booking_type, now)

    free: dict[date, list[Interval]] = {}
    for day, intervals in open_by_day.items():
        candidates = generate_slots(
            intervals,
            booking_type.duration_minutes,
            now=now,
            buffer_after_minutes=booking_type.buffer_after_minutes,
            lead_time_minutes=booking_type.min_notice_minutes,
            horizon=horizon,
        )
        free[day] = filter_conflicts(
            candidates,
            busy,
            buffer_before_minutes=booking_type.buffer_before_minutes,
            buffer_after_minutes=booking_type.buffer_after_minutes,
        )
    logger.debug("Host %s: free slots on %d day(s) for %s", host.id, sum(1 for v in free.values() if v), booking_type.slug)
    return free


def _merge_host_slots(per_host: dict[int, list[Interval]]) -> list[AvailableSlot]:
    merged: dict[datetime, AvailableSlot] = {}
    for host_id, slots in per_host.items():
        for slot in slots:
            entry = merged.setdefault(slot.start, AvailableSlot(start=slot.start, end=slot.end))
            entry.host_ids.append(host_id)
    return [merged[key] for key in sorted(merged)]


# ---------------------------------------------------------------------------
# Public queries
# ---------------------------------------------------------------------------


async def get_available_slots(
    session: AsyncSession,
    slug: str,
    day: date,
    *,
    host_slug: str | None = None,
    now: datetime | None = None,
) -> list[AvailableSlot]:
    """Free slots on `day` (a date in each host's own timezone) for a booking type."""
    now = now or _utc_now()
    booking_type = await get_active_booking_type(session, slug)
    hosts = await candidate_hosts(session, booking_type, host_slug)
    per_host: dict[int, list[Interval]] = {}
    for host in hosts:
        by_day = await free_slots_for_host(session, booking_type, host, day, day, now)
        per_host[host.id] = by_day.get(day, [])
    return _merge_host_slots(per_host)


def parse_year_month(year_month: str) -> tuple[date, date]:
    match = _YEAR_MONTH.match(year_month or "")
    if not match:
        raise ValidationError(f"Invalid month {year_month!r}, expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month {year_month!r}, expected YYYY-MM")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


async def get_available_days(
    session: AsyncSession,
    slug: str,
    year_month: str,
    *,
    host_slug: str | None = None,
    now: datetime | None = None,
) -> list[date]:
    """Dates of the month with at least one free slot for any candidate host."""
    now = now or _utc_now()
    first, last = parse_year_month(year_month)
    booking_type = await get_active_booking_type(session, slug)
    hosts = await candidate_hosts(session, booking_type, host_slug)
    days: set[date] = set()
    for host in hosts:
        by_day = await free_slots_for_host(session, booking_type, host, first, last, now)
        days.update(day for day, slots in by_day.items() if slots)
    return sorted(days)


async def is_slot_open(
    session: AsyncSession,
    booking_type: BookingType,
    host: Host,
    start: datetime,
    now: datetime,
) -> bool:
    """True when `start` is one of the host's generated, still-free slots."""
    schedule = await get_weekly_schedule(session, host)
    day = local_date(start, schedule.timezone)
    free = await free_slots_for_host(session, booking_type, host, day, day, now)
    return any(slot.start == as_utc(start) for slot in free.get(day, []))


async def booking_timezone(session: AsyncSession, booking_type: BookingType, hosts: list[Host]) -> str:
    """Zone used to present a booking type's slots: the first candidate host's schedule zone."""
    if hosts:
        return (await get_weekly_schedule(session, hosts[0])).timezone
    schedule = await get_agency_schedule(session, booking_type.agency_id)
    if schedule is None:
        raise ConfigurationError(f"No availability configured for booking type {booking_type.slug!r}")
    return schedule.timezone
