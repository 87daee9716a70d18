"""Storage primitives the scheduling engine reads and writes through."""
import logging
from collections.abc import Sequence
from datetime import date, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import ConfigurationError, SlotConflictError
from booking_engine.models.appointment import NON_TERMINAL_STATUSES, Appointment
from booking_engine.models.booking_type import BookingType
from booking_engine.models.host import Host
from booking_engine.models.schedule import AvailabilitySchedule, DateException
from booking_engine.services.timezone_service import to_naive_utc

logger = logging.getLogger(__name__)

# Name of the PostgreSQL exclusion constraint created by the initial migration
OVERLAP_CONSTRAINT = "appointments_no_overlap"


async def get_host(session: AsyncSession, host_id: int) -> Host | None:
    result = await session.execute(select(Host).where(Host.id == host_id))
    return result.scalar_one_or_none()


async def get_host_by_slug(session: AsyncSession, booking_slug: str) -> Host | None:
    result = await session.execute(select(Host).where(Host.booking_slug == booking_slug))
    return result.scalar_one_or_none()


async def get_agency_schedule(session: AsyncSession, agency_id: int) -> AvailabilitySchedule | None:
    result = await session.execute(
        select(AvailabilitySchedule).where(AvailabilitySchedule.agency_id == agency_id)
    )
    return result.scalar_one_or_none()


async def get_host_schedule(session: AsyncSession, host_id: int) -> AvailabilitySchedule | None:
    result = await session.execute(
        select(AvailabilitySchedule).where(AvailabilitySchedule.host_id == host_id)
    )
    return result.scalar_one_or_none()


async def get_weekly_schedule(session: AsyncSession, host: Host) -> AvailabilitySchedule:
    """Schedule governing a host: their own override, else their agency's."""
    schedule = await get_host_schedule(session, host.id)
    if schedule is None:
        schedule = await get_agency_schedule(session, host.agency_id)
    if schedule is None:
        raise ConfigurationError(f"No availability configured for host {host.id}")
    return schedule


async def get_date_exceptions(
    session: AsyncSession, schedule_id: int, start: date, end: date
) -> dict[date, DateException]:
    result = await session.execute(
        select(DateException).where(
            DateException.schedule_id == schedule_id,
            DateException.date >= start,
            DateException.date <= end,
        )
    )
    return {exc.date: exc for exc in result.scalars().all()}


async def get_booking_type(
    session: AsyncSession, *, booking_type_id: int | None = None, slug: str | None = None
) -> BookingType | None:
    q = select(BookingType)
    if booking_type_id is not None:
        q = q.where(BookingType.id == booking_type_id)
    elif slug is not None:
        q = q.where(BookingType.slug == slug)
    else:
        raise ValueError("booking_type_id or slug is required")
    result = await session.execute(q)
    return result.scalar_one_or_none()


async def list_non_terminal_appointments(
    session: AsyncSession, host_ids: Sequence[int], start: datetime, end: datetime
) -> list[Appointment]:
    """Scheduled/confirmed appointments of the hosts overlapping [start, end)."""
    if not host_ids:
        return []
    result = await session.execute(
        select(Appointment)
        .where(
            Appointment.host_id.in_(list(host_ids)),
            Appointment.status.in_(NON_TERMINAL_STATUSES),
            Appointment.start_time < to_naive_utc(end),
            Appointment.end_time > to_naive_utc(start),
        )
        .order_by(Appointment.start_time)
    )
    return list(result.scalars().all())


async def insert_appointment_if_free(
    session: AsyncSession,
    appointment: Appointment,
    *,
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
) -> Appointment:
    """Insert the appointment unless it overlaps a live appointment of the same host.

    Runs inside the caller's transaction. Bumping the host row first takes a
    row lock (PostgreSQL) or the database write lock (SQLite), so a second
    booker for the same host waits here until the first one commits and then
    sees its row. On PostgreSQL the exclusion constraint backs this up.
    """
    locked = await session.execute(
        update(Host)
        .where(Host.id == appointment.host_id)
        .values(booking_version=Host.booking_version + 1)
    )
    if locked.rowcount == 0:
        raise ConfigurationError(f"Host {appointment.host_id} does not exist")

    start = to_naive_utc(appointment.start_time)
    end = to_naive_utc(appointment.end_time)
    # Existing appointments are padded by the buffers: [s - before, e + after)
    result = await session.execute(
        select(Appointment.id)
        .where(
            Appointment.host_id == appointment.host_id,
            Appointment.status.in_(NON_TERMINAL_STATUSES),
            Appointment.start_time < end + timedelta(minutes=buffer_before_minutes),
            Appointment.end_time > start - timedelta(minutes=buffer_after_minutes),
        )
        .limit(1)
    )
    existing_id = result.scalar_one_or_none()
    if existing_id is not None:
        logger.info(
            "Slot conflict for host %s at %s: overlaps appointment %s",
            appointment.host_id, start, existing_id,
        )
        raise SlotConflictError()

    appointment.start_time = start
    appointment.end_time = end
    session.add(appointment)
    try:
        await session.flush()
    except IntegrityError as e:
        if OVERLAP_CONSTRAINT in str(e.orig):
            raise SlotConflictError() from e
        raise
    await session.refresh(appointment)
    return appointment
