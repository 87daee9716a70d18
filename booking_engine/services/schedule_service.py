import logging
from datetime import UTC, date, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import settings
from booking_engine.core.errors import NotFoundError
from booking_engine.models.host import Host
from booking_engine.models.schedule import (
    AvailabilityPublic,
    AvailabilitySchedule,
    DateException,
    DateExceptionPublic,
    DateExceptionUpdate,
    TimeRange,
    WeeklySchedule,
)
from booking_engine.services.store import get_agency_schedule, get_host_schedule
from booking_engine.services.timezone_service import get_zone

logger = logging.getLogger(__name__)


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


async def get_or_create_agency_schedule(session: AsyncSession, agency_id: int) -> AvailabilitySchedule:
    """Agency schedule, created with office-hour defaults on first access."""
    schedule = await get_agency_schedule(session, agency_id)
    if schedule is None:
        schedule = AvailabilitySchedule(
            agency_id=agency_id,
            timezone=settings.default_timezone,
            weekly_schedule=WeeklySchedule.default().model_dump(),
        )
        session.add(schedule)
        await session.flush()
        await session.refresh(schedule)
        logger.info("Created default availability for agency %s", agency_id)
    return schedule


async def replace_weekly_schedule(
    session: AsyncSession, schedule: AvailabilitySchedule, timezone: str, weekly: WeeklySchedule
) -> AvailabilitySchedule:
    """Replace hours and timezone wholesale. `weekly` is already validated by its model."""
    get_zone(timezone)
    schedule.timezone = timezone
    schedule.weekly_schedule = weekly.model_dump()
    schedule.updated_at = _utc_naive_now()
    session.add(schedule)
    await session.flush()
    logger.info("Replaced weekly schedule %s (timezone %s)", schedule.id, timezone)
    return schedule


async def set_host_schedule_override(
    session: AsyncSession, host: Host, timezone: str, weekly: WeeklySchedule
) -> AvailabilitySchedule:
    schedule = await get_host_schedule(session, host.id)
    if schedule is None:
        get_zone(timezone)
        schedule = AvailabilitySchedule(host_id=host.id, timezone=timezone, weekly_schedule={})
    return await replace_weekly_schedule(session, schedule, timezone, weekly)


async def list_date_exceptions(
    session: AsyncSession, schedule_id: int, from_date: date | None = None
) -> list[DateException]:
    q = select(DateException).where(DateException.schedule_id == schedule_id).order_by(DateException.date)
    if from_date is not None:
        q = q.where(DateException.date >= from_date)
    result = await session.execute(q)
    return list(result.scalars().all())


async def upsert_date_exception(
    session: AsyncSession, schedule: AvailabilitySchedule, day: date, data: DateExceptionUpdate
) -> DateException:
    result = await session.execute(
        select(DateException).where(DateException.schedule_id == schedule.id, DateException.date == day)
    )
    exception = result.scalar_one_or_none()
    if exception is None:
        exception = DateException(schedule_id=schedule.id, date=day)
    exception.is_closed = data.is_closed
    exception.ranges = [r.model_dump() for r in data.ranges]
    exception.reason = data.reason
    session.add(exception)
    await session.flush()
    logger.info(
        "Date exception %s on schedule %s: %s",
        day, schedule.id, "closed" if data.is_closed else f"{len(data.ranges)} range(s)",
    )
    return exception


async def delete_date_exception(session: AsyncSession, schedule: AvailabilitySchedule, day: date) -> None:
    result = await session.execute(
        select(DateException).where(DateException.schedule_id == schedule.id, DateException.date == day)
    )
    exception = result.scalar_one_or_none()
    if exception is None:
        raise NotFoundError("No exception on that date")
    await session.delete(exception)
    await session.flush()


async def describe_schedule(
    session: AsyncSession, schedule: AvailabilitySchedule, from_date: date | None = None
) -> AvailabilityPublic:
    exceptions = await list_date_exceptions(session, schedule.id, from_date)
    return AvailabilityPublic(
        owner="host" if schedule.host_id is not None else "agency",
        timezone=schedule.timezone,
        weekly_schedule=WeeklySchedule.model_validate(schedule.weekly_schedule),
        exceptions=[
            DateExceptionPublic(
                date=e.date,
                is_closed=e.is_closed,
                ranges=[TimeRange.model_validate(r) for r in e.ranges],
                reason=e.reason,
            )
            for e in exceptions
        ],
    )


async def remove_host_schedule_override(session: AsyncSession, host: Host) -> None:
    """Drop a host's own hours (and their date exceptions); the host falls back to the agency schedule."""
    schedule = await get_host_schedule(session, host.id)
    if schedule is None:
        raise NotFoundError("Host has no schedule override")
    await session.execute(delete(DateException).where(DateException.schedule_id == schedule.id))
    await session.delete(schedule)
    await session.flush()
    logger.info("Removed schedule override of host %s", host.id)
