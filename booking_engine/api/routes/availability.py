"""Agency office hours, per-host overrides and date exceptions."""
import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps import get_current_host, get_session
from booking_engine.core.errors import NotFoundError
from booking_engine.models.host import Host
from booking_engine.models.schedule import (
    AvailabilityPublic,
    AvailabilitySchedule,
    AvailabilityUpdate,
    DateExceptionPublic,
    DateExceptionUpdate,
    TimeRange,
)
from booking_engine.services.schedule_service import (
    delete_date_exception,
    describe_schedule,
    get_or_create_agency_schedule,
    remove_host_schedule_override,
    replace_weekly_schedule,
    set_host_schedule_override,
    upsert_date_exception,
)
from booking_engine.services.store import get_host_schedule

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/availability", tags=["availability"])

Scope = Literal["agency", "me"]


async def _schedule_for_scope(session: AsyncSession, host: Host, scope: Scope) -> AvailabilitySchedule:
    if scope == "me":
        schedule = await get_host_schedule(session, host.id)
        if schedule is None:
            raise NotFoundError("Host has no schedule override")
        return schedule
    return await get_or_create_agency_schedule(session, host.agency_id)


@router.get("", response_model=AvailabilityPublic)
async def get_agency_availability(
    from_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> AvailabilityPublic:
    schedule = await get_or_create_agency_schedule(session, current_host.agency_id)
    return await describe_schedule(session, schedule, from_date)


@router.put("", response_model=AvailabilityPublic)
async def update_agency_availability(
    body: AvailabilityUpdate,
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> AvailabilityPublic:
    """Replace the agency's timezone and weekly hours."""
    schedule = await get_or_create_agency_schedule(session, current_host.agency_id)
    schedule = await replace_weekly_schedule(session, schedule, body.timezone, body.weekly_schedule)
    return await describe_schedule(session, schedule)


@router.get("/me", response_model=AvailabilityPublic)
async def get_my_availability(
    from_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> AvailabilityPublic:
    """The schedule that applies to the caller: their override, else the agency's."""
    schedule = await get_host_schedule(session, current_host.id)
    if schedule is None:
        schedule = await get_or_create_agency_schedule(session, current_host.agency_id)
    return await describe_schedule(session, schedule, from_date)


@router.put("/me", response_model=AvailabilityPublic)
async def update_my_availability(
    body: AvailabilityUpdate,
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> AvailabilityPublic:
    schedule = await set_host_schedule_override(session, current_host, body.timezone, body.weekly_schedule)
    return await describe_schedule(session, schedule)


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_my_availability(
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> None:
    await remove_host_schedule_override(session, current_host)


@router.put("/exceptions/{day}", response_model=DateExceptionPublic)
async def set_date_exception(
    day: date,
    body: DateExceptionUpdate,
    scope: Scope = Query("agency"),
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> DateExceptionPublic:
    """Close a date, or replace its hours with the given ranges."""
    schedule = await _schedule_for_scope(session, current_host, scope)
    exception = await upsert_date_exception(session, schedule, day, body)
    return DateExceptionPublic(
        date=exception.date,
        is_closed=exception.is_closed,
        ranges=[TimeRange.model_validate(r) for r in exception.ranges],
        reason=exception.reason,
    )


@router.delete("/exceptions/{day}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_date_exception(
    day: date,
    scope: Scope = Query("agency"),
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> None:
    schedule = await _schedule_for_scope(session, current_host, scope)
    await delete_date_exception(session, schedule, day)
