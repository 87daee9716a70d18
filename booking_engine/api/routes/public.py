"""Guest-facing booking endpoints (no authentication).

Links come in two shapes: /public/{type_slug} lets the engine assign a host,
/public/{host_slug}/{type_slug} books a specific host.
"""
import logging
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps import get_session
from booking_engine.api.schemas.booking import (
    AvailableDaysResponse,
    AvailableSlotsResponse,
    BookAppointmentRequest,
    BookingConfirmation,
    BookingTypeInfoResponse,
    SlotInfo,
)
from booking_engine.core.security import create_manage_token
from booking_engine.models.appointment import AppointmentPublic
from booking_engine.models.booking_type import BookingTypePublic
from booking_engine.models.host import HostPublic
from booking_engine.services import events
from booking_engine.services.booking_service import create_booking
from booking_engine.services.slot_service import (
    booking_timezone,
    candidate_hosts,
    get_active_booking_type,
    get_available_days,
    get_available_slots,
)
from booking_engine.services.store import get_host, get_weekly_schedule
from booking_engine.services.timezone_service import format_wall

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/public", tags=["public"])


async def _booking_info(
    session: AsyncSession,
    slug: str,
    host_slug: str | None,
    date_param: date | None,
    month: str | None,
) -> BookingTypeInfoResponse:
    booking_type = await get_active_booking_type(session, slug)
    hosts = await candidate_hosts(session, booking_type, host_slug)
    tz_name = await booking_timezone(session, booking_type, hosts)
    base = {
        "booking_type": BookingTypePublic.model_validate(booking_type, from_attributes=True),
        "timezone": tz_name,
        "hosts": [HostPublic(id=h.id, name=h.name) for h in hosts],
        "host": HostPublic(id=hosts[0].id, name=hosts[0].name) if host_slug else None,
    }

    if date_param is not None:
        slots = await get_available_slots(session, slug, date_param, host_slug=host_slug)
        return AvailableSlotsResponse(
            **base,
            date=date_param.isoformat(),
            slots=[
                SlotInfo(
                    start_utc=s.start,
                    end_utc=s.end,
                    start_local=format_wall(s.start, tz_name),
                    end_local=format_wall(s.end, tz_name),
                    host_ids=s.host_ids,
                )
                for s in slots
            ],
        )

    if month is not None:
        days = await get_available_days(session, slug, month, host_slug=host_slug)
        return AvailableDaysResponse(**base, month=month, available_days=days)

    return BookingTypeInfoResponse(**base)


async def _book(
    session: AsyncSession,
    background_tasks: BackgroundTasks,
    slug: str,
    host_slug: str | None,
    body: BookAppointmentRequest,
) -> BookingConfirmation:
    guest = {
        "name": body.guest_name,
        "email": body.guest_email,
        "phone": body.guest_phone,
        "company": body.guest_company,
        "notes": body.notes,
        "timezone": body.guest_timezone,
    }
    appointment = await create_booking(
        session,
        slug,
        body.start_time,
        guest,
        host_slug=host_slug,
        on_created=lambda event: background_tasks.add_task(events.dispatch, event),
    )
    # Listeners run as background tasks, after this commit
    await session.commit()
    host = await get_host(session, appointment.host_id)
    tz_name = (await get_weekly_schedule(session, host)).timezone
    return BookingConfirmation(
        appointment=AppointmentPublic.model_validate(appointment, from_attributes=True),
        timezone=tz_name,
        start_local=format_wall(appointment.start_time, tz_name),
        end_local=format_wall(appointment.end_time, tz_name),
        manage_token=create_manage_token(appointment.id),
    )


@router.get("/{slug}", response_model=AvailableSlotsResponse | AvailableDaysResponse | BookingTypeInfoResponse)
async def booking_info(
    slug: str,
    date_param: date | None = Query(None, alias="date"),
    month: str | None = Query(None, description="YYYY-MM"),
    session: AsyncSession = Depends(get_session),
) -> BookingTypeInfoResponse:
    """Booking type details; with ?month= the days that have free slots, with ?date= the free slots."""
    return await _booking_info(session, slug, None, date_param, month)


@router.get(
    "/{host_slug}/{slug}",
    response_model=AvailableSlotsResponse | AvailableDaysResponse | BookingTypeInfoResponse,
)
async def host_booking_info(
    host_slug: str,
    slug: str,
    date_param: date | None = Query(None, alias="date"),
    month: str | None = Query(None, description="YYYY-MM"),
    session: AsyncSession = Depends(get_session),
) -> BookingTypeInfoResponse:
    return await _booking_info(session, slug, host_slug, date_param, month)


@router.post("/{slug}", response_model=BookingConfirmation, status_code=status.HTTP_201_CREATED)
async def book(
    slug: str,
    body: BookAppointmentRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
) -> BookingConfirmation:
    return await _book(session, background_tasks, slug, None, body)


@router.post("/{host_slug}/{slug}", response_model=BookingConfirmation, status_code=status.HTTP_201_CREATED)
async def book_with_host(
    host_slug: str,
    slug: str,
    body: BookAppointmentRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
) -> BookingConfirmation:
    return await _book(session, background_tasks, slug, host_slug, body)
