import logging
import re

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import settings
from booking_engine.core.errors import ConfigurationError, NotFoundError
from booking_engine.models.appointment import Appointment
from booking_engine.models.booking_type import (
    AssignmentType,
    BookingType,
    BookingTypeCreate,
    BookingTypeHost,
    BookingTypeUpdate,
)
from booking_engine.models.host import Host
from booking_engine.services.store import get_booking_type

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "booking"


async def unique_slug(session: AsyncSession, name: str) -> str:
    base = slugify(name)
    slug = base
    counter = 1
    while await get_booking_type(session, slug=slug) is not None:
        slug = f"{base}-{counter}"
        counter += 1
    return slug


async def _check_hosts(session: AsyncSession, agency_id: int, host_ids: list[int]) -> None:
    if not host_ids:
        return
    result = await session.execute(
        select(func.count(Host.id)).where(Host.id.in_(host_ids), Host.agency_id == agency_id)
    )
    if result.scalar_one() != len(set(host_ids)):
        raise ConfigurationError("Assigned hosts must belong to the agency")


async def create_booking_type(session: AsyncSession, agency_id: int, data: BookingTypeCreate) -> BookingType:
    if data.assignment_type == AssignmentType.SPECIFIC and data.specific_host_id is None:
        raise ConfigurationError("A specific host is required for SPECIFIC assignment")
    await _check_hosts(
        session, agency_id, data.assigned_host_ids + ([data.specific_host_id] if data.specific_host_id else [])
    )
    booking_type = BookingType(
        agency_id=agency_id,
        name=data.name,
        slug=await unique_slug(session, data.name),
        description=data.description,
        duration_minutes=data.duration_minutes or settings.default_duration_minutes,
        buffer_before_minutes=(
            data.buffer_before_minutes
            if data.buffer_before_minutes is not None
            else settings.default_buffer_before_minutes
        ),
        buffer_after_minutes=(
            data.buffer_after_minutes
            if data.buffer_after_minutes is not None
            else settings.default_buffer_after_minutes
        ),
        min_notice_minutes=(
            data.min_notice_minutes
            if data.min_notice_minutes is not None
            else settings.default_min_notice_minutes
        ),
        max_future_days=(
            data.max_future_days if data.max_future_days is not None else settings.default_max_future_days
        ),
        is_active=data.is_active,
        auto_confirm=data.auto_confirm,
        assignment_type=data.assignment_type.value,
        specific_host_id=data.specific_host_id,
    )
    session.add(booking_type)
    await session.flush()
    for priority, host_id in enumerate(data.assigned_host_ids):
        session.add(BookingTypeHost(booking_type_id=booking_type.id, host_id=host_id, priority=priority))
    await session.flush()
    await session.refresh(booking_type)
    logger.info("Created booking type %s (%s) for agency %s", booking_type.id, booking_type.slug, agency_id)
    return booking_type


async def get_agency_booking_type(session: AsyncSession, agency_id: int, booking_type_id: int) -> BookingType:
    booking_type = await get_booking_type(session, booking_type_id=booking_type_id)
    if booking_type is None or booking_type.agency_id != agency_id:
        raise NotFoundError("Booking type not found")
    return booking_type


async def list_booking_types(session: AsyncSession, agency_id: int) -> list[BookingType]:
    result = await session.execute(
        select(BookingType).where(BookingType.agency_id == agency_id).order_by(BookingType.name)
    )
    return list(result.scalars().all())


async def update_booking_type(
    session: AsyncSession, agency_id: int, booking_type_id: int, data: BookingTypeUpdate
) -> BookingType:
    booking_type = await get_agency_booking_type(session, agency_id, booking_type_id)
    changes = data.model_dump(exclude_unset=True)
    assignment_type = changes.pop("assignment_type", None)
    host_ids = changes.pop("assigned_host_ids", None)
    check_ids = list(host_ids or [])
    if "specific_host_id" in changes:
        booking_type.specific_host_id = changes.pop("specific_host_id")
        if booking_type.specific_host_id is not None:
            check_ids.append(booking_type.specific_host_id)
    if assignment_type is not None:
        booking_type.assignment_type = AssignmentType(assignment_type).value
    if booking_type.assignment_type == AssignmentType.SPECIFIC.value and booking_type.specific_host_id is None:
        raise ConfigurationError("A specific host is required for SPECIFIC assignment")
    await _check_hosts(session, agency_id, check_ids)

    for key, value in changes.items():
        if value is None and key not in ("description", "max_future_days"):
            continue
        setattr(booking_type, key, value)
    session.add(booking_type)

    if host_ids is not None:
        await session.execute(delete(BookingTypeHost).where(BookingTypeHost.booking_type_id == booking_type.id))
        # list order is the new assignment priority
        for priority, host_id in enumerate(dict.fromkeys(host_ids)):
            session.add(BookingTypeHost(booking_type_id=booking_type.id, host_id=host_id, priority=priority))
        logger.info("Booking type %s now assigned to hosts %s", booking_type.id, list(dict.fromkeys(host_ids)))
    await session.flush()
    return booking_type


async def delete_or_deactivate_booking_type(
    session: AsyncSession, agency_id: int, booking_type_id: int
) -> bool:
    """Delete the booking type, or deactivate it when appointments reference it.

    Returns True if the row was deleted, False if it was only deactivated.
    """
    booking_type = await get_agency_booking_type(session, agency_id, booking_type_id)
    result = await session.execute(
        select(func.count(Appointment.id)).where(Appointment.booking_type_id == booking_type.id)
    )
    if result.scalar_one() > 0:
        booking_type.is_active = False
        session.add(booking_type)
        await session.flush()
        logger.info("Deactivated booking type %s (has appointments)", booking_type.id)
        return False
    await session.execute(delete(BookingTypeHost).where(BookingTypeHost.booking_type_id == booking_type.id))
    await session.delete(booking_type)
    await session.flush()
    logger.info("Deleted booking type %s", booking_type_id)
    return True
