"""Turns a guest's slot choice into an appointment.

All writes happen in the caller's session/transaction; a failure at any step
raises before anything is committed, so no half-created appointment survives.
"""
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import (
    ConfigurationError,
    InvalidTransitionError,
    SlotConflictError,
    SlotUnavailableError,
    ValidationError,
)
from booking_engine.models.appointment import (
    NON_TERMINAL_STATUSES,
    Actor,
    Appointment,
    AppointmentStatus,
    GuestDetails,
)
from booking_engine.models.booking_type import BookingType
from booking_engine.models.host import Host
from booking_engine.services.appointment_service import apply_transition, get_appointment
from booking_engine.services.events import BookingCreated
from booking_engine.services.slot_service import candidate_hosts, get_active_booking_type, is_slot_open
from booking_engine.services.store import get_booking_type, get_host, insert_appointment_if_free
from booking_engine.services.timezone_service import as_utc, get_zone, to_naive_utc

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def validate_guest(guest: GuestDetails | dict[str, Any]) -> GuestDetails:
    if isinstance(guest, GuestDetails):
        validated = guest
    else:
        try:
            validated = GuestDetails.model_validate(guest)
        except PydanticValidationError as e:
            err = e.errors()[0]
            field = ".".join(str(p) for p in err.get("loc", ())) or "guest"
            raise ValidationError(f"{field}: {err['msg']}") from e
    if validated.timezone:
        try:
            get_zone(validated.timezone)
        except ConfigurationError as e:
            raise ValidationError(f"timezone: {e.message}") from e
    return validated


async def _upcoming_counts(session: AsyncSession, host_ids: Sequence[int], now: datetime) -> dict[int, int]:
    result = await session.execute(
        select(Appointment.host_id, func.count(Appointment.id))
        .where(
            Appointment.host_id.in_(list(host_ids)),
            Appointment.status.in_(NON_TERMINAL_STATUSES),
            Appointment.start_time >= to_naive_utc(now),
        )
        .group_by(Appointment.host_id)
    )
    return {host_id: count for host_id, count in result.all()}


async def rank_hosts(
    session: AsyncSession,
    booking_type: BookingType,
    hosts: Sequence[Host],
    start: datetime,
    now: datetime,
) -> list[Host]:
    """Hosts free at `start`, fewest upcoming bookings first; assignment priority breaks ties."""
    free = [host for host in hosts if await is_slot_open(session, booking_type, host, start, now)]
    if not free:
        raise SlotUnavailableError()
    if len(free) == 1:
        return free
    counts = await _upcoming_counts(session, [h.id for h in free], now)
    # sorted() is stable, so equal counts keep priority order
    return sorted(free, key=lambda h: counts.get(h.id, 0))


async def choose_host(
    session: AsyncSession,
    booking_type: BookingType,
    hosts: Sequence[Host],
    start: datetime,
    now: datetime,
) -> Host:
    """Pick the host for a slot: among hosts free at `start`, the one with the fewest upcoming bookings."""
    return (await rank_hosts(session, booking_type, hosts, start, now))[0]


async def _insert(
    session: AsyncSession, booking_type: BookingType, appointment: Appointment
) -> Appointment:
    appointment = await insert_appointment_if_free(
        session,
        appointment,
        buffer_before_minutes=booking_type.buffer_before_minutes,
        buffer_after_minutes=booking_type.buffer_after_minutes,
    )
    if booking_type.auto_confirm:
        apply_transition(appointment, AppointmentStatus.CONFIRMED, Actor.SYSTEM)
        session.add(appointment)
        await session.flush()
    return appointment


async def create_booking(
    session: AsyncSession,
    slug: str,
    start_time: datetime,
    guest: GuestDetails | dict[str, Any],
    *,
    host_slug: str | None = None,
    now: datetime | None = None,
    on_created: Callable[[BookingCreated], None] | None = None,
) -> Appointment:
    """Book `start_time` for a guest.

    Raises ConfigurationError (type inactive/missing, no host), ValidationError
    (guest fields) or SlotConflictError (slot no longer free; re-query and pick
    again). `on_created` receives the BookingCreated event; the caller decides
    when to deliver it (after commit).
    """
    now = now or _utc_now()
    booking_type = await get_active_booking_type(session, slug)
    guest = validate_guest(guest)

    start = as_utc(start_time)
    end = start + timedelta(minutes=booking_type.duration_minutes)

    hosts = await candidate_hosts(session, booking_type, host_slug)
    if not hosts:
        raise ConfigurationError(f"No available host for booking type {slug!r}")
    ranked = await rank_hosts(session, booking_type, hosts, start, now)

    # Another booker may take a host between ranking and insert; the guest
    # keeps their time and the next free host gets the booking.
    for position, host in enumerate(ranked):
        appointment = Appointment(
            agency_id=booking_type.agency_id,
            host_id=host.id,
            booking_type_id=booking_type.id,
            start_time=start,
            end_time=end,
            status=AppointmentStatus.SCHEDULED.value,
            guest_name=guest.name,
            guest_email=str(guest.email),
            guest_phone=guest.phone,
            guest_company=guest.company,
            guest_notes=guest.notes,
            guest_timezone=guest.timezone,
        )
        try:
            appointment = await _insert(session, booking_type, appointment)
            break
        except SlotConflictError:
            # A row rejected at flush stays pending and the transaction must be rolled back
            if appointment in session or position == len(ranked) - 1:
                raise
            logger.info("Host %s was taken at %s, trying the next free host", host.id, start)
    logger.info(
        "Booked %s for host %s at %s (appointment %s, %s)",
        booking_type.slug, host.id, appointment.start_time, appointment.id, appointment.status,
    )

    if on_created is not None:
        on_created(BookingCreated(appointment=appointment, host=host, guest=guest, booking_type=booking_type))
    return appointment


async def reschedule_booking(
    session: AsyncSession,
    appointment_id: int,
    new_start: datetime,
    *,
    actor: Actor | str,
    agency_id: int | None = None,
    now: datetime | None = None,
) -> Appointment:
    """Move a live appointment to a new start with the same host.

    The old row is kept as RESCHEDULED and points at the new one.
    """
    now = now or _utc_now()
    old = await get_appointment(session, appointment_id, agency_id)
    if old.status not in NON_TERMINAL_STATUSES:
        raise InvalidTransitionError(f"Cannot reschedule a {old.status} appointment")
    booking_type = await get_booking_type(session, booking_type_id=old.booking_type_id)
    host = await get_host(session, old.host_id)
    if booking_type is None or host is None:
        raise ConfigurationError("Appointment references a missing booking type or host")

    # Release the old interval first so the new slot may overlap it
    apply_transition(old, AppointmentStatus.RESCHEDULED, actor)
    session.add(old)
    await session.flush()

    start = as_utc(new_start)
    if not await is_slot_open(session, booking_type, host, start, now):
        raise SlotUnavailableError()

    new = Appointment(
        agency_id=old.agency_id,
        host_id=old.host_id,
        booking_type_id=old.booking_type_id,
        start_time=start,
        end_time=start + timedelta(minutes=booking_type.duration_minutes),
        status=AppointmentStatus.SCHEDULED.value,
        guest_name=old.guest_name,
        guest_email=old.guest_email,
        guest_phone=old.guest_phone,
        guest_company=old.guest_company,
        guest_notes=old.guest_notes,
        guest_timezone=old.guest_timezone,
    )
    new = await _insert(session, booking_type, new)
    old.rescheduled_to_id = new.id
    session.add(old)
    await session.flush()
    logger.info("Appointment %s rescheduled to %s (%s)", old.id, new.id, new.start_time)
    return new
