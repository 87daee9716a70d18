import logging
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from booking_engine.models.appointment import Actor, Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

S = AppointmentStatus
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    S.SCHEDULED.value: {S.CONFIRMED.value, S.CANCELLED.value, S.COMPLETED.value, S.NO_SHOW.value, S.RESCHEDULED.value},
    S.CONFIRMED.value: {S.CANCELLED.value, S.COMPLETED.value, S.NO_SHOW.value, S.RESCHEDULED.value},
}


def _utc_naive_now() -> datetime:
    """Naive UTC for comparison with TIMESTAMP WITHOUT TIME ZONE."""
    return datetime.now(UTC).replace(tzinfo=None)


def apply_transition(
    appointment: Appointment,
    status: AppointmentStatus | str,
    actor: Actor | str,
    reason: str | None = None,
) -> Appointment:
    """Move an appointment to `status` if the lifecycle allows it."""
    target = AppointmentStatus(status).value
    current = appointment.status
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot change appointment from {current} to {target}")
    now = _utc_naive_now()
    appointment.status = target
    appointment.updated_at = now
    if target == S.CANCELLED.value:
        appointment.cancelled_by = Actor(actor).value
        appointment.cancellation_reason = reason
        appointment.cancelled_at = now
    return appointment


async def get_appointment(
    session: AsyncSession, appointment_id: int, agency_id: int | None = None
) -> Appointment:
    q = select(Appointment).where(Appointment.id == appointment_id)
    if agency_id is not None:
        q = q.where(Appointment.agency_id == agency_id)
    result = await session.execute(q)
    appointment = result.scalar_one_or_none()
    if appointment is None:
        raise NotFoundError("Appointment not found")
    return appointment


async def update_appointment_status(
    session: AsyncSession,
    appointment_id: int,
    status: AppointmentStatus | str,
    actor: Actor | str,
    reason: str | None = None,
    *,
    agency_id: int | None = None,
) -> Appointment:
    """Host/system status change. Rescheduling goes through booking_service.reschedule_booking."""
    if AppointmentStatus(status) == S.RESCHEDULED:
        raise InvalidTransitionError("Use the reschedule operation to move an appointment")
    appointment = await get_appointment(session, appointment_id, agency_id)
    previous = appointment.status
    apply_transition(appointment, status, actor, reason)
    session.add(appointment)
    await session.flush()
    logger.info(
        "Appointment %s: %s -> %s by %s", appointment.id, previous, appointment.status, Actor(actor).value
    )
    return appointment


async def cancel_by_guest(
    session: AsyncSession, appointment_id: int, reason: str | None = None
) -> Appointment:
    appointment = await get_appointment(session, appointment_id)
    if appointment.status == S.CANCELLED.value:
        raise ValidationError("Appointment already cancelled")
    if appointment.start_time < _utc_naive_now():
        raise ValidationError("Cannot cancel past appointments")
    return await update_appointment_status(
        session, appointment_id, S.CANCELLED, Actor.GUEST, reason
    )


async def list_appointments(
    session: AsyncSession,
    agency_id: int,
    *,
    host_id: int | None = None,
    status: AppointmentStatus | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[Appointment]:
    q = select(Appointment).where(Appointment.agency_id == agency_id).order_by(Appointment.start_time)
    if host_id is not None:
        q = q.where(Appointment.host_id == host_id)
    if status is not None:
        q = q.where(Appointment.status == AppointmentStatus(status).value)
    if from_date:
        q = q.where(Appointment.start_time >= datetime(from_date.year, from_date.month, from_date.day))
    if to_date:
        end = datetime(to_date.year, to_date.month, to_date.day) + timedelta(days=1)
        q = q.where(Appointment.start_time < end)
    result = await session.execute(q)
    return list(result.scalars().all())
