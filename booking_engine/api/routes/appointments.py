import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps import get_current_host, get_session
from booking_engine.api.schemas.booking import RescheduleRequest, StatusUpdateRequest
from booking_engine.models.appointment import Actor, AppointmentPublic, AppointmentStatus
from booking_engine.models.host import Host
from booking_engine.services.appointment_service import list_appointments, update_appointment_status
from booking_engine.services.booking_service import reschedule_booking

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("", response_model=list[AppointmentPublic])
async def list_agency_appointments(
    host_id: int | None = Query(None),
    status: AppointmentStatus | None = Query(None),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> list[AppointmentPublic]:
    """Appointments of the caller's agency, ordered by start time."""
    appointments = await list_appointments(
        session,
        current_host.agency_id,
        host_id=host_id,
        status=status,
        from_date=from_date,
        to_date=to_date,
    )
    return [AppointmentPublic.model_validate(a, from_attributes=True) for a in appointments]


@router.patch("/{appointment_id}/status", response_model=AppointmentPublic)
async def change_status(
    appointment_id: int,
    body: StatusUpdateRequest,
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> AppointmentPublic:
    appointment = await update_appointment_status(
        session,
        appointment_id,
        body.status,
        Actor.HOST,
        body.reason,
        agency_id=current_host.agency_id,
    )
    return AppointmentPublic.model_validate(appointment, from_attributes=True)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentPublic)
async def reschedule(
    appointment_id: int,
    body: RescheduleRequest,
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> AppointmentPublic:
    """Move the appointment to a new free slot of the same host; returns the new appointment."""
    appointment = await reschedule_booking(
        session,
        appointment_id,
        body.start_time,
        actor=Actor.HOST,
        agency_id=current_host.agency_id,
    )
    return AppointmentPublic.model_validate(appointment, from_attributes=True)
