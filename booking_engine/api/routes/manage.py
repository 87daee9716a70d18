"""Guest self-service: view or cancel an appointment with the link from the confirmation."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps import get_session
from booking_engine.api.schemas.booking import CancelRequest, GuestAppointmentView
from booking_engine.core.security import verify_manage_token
from booking_engine.models.appointment import Appointment
from booking_engine.models.host import HostPublic
from booking_engine.services.appointment_service import cancel_by_guest, get_appointment
from booking_engine.services.store import get_booking_type, get_host

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/manage", tags=["manage"])


def _check_token(appointment_id: int, token: str) -> None:
    if not verify_manage_token(token, appointment_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired link")


async def _to_guest_view(session: AsyncSession, appointment: Appointment) -> GuestAppointmentView:
    booking_type = await get_booking_type(session, booking_type_id=appointment.booking_type_id)
    host = await get_host(session, appointment.host_id)
    return GuestAppointmentView(
        id=appointment.id,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        status=appointment.status,
        booking_type=booking_type.name if booking_type else "",
        host=HostPublic(id=host.id, name=host.name) if host else None,
        guest_name=appointment.guest_name,
        guest_email=appointment.guest_email,
    )


@router.get("/{appointment_id}", response_model=GuestAppointmentView)
async def view_appointment(
    appointment_id: int,
    token: str = Query(...),
    session: AsyncSession = Depends(get_session),
) -> GuestAppointmentView:
    _check_token(appointment_id, token)
    appointment = await get_appointment(session, appointment_id)
    return await _to_guest_view(session, appointment)


@router.delete("/{appointment_id}", response_model=GuestAppointmentView)
async def cancel_appointment(
    appointment_id: int,
    token: str = Query(...),
    body: CancelRequest | None = None,
    session: AsyncSession = Depends(get_session),
) -> GuestAppointmentView:
    """Cancel by the guest. Past or already cancelled appointments are rejected."""
    _check_token(appointment_id, token)
    appointment = await cancel_by_guest(session, appointment_id, body.reason if body else None)
    return await _to_guest_view(session, appointment)
