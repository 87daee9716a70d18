import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps import get_current_host, get_session
from booking_engine.models.booking_type import BookingTypeCreate, BookingTypePublic, BookingTypeUpdate
from booking_engine.models.host import Host
from booking_engine.services.booking_type_service import (
    create_booking_type,
    delete_or_deactivate_booking_type,
    get_agency_booking_type,
    list_booking_types,
    update_booking_type,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/booking-types", tags=["booking-types"])


@router.get("", response_model=list[BookingTypePublic])
async def list_types(
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> list[BookingTypePublic]:
    booking_types = await list_booking_types(session, current_host.agency_id)
    return [BookingTypePublic.model_validate(b, from_attributes=True) for b in booking_types]


@router.post("", response_model=BookingTypePublic, status_code=status.HTTP_201_CREATED)
async def create_type(
    body: BookingTypeCreate,
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> BookingTypePublic:
    booking_type = await create_booking_type(session, current_host.agency_id, body)
    return BookingTypePublic.model_validate(booking_type, from_attributes=True)


@router.get("/{booking_type_id}", response_model=BookingTypePublic)
async def get_type(
    booking_type_id: int,
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> BookingTypePublic:
    booking_type = await get_agency_booking_type(session, current_host.agency_id, booking_type_id)
    return BookingTypePublic.model_validate(booking_type, from_attributes=True)


@router.patch("/{booking_type_id}", response_model=BookingTypePublic)
async def update_type(
    booking_type_id: int,
    body: BookingTypeUpdate,
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> BookingTypePublic:
    booking_type = await update_booking_type(session, current_host.agency_id, booking_type_id, body)
    return BookingTypePublic.model_validate(booking_type, from_attributes=True)


@router.delete("/{booking_type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_type(
    booking_type_id: int,
    session: AsyncSession = Depends(get_session),
    current_host: Host = Depends(get_current_host),
) -> None:
    """Delete, or only deactivate when appointments still reference the type (existing bookings stay valid)."""
    deleted = await delete_or_deactivate_booking_type(session, current_host.agency_id, booking_type_id)
    if not deleted:
        logger.info("Booking type %s kept as inactive", booking_type_id)
