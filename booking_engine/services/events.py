"""BookingCreated event and its in-process listeners.

Delivery (email, calendar invites) is done by whoever subscribes; the engine
only hands the event over after the booking has been committed.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass

from booking_engine.models.appointment import Appointment, GuestDetails
from booking_engine.models.booking_type import BookingType
from booking_engine.models.host import Host

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingCreated:
    appointment: Appointment
    host: Host
    guest: GuestDetails
    booking_type: BookingType


BookingCreatedHandler = Callable[[BookingCreated], None]

_listeners: list[BookingCreatedHandler] = []


def subscribe(handler: BookingCreatedHandler) -> BookingCreatedHandler:
    if handler not in _listeners:
        _listeners.append(handler)
    return handler


def unsubscribe(handler: BookingCreatedHandler) -> None:
    if handler in _listeners:
        _listeners.remove(handler)


def dispatch(event: BookingCreated) -> None:
    """Run every listener; a failing listener must not undo a committed booking."""
    for handler in list(_listeners):
        try:
            handler(event)
        except Exception as e:
            logger.exception("BookingCreated listener %s failed: %s", getattr(handler, "__name__", handler), e)


def log_booking_created(event: BookingCreated) -> None:
    appt = event.appointment
    logger.info(
        "Booking created: appointment %s (%s) host=%s guest=%s start=%s",
        appt.id, event.booking_type.slug, event.host.id, event.guest.email, appt.start_time,
    )
