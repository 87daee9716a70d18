import asyncio

import pytest

from booking_engine.core.errors import (
    ConfigurationError,
    InvalidTransitionError,
    SlotConflictError,
    SlotUnavailableError,
    ValidationError,
)
from booking_engine.models import Appointment, AppointmentStatus
from booking_engine.services import events
from booking_engine.services.booking_service import create_booking, reschedule_booking
from booking_engine.services.slot_service import get_available_slots
from booking_engine.services.store import insert_appointment_if_free
from tests.conftest import MONDAY, NOW, add_booking_type, add_host, assign, dubai

GUEST = {"name": "Grace Hopper", "email": "grace@example.com", "timezone": "America/New_York"}


async def test_booking_a_free_slot(session, seed):
    appointment = await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)
    await session.commit()
    assert appointment.id is not None
    assert appointment.host_id == seed.host.id
    assert appointment.status == AppointmentStatus.SCHEDULED.value
    assert appointment.start_time == dubai(10).replace(tzinfo=None)
    assert appointment.end_time == dubai(10, 30).replace(tzinfo=None)
    assert appointment.guest_email == "grace@example.com"


async def test_booked_slot_disappears_from_availability(session, seed):
    await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)
    await session.commit()
    starts = [s.start for s in await get_available_slots(session, "consultation", MONDAY, now=NOW)]
    assert dubai(10) not in starts


async def test_overlapping_start_is_rejected_and_back_to_back_accepted(session, seed):
    await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)
    await session.commit()

    with pytest.raises(SlotConflictError):
        await create_booking(session, "consultation", dubai(10, 15), GUEST, now=NOW)
    await session.rollback()

    with pytest.raises(SlotConflictError):
        await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)
    await session.rollback()

    later = await create_booking(session, "consultation", dubai(10, 30), GUEST, now=NOW)
    await session.commit()
    assert later.start_time == dubai(10, 30).replace(tzinfo=None)


async def test_start_outside_open_hours(session, seed):
    with pytest.raises(SlotUnavailableError):
        await create_booking(session, "consultation", dubai(12, 30), GUEST, now=NOW)


async def test_insert_primitive_rejects_overlap(session, seed):
    ids = {"agency_id": seed.agency.id, "host_id": seed.host.id, "booking_type_id": seed.booking_type.id}

    def appointment(start, end):
        return Appointment(
            **ids,
            start_time=start,
            end_time=end,
            guest_name="Ada",
            guest_email="ada@example.com",
        )

    await insert_appointment_if_free(session, appointment(dubai(10), dubai(10, 30)))
    await session.commit()
    with pytest.raises(SlotConflictError):
        await insert_appointment_if_free(session, appointment(dubai(10, 15), dubai(10, 45)))
    await session.rollback()
    with pytest.raises(SlotConflictError):
        # touches the existing one, but the trailing buffer pads it
        await insert_appointment_if_free(
            session, appointment(dubai(10, 30), dubai(11)), buffer_after_minutes=10
        )


async def test_concurrent_bookings_for_one_slot(session_maker, seed):
    async def attempt(name):
        async with session_maker() as session:
            try:
                appointment = await create_booking(
                    session,
                    "consultation",
                    dubai(11),
                    {"name": name, "email": f"{name.lower()}@example.com"},
                    now=NOW,
                )
                await session.commit()
                return appointment
            except SlotConflictError as e:
                await session.rollback()
                return e

    results = await asyncio.gather(attempt("Ada"), attempt("Linus"))
    booked = [r for r in results if isinstance(r, Appointment)]
    rejected = [r for r in results if isinstance(r, SlotConflictError)]
    assert len(booked) == 1
    assert len(rejected) == 1
    assert rejected[0].message


async def test_concurrent_round_robin_bookings_use_both_hosts(session_maker, session, seed):
    bob = await add_host(session, seed.agency, "Bob")
    await assign(session, seed.booking_type, seed.host, priority=0)
    await assign(session, seed.booking_type, bob, priority=1)
    await session.commit()
    alice_id, bob_id = seed.host.id, bob.id

    async def attempt(name):
        async with session_maker() as other:
            try:
                appointment = await create_booking(
                    other,
                    "consultation",
                    dubai(11),
                    {"name": name, "email": f"{name.lower()}@example.com"},
                    now=NOW,
                )
                await other.commit()
                return appointment.host_id
            except SlotConflictError as e:
                await other.rollback()
                return e

    host_ids = await asyncio.gather(attempt("Ada"), attempt("Linus"))
    # both guests get the 11:00 slot, one with each host
    assert sorted(host_ids) == sorted([alice_id, bob_id])


async def test_inactive_booking_type_cannot_be_booked(session, seed):
    seed.booking_type.is_active = False
    session.add(seed.booking_type)
    await session.commit()
    with pytest.raises(ConfigurationError):
        await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)


@pytest.mark.parametrize(
    "guest",
    [
        {"name": "   ", "email": "grace@example.com"},
        {"name": "Grace", "email": "not-an-email"},
        {"name": "Grace", "email": "grace@example.com", "timezone": "Nowhere/City"},
    ],
)
async def test_guest_details_are_validated(session, seed, guest):
    with pytest.raises(ValidationError):
        await create_booking(session, "consultation", dubai(10), guest, now=NOW)


async def test_auto_confirm(session, seed):
    await add_booking_type(session, seed.agency, slug="instant", auto_confirm=True)
    await session.commit()
    appointment = await create_booking(session, "instant", dubai(9), GUEST, now=NOW)
    assert appointment.status == AppointmentStatus.CONFIRMED.value


async def test_round_robin_prefers_least_busy_host(session, seed):
    bob = await add_host(session, seed.agency, "Bob")
    await assign(session, seed.booking_type, seed.host, priority=0)
    await assign(session, seed.booking_type, bob, priority=1)
    await session.commit()

    first = await create_booking(session, "consultation", dubai(9), GUEST, now=NOW)
    await session.commit()
    # tie on zero bookings goes to the higher priority host
    assert first.host_id == seed.host.id

    second = await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)
    await session.commit()
    assert second.host_id == bob.id

    # 09:00 is now only free for Bob
    third = await create_booking(session, "consultation", dubai(9), GUEST, now=NOW)
    await session.commit()
    assert third.host_id == bob.id


async def test_host_prefixed_booking(session, seed):
    bob = await add_host(session, seed.agency, "Bob", slug="bob")
    await session.commit()
    appointment = await create_booking(session, "consultation", dubai(9), GUEST, host_slug="bob", now=NOW)
    assert appointment.host_id == bob.id
    with pytest.raises(ConfigurationError):
        await create_booking(session, "consultation", dubai(9), GUEST, host_slug="nobody", now=NOW)


async def test_created_event_is_handed_to_the_caller(session, seed):
    received = []
    appointment = await create_booking(
        session, "consultation", dubai(10), GUEST, now=NOW, on_created=received.append
    )
    (event,) = received
    assert event.appointment is appointment
    assert event.host.id == seed.host.id
    assert event.booking_type.slug == "consultation"
    assert str(event.guest.email) == "grace@example.com"


def test_failing_listener_does_not_stop_dispatch():
    seen = []

    def broken(event):
        raise RuntimeError("smtp down")

    events.subscribe(broken)
    events.subscribe(seen.append)
    try:
        events.dispatch("event")
    finally:
        events.unsubscribe(broken)
        events.unsubscribe(seen.append)
    assert seen == ["event"]


async def test_reschedule_moves_to_a_new_row(session, seed):
    original = await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)
    await session.commit()

    moved = await reschedule_booking(session, original.id, dubai(14), actor="HOST", now=NOW)
    await session.commit()
    await session.refresh(original)

    assert moved.id != original.id
    assert moved.start_time == dubai(14).replace(tzinfo=None)
    assert moved.guest_email == original.guest_email
    assert original.status == AppointmentStatus.RESCHEDULED.value
    assert original.rescheduled_to_id == moved.id

    starts = [s.start for s in await get_available_slots(session, "consultation", MONDAY, now=NOW)]
    assert dubai(10) in starts
    assert dubai(14) not in starts


async def test_reschedule_into_overlap_with_itself(session, seed):
    original = await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)
    await session.commit()
    moved = await reschedule_booking(session, original.id, dubai(10), actor="HOST", now=NOW)
    await session.commit()
    assert moved.start_time == original.start_time


async def test_reschedule_to_a_taken_slot_keeps_the_original(session, seed):
    original = await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)
    await create_booking(session, "consultation", dubai(11), GUEST, now=NOW)
    await session.commit()

    with pytest.raises(SlotConflictError):
        await reschedule_booking(session, original.id, dubai(11), actor="HOST", now=NOW)
    await session.rollback()
    await session.refresh(original)
    assert original.status == AppointmentStatus.SCHEDULED.value


async def test_cancelled_appointment_cannot_be_rescheduled(session, seed):
    original = await create_booking(session, "consultation", dubai(10), GUEST, now=NOW)
    original.status = AppointmentStatus.CANCELLED.value
    session.add(original)
    await session.commit()
    with pytest.raises(InvalidTransitionError):
        await reschedule_booking(session, original.id, dubai(11), actor="HOST", now=NOW)
