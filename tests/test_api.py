from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from booking_engine.core.security import create_access_token, create_manage_token
from booking_engine.models import Agency, AvailabilitySchedule, BookingTypeHost, Host
from booking_engine.services import events
from tests.conftest import add_booking_type, add_host

ALL_DAY = [{"start": "00:00", "end": "24:00"}]


@pytest.fixture
async def office(session):
    """Agency open around the clock in UTC, so real-time requests always find slots."""
    agency = Agency(name="Round the Clock")
    session.add(agency)
    await session.flush()
    host = await add_host(session, agency, "Alice", slug="alice")
    session.add(
        AvailabilitySchedule(
            agency_id=agency.id,
            timezone="UTC",
            weekly_schedule={day: ALL_DAY for day in (
                "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
            )},
        )
    )
    await add_booking_type(session, agency, slug="consultation")
    await session.commit()
    return {"agency_id": agency.id, "host_id": host.id}


@pytest.fixture
def auth(office):
    return {"Authorization": f"Bearer {create_access_token(office['host_id'])}"}


def _day() -> str:
    return (datetime.now(UTC) + timedelta(days=3)).date().isoformat()


def _guest(start: str) -> dict:
    return {"start_time": start, "guest_name": "Grace Hopper", "guest_email": "grace@example.com"}


async def _book_first_slot(client) -> dict:
    slots = (await client.get(f"/api/v1/public/consultation?date={_day()}")).json()["slots"]
    response = await client.post("/api/v1/public/consultation", json=_guest(slots[0]["start_utc"]))
    assert response.status_code == 201, response.text
    return response.json()


async def test_health(client):
    assert (await client.get("/health")).json() == {"status": "ok"}


async def test_booking_type_info(client, office):
    response = await client.get("/api/v1/public/consultation")
    assert response.status_code == 200
    body = response.json()
    assert body["booking_type"]["slug"] == "consultation"
    assert body["timezone"] == "UTC"
    assert [h["name"] for h in body["hosts"]] == ["Alice"]


async def test_slots_for_a_day(client, office):
    response = await client.get(f"/api/v1/public/consultation?date={_day()}")
    assert response.status_code == 200
    slots = response.json()["slots"]
    assert len(slots) == 48
    assert slots[0]["start_local"] == "00:00"
    assert slots[-1]["end_local"] == "00:00"
    assert slots[0]["host_ids"] == [office["host_id"]]


async def test_available_days(client, office):
    day = _day()
    response = await client.get(f"/api/v1/public/consultation?month={day[:7]}")
    assert response.status_code == 200
    assert day in response.json()["available_days"]


async def test_unknown_booking_type(client, office):
    response = await client.get("/api/v1/public/nope?month=2026-11")
    assert response.status_code == 400
    assert response.json()["error"] == "ConfigurationError"


async def test_book_then_conflict(client, office):
    received = []
    events.subscribe(received.append)
    try:
        confirmation = await _book_first_slot(client)
    finally:
        events.unsubscribe(received.append)

    assert confirmation["appointment"]["status"] == "SCHEDULED"
    assert confirmation["appointment"]["host_id"] == office["host_id"]
    assert confirmation["start_local"] == "00:00"
    assert confirmation["manage_token"]
    assert len(received) == 1

    start = confirmation["appointment"]["start_time"]
    assert start.endswith("Z")
    again = await client.post("/api/v1/public/consultation", json=_guest(start))
    assert again.status_code == 409
    assert again.json()["detail"]

    slots = (await client.get(f"/api/v1/public/consultation?date={_day()}")).json()["slots"]
    assert len(slots) == 47


async def test_host_prefixed_link(client, office):
    slots = (await client.get(f"/api/v1/public/alice/consultation?date={_day()}")).json()["slots"]
    response = await client.post("/api/v1/public/alice/consultation", json=_guest(slots[1]["start_utc"]))
    assert response.status_code == 201
    assert response.json()["appointment"]["host_id"] == office["host_id"]


async def test_invalid_guest_email(client, office):
    slots = (await client.get(f"/api/v1/public/consultation?date={_day()}")).json()["slots"]
    body = _guest(slots[0]["start_utc"]) | {"guest_email": "nope"}
    response = await client.post("/api/v1/public/consultation", json=body)
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


async def test_guest_manage_link(client, office):
    confirmation = await _book_first_slot(client)
    appointment_id = confirmation["appointment"]["id"]
    token = confirmation["manage_token"]

    view = await client.get(f"/api/v1/manage/{appointment_id}", params={"token": token})
    assert view.status_code == 200
    assert view.json()["booking_type"] == "Consultation"
    assert view.json()["host"]["name"] == "Alice"
    assert view.json()["start_time"] == confirmation["appointment"]["start_time"]
    assert view.json()["start_time"].endswith("Z")

    forged = await client.get(f"/api/v1/manage/{appointment_id}", params={"token": create_manage_token(999)})
    assert forged.status_code == 403

    cancelled = await client.request(
        "DELETE", f"/api/v1/manage/{appointment_id}", params={"token": token}, json={"reason": "Sick"}
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "CANCELLED"

    twice = await client.request("DELETE", f"/api/v1/manage/{appointment_id}", params={"token": token})
    assert twice.status_code == 422


async def test_host_endpoints_need_a_token(client, office):
    assert (await client.get("/api/v1/appointments")).status_code == 401
    bad = {"Authorization": "Bearer garbage"}
    assert (await client.get("/api/v1/appointments", headers=bad)).status_code == 401


async def test_host_manages_appointments(client, office, auth):
    confirmation = await _book_first_slot(client)
    appointment_id = confirmation["appointment"]["id"]

    listed = await client.get("/api/v1/appointments", headers=auth)
    assert [a["id"] for a in listed.json()] == [appointment_id]

    confirmed = await client.patch(
        f"/api/v1/appointments/{appointment_id}/status", json={"status": "CONFIRMED"}, headers=auth
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "CONFIRMED"

    backwards = await client.patch(
        f"/api/v1/appointments/{appointment_id}/status", json={"status": "CONFIRMED"}, headers=auth
    )
    assert backwards.status_code == 422
    assert backwards.json()["error"] == "InvalidTransitionError"

    slots = (await client.get(f"/api/v1/public/consultation?date={_day()}")).json()["slots"]
    moved = await client.post(
        f"/api/v1/appointments/{appointment_id}/reschedule",
        json={"start_time": slots[3]["start_utc"]},
        headers=auth,
    )
    assert moved.status_code == 200
    assert moved.json()["id"] != appointment_id

    old = await client.get("/api/v1/appointments", params={"status": "RESCHEDULED"}, headers=auth)
    assert old.json()[0]["rescheduled_to_id"] == moved.json()["id"]


async def test_availability_settings(client, office, auth):
    current = await client.get("/api/v1/availability", headers=auth)
    assert current.json()["owner"] == "agency"

    overlapping = {
        "timezone": "Asia/Dubai",
        "weekly_schedule": {"monday": [{"start": "09:00", "end": "12:00"}, {"start": "11:00", "end": "13:00"}]},
    }
    assert (await client.put("/api/v1/availability", json=overlapping, headers=auth)).status_code == 422

    bad_zone = {"timezone": "Mars/Base", "weekly_schedule": {}}
    assert (await client.put("/api/v1/availability", json=bad_zone, headers=auth)).status_code == 400

    mine = {"timezone": "Asia/Dubai", "weekly_schedule": {"monday": [{"start": "09:00", "end": "12:00"}]}}
    response = await client.put("/api/v1/availability/me", json=mine, headers=auth)
    assert response.status_code == 200
    assert response.json()["owner"] == "host"

    holiday = await client.put(
        "/api/v1/availability/exceptions/2026-12-02",
        params={"scope": "me"},
        json={"is_closed": True, "reason": "National Day"},
        headers=auth,
    )
    assert holiday.status_code == 200
    effective = (await client.get("/api/v1/availability/me", headers=auth)).json()
    assert effective["exceptions"][0]["reason"] == "National Day"

    removed = await client.delete(
        "/api/v1/availability/exceptions/2026-12-02", params={"scope": "me"}, headers=auth
    )
    assert removed.status_code == 204
    missing = await client.delete(
        "/api/v1/availability/exceptions/2026-12-02", params={"scope": "me"}, headers=auth
    )
    assert missing.status_code == 404

    assert (await client.delete("/api/v1/availability/me", headers=auth)).status_code == 204
    assert (await client.get("/api/v1/availability/me", headers=auth)).json()["owner"] == "agency"


async def test_booking_type_assignment_can_be_changed(client, office, auth, session):
    bob = Host(agency_id=office["agency_id"], name="Bob", email="bob@example.com")
    session.add(bob)
    await session.commit()
    alice_id, bob_id = office["host_id"], bob.id

    created = await client.post(
        "/api/v1/booking-types", json={"name": "Tax Review", "assigned_host_ids": [alice_id]}, headers=auth
    )
    url = f"/api/v1/booking-types/{created.json()['id']}"

    missing_host = await client.patch(url, json={"assignment_type": "SPECIFIC"}, headers=auth)
    assert missing_host.status_code == 400
    foreign = await client.patch(url, json={"assigned_host_ids": [bob_id, 9999]}, headers=auth)
    assert foreign.status_code == 400

    specific = await client.patch(
        url, json={"assignment_type": "SPECIFIC", "specific_host_id": bob_id}, headers=auth
    )
    assert specific.status_code == 200
    assert specific.json()["assignment_type"] == "SPECIFIC"
    assert specific.json()["specific_host_id"] == bob_id

    pooled = await client.patch(
        url, json={"assignment_type": "ROUND_ROBIN", "assigned_host_ids": [bob_id, alice_id]}, headers=auth
    )
    assert pooled.json()["assignment_type"] == "ROUND_ROBIN"
    rows = await session.execute(
        select(BookingTypeHost.host_id, BookingTypeHost.priority)
        .where(BookingTypeHost.booking_type_id == created.json()["id"])
        .order_by(BookingTypeHost.priority)
    )
    assert rows.all() == [(bob_id, 0), (alice_id, 1)]


async def test_booking_type_crud(client, office, auth):
    created = await client.post(
        "/api/v1/booking-types",
        json={"name": "Tax Review", "duration_minutes": 45, "assigned_host_ids": [office["host_id"]]},
        headers=auth,
    )
    assert created.status_code == 201
    body = created.json()
    assert body["slug"] == "tax-review"
    assert body["min_notice_minutes"] == 24 * 60

    clash = await client.post("/api/v1/booking-types", json={"name": "Tax Review"}, headers=auth)
    assert clash.json()["slug"] == "tax-review-1"

    updated = await client.patch(
        f"/api/v1/booking-types/{body['id']}", json={"buffer_after_minutes": 15}, headers=auth
    )
    assert updated.json()["buffer_after_minutes"] == 15

    assert (await client.delete(f"/api/v1/booking-types/{body['id']}", headers=auth)).status_code == 204
    assert (await client.get(f"/api/v1/booking-types/{body['id']}", headers=auth)).status_code == 404


async def test_booking_type_with_appointments_is_deactivated(client, office, auth):
    await _book_first_slot(client)
    types = (await client.get("/api/v1/booking-types", headers=auth)).json()
    type_id = types[0]["id"]
    assert (await client.delete(f"/api/v1/booking-types/{type_id}", headers=auth)).status_code == 204
    kept = await client.get(f"/api/v1/booking-types/{type_id}", headers=auth)
    assert kept.json()["is_active"] is False
    assert (await client.get("/api/v1/public/consultation")).status_code == 400
