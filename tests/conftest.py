import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("ENV", "test")

from dataclasses import dataclass
from datetime import UTC, date, datetime

import pytest
from httpx import ASGITransport, AsyncClient

from booking_engine.core.db import build_engine, build_session_maker, init_db
from booking_engine.models import (
    Agency,
    AvailabilitySchedule,
    BookingType,
    BookingTypeHost,
    Host,
    WeeklySchedule,
)

# Monday; Asia/Dubai is UTC+4 all year
MONDAY = date(2026, 11, 2)
NOW = datetime(2026, 11, 1, 0, 0, tzinfo=UTC)

DUBAI_WEEK = {
    "monday": [{"start": "09:00", "end": "12:00"}, {"start": "13:00", "end": "18:00"}],
    "tuesday": [{"start": "09:00", "end": "18:00"}],
}


def dubai(hour: int, minute: int = 0, day=MONDAY) -> datetime:
    """Dubai wall time on `day` as an aware UTC instant."""
    return datetime(day.year, day.month, day.day, hour - 4, minute, tzinfo=UTC)


@dataclass
class Seed:
    agency: Agency
    host: Host
    schedule: AvailabilitySchedule
    booking_type: BookingType


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


async def add_host(session, agency, name="Alice", slug=None) -> Host:
    host = Host(agency_id=agency.id, name=name, email=f"{name.lower()}@example.com", booking_slug=slug)
    session.add(host)
    await session.flush()
    return host


async def add_booking_type(session, agency, slug="consultation", **kwargs) -> BookingType:
    values = {
        "name": slug.title(),
        "duration_minutes": 30,
        "min_notice_minutes": 0,
        "max_future_days": None,
    }
    values.update(kwargs)
    booking_type = BookingType(agency_id=agency.id, slug=slug, **values)
    session.add(booking_type)
    await session.flush()
    return booking_type


async def assign(session, booking_type, host, priority=0) -> None:
    session.add(BookingTypeHost(booking_type_id=booking_type.id, host_id=host.id, priority=priority))
    await session.flush()


@pytest.fixture
async def seed(session) -> Seed:
    """One Dubai agency with one host and a 30 minute booking type."""
    agency = Agency(name="Acme Advisory")
    session.add(agency)
    await session.flush()
    host = await add_host(session, agency, "Alice", slug="alice")
    schedule = AvailabilitySchedule(
        agency_id=agency.id,
        timezone="Asia/Dubai",
        weekly_schedule=WeeklySchedule.model_validate(DUBAI_WEEK).model_dump(),
    )
    session.add(schedule)
    booking_type = await add_booking_type(session, agency)
    await session.commit()
    return Seed(agency=agency, host=host, schedule=schedule, booking_type=booking_type)


@pytest.fixture
async def client(session_maker):
    from booking_engine.api.deps import get_session
    from booking_engine.main import app

    async def override_get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
