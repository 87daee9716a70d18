"""Wall clock <-> UTC conversion for owner timezones.

Schedules are stored as HH:MM in the owner's IANA zone; everything else in the
engine works on aware UTC instants.
"""
from datetime import UTC, date, datetime, time, timedelta

import pytz
from pytz.tzinfo import BaseTzInfo

from booking_engine.core.errors import ConfigurationError
from booking_engine.models.schedule import hhmm_to_minutes


def get_zone(tz_name: str) -> BaseTzInfo:
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError as e:
        raise ConfigurationError(f"Unknown timezone {tz_name!r}") from e


def localize(tz: BaseTzInfo, naive: datetime) -> datetime:
    """Attach tz to a naive wall-clock datetime.

    Times inside a DST gap do not exist and are rejected. Times repeated by a
    fall-back transition resolve to their first (earliest) occurrence.
    """
    try:
        return tz.localize(naive, is_dst=None)
    except pytz.NonExistentTimeError as e:
        raise ConfigurationError(
            f"{naive:%Y-%m-%d %H:%M} does not exist in {tz.zone} (daylight saving gap)"
        ) from e
    except pytz.AmbiguousTimeError:
        return min(tz.localize(naive, is_dst=True), tz.localize(naive, is_dst=False))


def wall_to_utc(tz_name: str, day: date, hh_mm: str) -> datetime:
    """Convert 'HH:MM' on a local calendar date to an aware UTC instant."""
    tz = get_zone(tz_name)
    minutes = hhmm_to_minutes(hh_mm)
    if minutes == 24 * 60:
        naive = datetime.combine(day + timedelta(days=1), time(0, 0))
    else:
        naive = datetime.combine(day, time(minutes // 60, minutes % 60))
    return localize(tz, naive).astimezone(UTC)


def as_utc(instant: datetime) -> datetime:
    """Aware UTC view of an instant; naive values are taken to be UTC already."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def to_naive_utc(instant: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if instant.tzinfo is not None:
        return instant.astimezone(UTC).replace(tzinfo=None)
    return instant


def utc_to_wall(instant: datetime, tz_name: str) -> datetime:
    return as_utc(instant).astimezone(get_zone(tz_name))


def format_wall(instant: datetime, tz_name: str) -> str:
    return utc_to_wall(instant, tz_name).strftime("%H:%M")


def local_date(instant: datetime, tz_name: str) -> date:
    return utc_to_wall(instant, tz_name).date()

