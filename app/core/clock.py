"""Time helpers bound to the configured business time zone."""

from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta

from app.config import settings

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(UTC)


def to_business_time(value: datetime) -> datetime:
    """
    Express an instant in the business time zone.

    Naive values are taken to already be business-local wall-clock time.
    """
    tz = settings.business_tz
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def business_day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC instants bounding a business-local calendar day, end exclusive."""
    tz = settings.business_tz
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)
