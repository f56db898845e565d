"""Shared constants and helpers for the test suite."""

from datetime import UTC, date, datetime, timedelta

from app.core.clock import to_business_time, utc_now
from app.core.security import create_access_token
from app.schemas.actors import Actor

FULL_WEEK = {
    day: {"start": "09:00", "end": "18:00", "available": True}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
}

# Sunday 2030-01-06 12:00 in Bogota (UTC-5); the next day is a Monday
FROZEN_NOW = datetime(2030, 1, 6, 17, 0, tzinfo=UTC)
NEXT_MONDAY = FROZEN_NOW.date() + timedelta(days=1)


def frozen_clock() -> datetime:
    return FROZEN_NOW


def local_instant(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC instant of a Bogota wall-clock time (fixed UTC-5, no DST)."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC) + timedelta(hours=5)


def business_day_from_today(days: int) -> date:
    """Business-local calendar date ``days`` after today, for tests on the real clock."""
    return to_business_time(utc_now()).date() + timedelta(days=days)


def auth_headers_for(actor: Actor) -> dict:
    """Bearer headers for an actor."""
    token = create_access_token(data={"sub": str(actor.id)}, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}
