"""Bookable slot calculation for a barber on a business-local date."""

import math
from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import Clock, business_day_bounds, utc_now
from app.core.exceptions import ValidationException
from app.core.transitions import ACTIVE_STATUSES
from app.models.appointments import appointments
from app.schemas.barbers import DaySchedule
from app.services.barber_service import BarberService

Interval = tuple[datetime, datetime]

# Longest booking that can spill over from the previous day
MAX_CARRY_OVER = timedelta(hours=24)


def parse_target_date(value: date | str) -> date:
    """
    Parse a calendar date given as ``YYYY-MM-DD``.

    Raises:
        ValidationException: If the value is not a valid ISO date
    """
    if isinstance(value, datetime):
        raise ValidationException("Expected a calendar date, got a timestamp")
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationException("Invalid date format. Use YYYY-MM-DD") from e


def overlaps(start: datetime, end: datetime, busy: Iterable[Interval]) -> bool:
    """Check whether ``[start, end)`` intersects any busy interval."""
    return any(busy_start < end and start < busy_end for busy_start, busy_end in busy)


def generate_slots(
    target_date: date,
    day_schedule: DaySchedule | None,
    busy: Iterable[Interval],
    *,
    now: datetime,
    tz: ZoneInfo,
    interval_minutes: int,
    duration_minutes: int | None = None,
) -> list[datetime]:
    """
    Enumerate bookable start instants for one day.

    Candidates step by ``interval_minutes`` from the day's start. A candidate
    survives only if the whole booking fits before the day's end, it starts
    strictly after ``now``, and its interval touches no busy interval. Partial
    overlaps disqualify the whole candidate.

    Args:
        target_date: Business-local calendar date
        day_schedule: Working hours for that weekday, None if not working
        busy: Intervals of active appointments
        now: Current instant
        tz: Business time zone the schedule is expressed in
        interval_minutes: Slot grid step
        duration_minutes: Length of the booking, defaults to one slot

    Returns:
        Ascending list of UTC instants
    """
    if day_schedule is None:
        return []

    step = timedelta(minutes=interval_minutes)
    length = timedelta(minutes=duration_minutes or interval_minutes)
    window_start = datetime.combine(target_date, day_schedule.start, tzinfo=tz).astimezone(UTC)
    window_end = datetime.combine(target_date, day_schedule.end, tzinfo=tz).astimezone(UTC)
    busy = list(busy)

    slots: list[datetime] = []
    candidate = window_start
    while candidate + length <= window_end:
        if candidate > now and not overlaps(candidate, candidate + length, busy):
            slots.append(candidate)
        candidate += step

    return slots


def claimed_increments(
    start: datetime,
    duration_minutes: int,
    interval_minutes: int,
) -> list[datetime]:
    """Slot-grid instants covered by a booking starting at ``start``."""
    count = math.ceil(duration_minutes / interval_minutes)
    step = timedelta(minutes=interval_minutes)
    return [start + step * i for i in range(count)]


class AvailabilityService:
    """Computes availability from the directory, catalog and active bookings."""

    def __init__(
        self,
        db: AsyncSession,
        barber_service: BarberService | None = None,
        clock: Clock = utc_now,
    ):
        """Initialize service with database session."""
        self.db = db
        self.barbers = barber_service or BarberService()
        self.clock = clock

    async def get_busy_intervals(
        self,
        barber_id: UUID,
        window_start: datetime,
        window_end: datetime,
        exclude_appointment_id: UUID | None = None,
    ) -> list[Interval]:
        """
        Get intervals of the barber's active appointments touching a window.

        Args:
            barber_id: Barber ID
            window_start: Inclusive window start (UTC)
            window_end: Exclusive window end (UTC)
            exclude_appointment_id: Appointment to leave out of the result

        Returns:
            ``(start, end)`` pairs sorted by start
        """
        conditions = [
            appointments.c.barber_id == barber_id,
            appointments.c.status.in_([s.value for s in ACTIVE_STATUSES]),
            appointments.c.scheduled_start < window_end,
            appointments.c.scheduled_start >= window_start - MAX_CARRY_OVER,
        ]
        if exclude_appointment_id:
            conditions.append(appointments.c.id != exclude_appointment_id)

        stmt = (
            select(appointments.c.scheduled_start, appointments.c.duration_minutes)
            .where(and_(*conditions))
            .order_by(appointments.c.scheduled_start)
        )
        result = await self.db.execute(stmt)

        intervals = []
        for start, duration in result.all():
            end = start + timedelta(minutes=duration)
            if end > window_start:
                intervals.append((start, end))
        return intervals

    async def get_available_slots(
        self,
        barber_id: UUID,
        target_date: date | str,
        service_id: UUID | None = None,
    ) -> list[datetime]:
        """
        Get bookable start times for a barber on a business-local date.

        Args:
            barber_id: Barber ID
            target_date: Calendar date, ``date`` or ``YYYY-MM-DD``
            service_id: Service to size the booking with, defaults to one slot

        Returns:
            Ascending list of UTC instants

        Raises:
            ValidationException: If the date is malformed
            NotFoundException: If the barber or service is unknown or inactive
        """
        day = parse_target_date(target_date)
        barber = await self.barbers.get_active_barber(self.db, barber_id)

        duration = None
        if service_id is not None:
            service = await self.barbers.get_active_service(self.db, service_id)
            duration = service.duration_minutes

        day_schedule = barber.schedule.for_weekday(day.weekday())
        if day_schedule is None:
            return []

        day_start, day_end = business_day_bounds(day)
        busy = await self.get_busy_intervals(barber_id, day_start, day_end)

        return generate_slots(
            day,
            day_schedule,
            busy,
            now=self.clock(),
            tz=settings.business_tz,
            interval_minutes=settings.slot_interval_minutes,
            duration_minutes=duration,
        )
