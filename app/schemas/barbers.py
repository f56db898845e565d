"""Barber directory schemas."""

from datetime import time
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class DaySchedule(BaseModel):
    """Working hours for one weekday, in business-local time."""

    start: time
    end: time
    available: bool = True

    @model_validator(mode="after")
    def validate_window(self) -> "DaySchedule":
        """Validate end is after start on working days."""
        if self.available and self.end <= self.start:
            raise ValueError("Schedule end must be after start")
        return self


class WeeklySchedule(BaseModel):
    """Weekly schedule keyed by lowercase English weekday name."""

    days: dict[str, DaySchedule] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def wrap_plain_mapping(cls, data: Any) -> Any:
        """Accept the stored ``{"monday": {...}}`` shape directly."""
        if isinstance(data, dict) and "days" not in data:
            return {"days": data}
        return data

    @model_validator(mode="after")
    def validate_weekdays(self) -> "WeeklySchedule":
        """Reject unknown weekday keys."""
        unknown = set(self.days) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(sorted(unknown))}")
        return self

    def for_weekday(self, weekday: int) -> DaySchedule | None:
        """
        Get the schedule for a weekday.

        Args:
            weekday: Monday=0 .. Sunday=6, as returned by ``date.weekday()``

        Returns:
            Day schedule, or None if the day is unavailable or not configured
        """
        day = self.days.get(WEEKDAYS[weekday])
        if day is None or not day.available:
            return None
        return day


class BarberProfile(BaseModel):
    """Directory view of a barber, as consumed by scheduling."""

    id: UUID
    user_id: UUID
    display_name: str
    is_active: bool
    schedule: WeeklySchedule
