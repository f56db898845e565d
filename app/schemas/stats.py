"""Appointment statistics schemas."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.schemas.appointments import AppointmentStatus


class StatsGroupBy(str, Enum):
    """Dimensions appointments can be grouped by."""

    STATUS = "status"
    BARBER = "barber"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


TIME_BUCKETS = frozenset({StatsGroupBy.DAY, StatsGroupBy.WEEK, StatsGroupBy.MONTH})


class StatsQuery(BaseModel):
    """Reporting window and grouping."""

    window_start: datetime
    window_end: datetime
    group_by: list[StatsGroupBy] = Field(default_factory=lambda: [StatsGroupBy.STATUS])

    @model_validator(mode="after")
    def validate_query(self) -> "StatsQuery":
        """Validate window ordering and bucket exclusivity."""
        if self.window_end <= self.window_start:
            raise ValueError("window_end must be after window_start")
        if len([g for g in self.group_by if g in TIME_BUCKETS]) > 1:
            raise ValueError("Only one time bucket (day, week or month) may be requested")
        if len(set(self.group_by)) != len(self.group_by):
            raise ValueError("group_by entries must be unique")
        return self


class StatusTotals(BaseModel):
    """Count and revenue for one status."""

    count: int = 0
    revenue: Decimal = Decimal("0")


class StatsRow(BaseModel):
    """Aggregated figures for one group."""

    status: AppointmentStatus | None = None
    barber_id: UUID | None = None
    bucket: date | None = None
    count: int
    revenue: Decimal


class StatsResponse(BaseModel):
    """Grouped statistics plus window totals."""

    window_start: datetime
    window_end: datetime
    group_by: list[StatsGroupBy]
    rows: list[StatsRow]
    total: int
    total_revenue: Decimal
    by_status: dict[AppointmentStatus, StatusTotals]
