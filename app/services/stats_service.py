"""Read-only appointment statistics."""

from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import and_, false, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import to_business_time
from app.core.exceptions import NotFoundException, ValidationException
from app.models.appointments import appointments
from app.schemas.actors import Actor, ActorRole
from app.schemas.appointments import AppointmentStatus, deletion_flag_column
from app.schemas.stats import (
    StatsGroupBy,
    StatsQuery,
    StatsResponse,
    StatsRow,
    StatusTotals,
)
from app.services.barber_service import BarberService

logger = structlog.get_logger()

STATUS_ORDER = {status: index for index, status in enumerate(AppointmentStatus)}


def bucket_for(instant: datetime, group: StatsGroupBy) -> date:
    """Business-local calendar bucket of an instant: the day, its Monday or the 1st."""
    day = to_business_time(instant).date()
    if group == StatsGroupBy.WEEK:
        return day - timedelta(days=day.weekday())
    if group == StatsGroupBy.MONTH:
        return day.replace(day=1)
    return day


class StatsService:
    """Counts and revenue over a reporting window."""

    def __init__(self, db: AsyncSession, barber_service: BarberService | None = None):
        """Initialize service with database session."""
        self.db = db
        self.barbers = barber_service or BarberService()

    async def get_stats(
        self,
        actor: Actor,
        window_start: datetime,
        window_end: datetime,
        group_by: list[StatsGroupBy] | None = None,
    ) -> StatsResponse:
        """
        Aggregate appointments scheduled inside ``[window_start, window_end)``.

        Revenue only counts completed appointments, at the price frozen when
        they were booked. Records hidden by the caller's role are left out.

        Args:
            actor: Caller; barbers and customers only see their own records
            window_start: Inclusive start, naive values are business-local
            window_end: Exclusive end, naive values are business-local
            group_by: Grouping dimensions, defaults to status

        Returns:
            Grouped rows and window totals

        Raises:
            ValidationException: If the window or grouping is malformed
            NotFoundException: If a barber caller has no barber profile
        """
        try:
            query = StatsQuery(
                window_start=to_business_time(window_start),
                window_end=to_business_time(window_end),
                group_by=group_by if group_by is not None else [StatsGroupBy.STATUS],
            )
        except ValidationError as e:
            raise ValidationException(e.errors()[0]["msg"]) from e

        conditions: list[Any] = [
            appointments.c.scheduled_start >= query.window_start,
            appointments.c.scheduled_start < query.window_end,
            appointments.c[deletion_flag_column(actor.role)] == false(),
        ]
        if actor.role == ActorRole.CUSTOMER:
            conditions.append(appointments.c.customer_id == actor.id)
        elif actor.role == ActorRole.BARBER:
            own_barber_id = await self.barbers.get_barber_id_for_user(self.db, actor.id)
            if own_barber_id is None:
                raise NotFoundException("Barber profile not found")
            conditions.append(appointments.c.barber_id == own_barber_id)

        stmt = select(
            appointments.c.status,
            appointments.c.barber_id,
            appointments.c.scheduled_start,
            appointments.c.price,
        ).where(and_(*conditions))
        result = await self.db.execute(stmt)

        by_status = {status: StatusTotals() for status in AppointmentStatus}
        groups: dict[tuple, StatusTotals] = defaultdict(StatusTotals)

        for status_value, barber_id, scheduled_start, price in result.all():
            status = AppointmentStatus(status_value)
            revenue = Decimal(price) if status == AppointmentStatus.COMPLETED else Decimal("0")

            by_status[status].count += 1
            by_status[status].revenue += revenue

            key = []
            for group in query.group_by:
                if group == StatsGroupBy.STATUS:
                    key.append(status)
                elif group == StatsGroupBy.BARBER:
                    key.append(barber_id)
                else:
                    key.append(bucket_for(scheduled_start, group))
            totals = groups[tuple(key)]
            totals.count += 1
            totals.revenue += revenue

        rows = []
        for key, totals in groups.items():
            fields: dict[str, Any] = {"count": totals.count, "revenue": totals.revenue}
            for group, value in zip(query.group_by, key, strict=True):
                if group == StatsGroupBy.STATUS:
                    fields["status"] = value
                elif group == StatsGroupBy.BARBER:
                    fields["barber_id"] = value
                else:
                    fields["bucket"] = value
            rows.append(StatsRow(**fields))

        rows.sort(
            key=lambda row: (
                row.bucket or date.min,
                str(row.barber_id or ""),
                STATUS_ORDER[row.status] if row.status else -1,
            )
        )

        total = sum(t.count for t in by_status.values())
        total_revenue = sum((t.revenue for t in by_status.values()), Decimal("0"))

        logger.debug(
            "stats_computed",
            actor_role=actor.role.value,
            group_by=[g.value for g in query.group_by],
            total=total,
        )

        return StatsResponse(
            window_start=query.window_start,
            window_end=query.window_end,
            group_by=query.group_by,
            rows=rows,
            total=total,
            total_revenue=total_revenue,
            by_status=by_status,
        )
