"""Cancellation of pending bookings nobody confirmed before their start."""

from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import Clock, utc_now
from app.models.appointments import appointments
from app.schemas.appointments import AppointmentStatus, CancelledBy
from app.schemas.maintenance import ExpireSweepResult, SweepFailure
from app.services.appointment_service import release_slot_claims

logger = structlog.get_logger()

EXPIRED_REASON = "Cancelled automatically: not confirmed before the scheduled time"


class ReconciliationService:
    """Sweeps stale Pending appointments to Cancelled."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        grace_minutes: int | None = None,
    ):
        """Initialize service with database session."""
        self.db = db
        self.clock = clock
        if grace_minutes is None:
            grace_minutes = settings.pending_grace_minutes
        self.grace = timedelta(minutes=grace_minutes)

    async def sweep(self, now: datetime | None = None) -> ExpireSweepResult:
        """
        Cancel every Pending appointment whose start plus grace has passed.

        Each record is updated and committed on its own with a compare-and-set
        on ``status``. A record approved or cancelled since it was selected is
        skipped. A database error on one record is rolled back and reported
        while the rest of the batch continues.

        Args:
            now: Reference instant, defaults to the service clock

        Returns:
            Count of cancelled records and per-record failures
        """
        now = now or self.clock()
        cutoff = now - self.grace

        stmt = (
            select(appointments.c.id)
            .where(
                and_(
                    appointments.c.status == AppointmentStatus.PENDING.value,
                    appointments.c.scheduled_start < cutoff,
                )
            )
            .order_by(appointments.c.scheduled_start)
        )
        result = await self.db.execute(stmt)
        candidate_ids = list(result.scalars().all())
        # Release the read transaction before per-record writes
        await self.db.commit()

        outcome = ExpireSweepResult()
        for appointment_id in candidate_ids:
            try:
                cancelled = await self._expire_one(appointment_id, now)
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(
                    "expired_sweep_record_failed",
                    appointment_id=str(appointment_id),
                    error=str(e),
                )
                outcome.failures.append(SweepFailure(appointment_id=appointment_id, error=str(e)))
                continue

            if cancelled:
                outcome.processed_count += 1

        logger.info(
            "expired_sweep_completed",
            candidates=len(candidate_ids),
            processed_count=outcome.processed_count,
            failed_count=len(outcome.failures),
            grace_minutes=int(self.grace.total_seconds() // 60),
        )
        return outcome

    async def _expire_one(self, appointment_id: UUID, now: datetime) -> bool:
        """Move one record from Pending to Cancelled, False if it already moved on."""
        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status == AppointmentStatus.PENDING.value,
                )
            )
            .values(
                status=AppointmentStatus.CANCELLED.value,
                cancelled_by=CancelledBy.SYSTEM.value,
                cancellation_reason=EXPIRED_REASON,
                cancelled_at=now,
                updated_at=now,
            )
        )
        result = await self.db.execute(stmt)
        if not result.rowcount:
            await self.db.rollback()
            return False

        await release_slot_claims(self.db, [appointment_id])
        await self.db.commit()

        logger.info("appointment_expired", appointment_id=str(appointment_id))
        return True
