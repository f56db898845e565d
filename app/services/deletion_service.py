"""Per-role hiding of appointments and physical deletion once all parties agree."""

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import and_, case, delete, literal, null, or_, select, true, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.exceptions import ForbiddenException, NotFoundException
from app.models.appointments import appointments
from app.models.types import UTCDateTime
from app.schemas.actors import Actor, ActorRole
from app.schemas.appointments import DeletionFlags, HideResponse, deletion_flag_column
from app.schemas.maintenance import PurgeSweepResult, SweepFailure
from app.services.appointment_service import AppointmentService, release_slot_claims
from app.services.barber_service import BarberService

logger = structlog.get_logger()

# All three hide flags set
CONSENSUS = and_(
    appointments.c.deleted_by_customer == true(),
    appointments.c.deleted_by_barber == true(),
    appointments.c.deleted_by_admin == true(),
)


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise ForbiddenException("Admin access required")


class DeletionService:
    """Tracks hide intent per role and purges records every party hid."""

    def __init__(
        self,
        db: AsyncSession,
        barber_service: BarberService | None = None,
        clock: Clock = utc_now,
    ):
        """Initialize service with database session."""
        self.db = db
        self.clock = clock
        self.appointments = AppointmentService(db, barber_service, clock)

    async def _load(self, appointment_id: UUID) -> RowMapping:
        result = await self.db.execute(select(appointments).where(appointments.c.id == appointment_id))
        row = result.mappings().first()
        if row is None:
            raise NotFoundException("Appointment not found")
        return row

    async def _delete_if_consensus(self, appointment_id: UUID) -> bool:
        """Delete one record only if all three flags are still set."""
        result = await self.db.execute(
            delete(appointments).where(and_(appointments.c.id == appointment_id, CONSENSUS))
        )
        if result.rowcount:
            await release_slot_claims(self.db, [appointment_id])
            return True
        return False

    async def request_hide(self, appointment_id: UUID, actor: Actor) -> HideResponse:
        """
        Hide an appointment from the caller role's own listings.

        Setting a flag that is already set changes nothing. The status is never
        touched. When the write leaves all three flags set the record is purged
        in the same transaction.

        Args:
            appointment_id: Appointment ID
            actor: Customer or barber of record, or any admin

        Returns:
            Flags after the write and whether the record was purged

        Raises:
            NotFoundException: If the appointment does not exist
            ForbiddenException: If the actor is not a party to it
        """
        row = await self._load(appointment_id)
        await self.appointments.ensure_access(row, actor)

        flag = appointments.c[deletion_flag_column(actor.role)]
        now = self.clock()
        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(
                {
                    flag: True,
                    appointments.c.marked_for_deletion_at: case(
                        (appointments.c.marked_for_deletion_at.is_(None), literal(now, UTCDateTime())),
                        else_=appointments.c.marked_for_deletion_at,
                    ),
                    appointments.c.updated_at: now,
                }
            )
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        updated = result.mappings().first()
        if updated is None:
            await self.db.rollback()
            raise NotFoundException("Appointment not found")

        flags = DeletionFlags.from_row(updated)
        purged = False
        if flags.reached_consensus:
            purged = await self._delete_if_consensus(appointment_id)

        await self.db.commit()

        logger.info(
            "appointment_hidden",
            appointment_id=str(appointment_id),
            role=actor.role.value,
            actor_id=str(actor.id),
        )
        if purged:
            logger.info("appointment_consensus_purged", appointment_id=str(appointment_id))

        return HideResponse(
            appointment_id=appointment_id,
            deletion_flags=flags,
            marked_for_deletion_at=updated["marked_for_deletion_at"],
            purged=purged,
        )

    async def purge_reached_consensus(self, now: datetime | None = None) -> PurgeSweepResult:
        """
        Physically delete every record all three roles had hidden by ``now``.

        Each record is deleted and committed on its own, guarded by the flags,
        so a hide reverted since selection leaves the record and its slot
        claims in place. A database error on one record is rolled back and
        reported while the rest of the batch continues. Safe to run
        repeatedly; a second run finds nothing.

        Args:
            now: Reference instant, defaults to the service clock

        Returns:
            Count of purged records and per-record failures
        """
        now = now or self.clock()
        stmt = (
            select(appointments.c.id)
            .where(
                and_(
                    CONSENSUS,
                    or_(
                        appointments.c.marked_for_deletion_at.is_(None),
                        appointments.c.marked_for_deletion_at <= now,
                    ),
                )
            )
            .order_by(appointments.c.marked_for_deletion_at)
        )
        result = await self.db.execute(stmt)
        candidate_ids = list(result.scalars().all())
        # Release the read transaction before per-record writes
        await self.db.commit()

        outcome = PurgeSweepResult()
        for appointment_id in candidate_ids:
            try:
                purged = await self._purge_one(appointment_id)
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(
                    "consensus_purge_record_failed",
                    appointment_id=str(appointment_id),
                    error=str(e),
                )
                outcome.failures.append(SweepFailure(appointment_id=appointment_id, error=str(e)))
                continue

            if purged:
                outcome.purged_count += 1

        logger.info(
            "consensus_purge_completed",
            candidates=len(candidate_ids),
            purged_count=outcome.purged_count,
            failed_count=len(outcome.failures),
        )
        return outcome

    async def _purge_one(self, appointment_id: UUID) -> bool:
        """Delete one record if it still has consensus, False if a flag was cleared."""
        if not await self._delete_if_consensus(appointment_id):
            await self.db.rollback()
            return False

        await self.db.commit()
        logger.info("appointment_consensus_purged", appointment_id=str(appointment_id))
        return True

    async def force_purge(self, appointment_id: UUID, actor: Actor) -> None:
        """
        Delete an appointment regardless of its hide flags.

        Raises:
            ForbiddenException: If the actor is not an admin
            NotFoundException: If the appointment does not exist
        """
        _require_admin(actor)
        row = await self._load(appointment_id)

        result = await self.db.execute(delete(appointments).where(appointments.c.id == appointment_id))
        if not result.rowcount:
            await self.db.rollback()
            raise NotFoundException("Appointment not found")
        await release_slot_claims(self.db, [appointment_id])
        await self.db.commit()

        logger.warning(
            "appointment_force_purged",
            appointment_id=str(appointment_id),
            status=row["status"],
            deletion_flags=DeletionFlags.from_row(row).model_dump(),
            actor_id=str(actor.id),
        )

    async def revert_hide(
        self,
        appointment_id: UUID,
        role: ActorRole,
        actor: Actor,
    ) -> HideResponse:
        """
        Clear one role's hide flag.

        This is the only path that unsets a flag. The deletion mark is cleared
        when no flag remains.

        Raises:
            ForbiddenException: If the actor is not an admin
            NotFoundException: If the appointment does not exist
        """
        _require_admin(actor)
        await self._load(appointment_id)

        others = [
            appointments.c[deletion_flag_column(other)] == true()
            for other in ActorRole
            if other != role
        ]
        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(
                {
                    appointments.c[deletion_flag_column(role)]: False,
                    appointments.c.marked_for_deletion_at: case(
                        (or_(*others), appointments.c.marked_for_deletion_at),
                        else_=null(),
                    ),
                    appointments.c.updated_at: self.clock(),
                }
            )
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        updated = result.mappings().first()
        if updated is None:
            await self.db.rollback()
            raise NotFoundException("Appointment not found")
        await self.db.commit()

        logger.warning(
            "appointment_hide_reverted",
            appointment_id=str(appointment_id),
            role=role.value,
            actor_id=str(actor.id),
        )

        return HideResponse(
            appointment_id=appointment_id,
            deletion_flags=DeletionFlags.from_row(updated),
            marked_for_deletion_at=updated["marked_for_deletion_at"],
        )
