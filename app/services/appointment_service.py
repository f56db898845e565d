"""Appointment lifecycle: booking, guarded status transitions and role listings."""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, delete, false, func, insert, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import Clock, business_day_bounds, to_business_time, utc_now
from app.core.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ScheduleException,
    ValidationException,
)
from app.core.transitions import (
    ACTIVE_STATUSES,
    AppointmentAction,
    resolve_transition,
    role_may_perform,
)
from app.models.appointments import appointment_slot_claims, appointments
from app.models.users import users
from app.schemas.actors import Actor, ActorRole
from app.schemas.appointments import (
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    DeletionFlags,
    deletion_flag_column,
)
from app.schemas.barbers import WEEKDAYS, BarberProfile
from app.services.availability_service import (
    AvailabilityService,
    claimed_increments,
    generate_slots,
)
from app.services.barber_service import BarberService

logger = structlog.get_logger()

MAX_REASON_CHARS = 500
MAX_REASON_WORDS = 100
MAX_NOTES_CHARS = 500


async def release_slot_claims(db: AsyncSession, appointment_ids: Iterable[UUID]) -> None:
    """Free the slot-grid claims held by appointments leaving the active set."""
    ids = list(appointment_ids)
    if ids:
        await db.execute(
            delete(appointment_slot_claims).where(appointment_slot_claims.c.appointment_id.in_(ids))
        )


def build_slot_claims(
    appointment_id: UUID,
    barber_id: UUID,
    start: datetime,
    duration_minutes: int,
) -> list[dict[str, Any]]:
    """Claim rows for every slot-grid increment a booking covers."""
    return [
        {"appointment_id": appointment_id, "barber_id": barber_id, "slot_start": slot}
        for slot in claimed_increments(start, duration_minutes, settings.slot_interval_minutes)
    ]


def validate_cancellation_reason(reason: str | None) -> str:
    """
    Normalize a cancellation reason.

    Raises:
        ValidationException: If the reason is blank or too long
    """
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationException("A cancellation reason is required")
    if len(cleaned) > MAX_REASON_CHARS:
        raise ValidationException(f"Cancellation reason cannot exceed {MAX_REASON_CHARS} characters")
    if len(cleaned.split()) > MAX_REASON_WORDS:
        raise ValidationException(f"Cancellation reason cannot exceed {MAX_REASON_WORDS} words")
    return cleaned


class AppointmentService:
    """Service for managing appointments."""

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
        self.availability = AvailabilityService(db, self.barbers, clock)

    # ------------------------------------------------------------------
    # Loading and authorization
    # ------------------------------------------------------------------

    async def _find(self, appointment_id: UUID) -> RowMapping | None:
        """Fetch an appointment row, or None."""
        result = await self.db.execute(select(appointments).where(appointments.c.id == appointment_id))
        return result.mappings().first()

    async def _load(self, appointment_id: UUID) -> RowMapping:
        """
        Fetch an appointment row.

        Raises:
            NotFoundException: If the appointment does not exist
        """
        row = await self._find(appointment_id)
        if row is None:
            raise NotFoundException("Appointment not found")
        return row

    async def is_party(self, row: RowMapping, actor: Actor) -> bool:
        """
        Check whether the actor is the customer or barber of record.

        The barber of record is resolved from the profile owned by the
        actor's account, never from a client-supplied barber ID.
        """
        if actor.role == ActorRole.CUSTOMER:
            return row["customer_id"] == actor.id
        if actor.role == ActorRole.BARBER:
            barber_id = await self.barbers.get_barber_id_for_user(self.db, actor.id)
            return barber_id is not None and barber_id == row["barber_id"]
        return False

    async def ensure_access(self, row: RowMapping, actor: Actor) -> None:
        """
        Require the actor to be an admin or a party to the appointment.

        Raises:
            ForbiddenException: If the actor has no claim on the appointment
        """
        if actor.is_admin:
            return
        if not await self.is_party(row, actor):
            raise ForbiddenException("Access denied to this appointment")

    async def _authorize(self, row: RowMapping, actor: Actor, action: AppointmentAction) -> None:
        """Check the role list of an action, then ownership for non-admins."""
        if not role_may_perform(action, actor.role):
            raise ForbiddenException(
                f"Role '{actor.role.value}' may not {action.value.replace('_', '-')} appointments"
            )
        await self.ensure_access(row, actor)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def _ensure_customer(self, customer_id: UUID) -> None:
        """Require an active customer account."""
        stmt = select(users.c.role, users.c.is_active).where(users.c.id == customer_id)
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row or not row["is_active"] or row["role"] != ActorRole.CUSTOMER.value:
            raise NotFoundException("Customer not found")

    @staticmethod
    def _check_schedule_window(
        barber: BarberProfile,
        local_start: datetime,
        duration_minutes: int,
    ) -> None:
        """
        Require the booking to sit inside the barber's hours for that weekday.

        ``local_start`` must already be expressed in the business time zone.

        Raises:
            ScheduleException: If the barber is off or the booking exceeds the window
        """
        day_schedule = barber.schedule.for_weekday(local_start.weekday())
        if day_schedule is None:
            raise ScheduleException(
                f"{barber.display_name} does not work on {WEEKDAYS[local_start.weekday()]}"
            )

        tz = local_start.tzinfo
        window_start = datetime.combine(local_start.date(), day_schedule.start, tzinfo=tz)
        window_end = datetime.combine(local_start.date(), day_schedule.end, tzinfo=tz)
        start = local_start.astimezone(UTC)
        end = start + timedelta(minutes=duration_minutes)

        if start < window_start.astimezone(UTC) or end > window_end.astimezone(UTC):
            raise ScheduleException(
                f"{barber.display_name} works from {day_schedule.start:%H:%M} "
                f"to {day_schedule.end:%H:%M} on {WEEKDAYS[local_start.weekday()]}"
            )

    async def _require_open_slot(
        self,
        barber: BarberProfile,
        local_start: datetime,
        duration_minutes: int,
        exclude_appointment_id: UUID | None = None,
    ) -> None:
        """
        Require a business-local start to be a free slot of the barber.

        Raises:
            ScheduleException: If the time is outside the barber's hours
            ConflictException: If the slot is taken or off the slot grid
        """
        self._check_schedule_window(barber, local_start, duration_minutes)

        day = local_start.date()
        day_start, day_end = business_day_bounds(day)
        busy = await self.availability.get_busy_intervals(
            barber.id, day_start, day_end, exclude_appointment_id=exclude_appointment_id
        )
        slots = generate_slots(
            day,
            barber.schedule.for_weekday(day.weekday()),
            busy,
            now=self.clock(),
            tz=settings.business_tz,
            interval_minutes=settings.slot_interval_minutes,
            duration_minutes=duration_minutes,
        )
        if local_start.astimezone(UTC) not in slots:
            raise ConflictException("The requested time slot is no longer available")

    async def create_appointment(
        self,
        customer_id: UUID,
        barber_id: UUID,
        service_id: UUID,
        requested_start: datetime,
        notes: str | None = None,
    ) -> AppointmentResponse:
        """
        Book an appointment in Pending status.

        Availability is recomputed inside this call, so a slot that was free
        when the client fetched availability but has since been taken is
        rejected. Slot claims inserted alongside the appointment make two
        concurrent bookings of the same slot fail at commit.

        Args:
            customer_id: Customer the appointment is for
            barber_id: Barber to book
            service_id: Catalog service, fixes the duration and price
            requested_start: Start instant; naive values are business-local
            notes: Optional notes for the barber

        Returns:
            Created appointment

        Raises:
            ValidationException: If the start is not in the future or notes are too long
            NotFoundException: If the customer, barber or service is unknown
            ScheduleException: If the time is outside the barber's hours
            ConflictException: If the slot is taken
        """
        now = self.clock()
        local_start = to_business_time(requested_start)
        start = local_start.astimezone(UTC)

        if start <= now:
            raise ValidationException("Appointment must be scheduled in the future")
        if notes and len(notes) > MAX_NOTES_CHARS:
            raise ValidationException(f"Notes cannot exceed {MAX_NOTES_CHARS} characters")

        await self._ensure_customer(customer_id)
        service = await self.barbers.get_active_service(self.db, service_id)
        barber = await self.barbers.get_active_barber(self.db, barber_id, use_cache=False)
        await self._require_open_slot(barber, local_start, service.duration_minutes)

        appointment_id = uuid4()
        values = {
            "id": appointment_id,
            "barber_id": barber_id,
            "customer_id": customer_id,
            "service_id": service_id,
            "scheduled_start": start,
            "duration_minutes": service.duration_minutes,
            "price": service.price,
            "notes": notes,
            "status": AppointmentStatus.PENDING.value,
            "created_at": now,
            "updated_at": now,
        }
        claims = build_slot_claims(appointment_id, barber_id, start, service.duration_minutes)

        try:
            result = await self.db.execute(insert(appointments).values(**values).returning(appointments))
            row = result.mappings().first()
            await self.db.execute(insert(appointment_slot_claims), claims)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(
                "appointment_slot_race_lost",
                barber_id=str(barber_id),
                scheduled_start=start.isoformat(),
            )
            raise ConflictException("The requested time slot is no longer available") from e

        logger.info(
            "appointment_created",
            appointment_id=str(appointment_id),
            barber_id=str(barber_id),
            customer_id=str(customer_id),
            scheduled_start=start.isoformat(),
        )
        return AppointmentResponse.from_row(row)

    async def reschedule(
        self,
        appointment_id: UUID,
        actor: Actor,
        new_start: datetime,
    ) -> AppointmentResponse:
        """
        Move an active appointment to another start time with the same barber.

        The booking keeps its status, duration and price. Its own slot claims
        do not count against the new time, and the old claims are swapped for
        the new ones in the same transaction as the move.

        Args:
            appointment_id: Appointment ID
            actor: Customer of record, barber of record or admin
            new_start: New start instant; naive values are business-local

        Returns:
            Rescheduled appointment

        Raises:
            ValidationException: If the new start is not in the future
            NotFoundException: If the appointment or its barber is gone
            InvalidStateException: If the appointment is no longer active
            ForbiddenException: If the actor is not a party or admin
            ScheduleException: If the time is outside the barber's hours
            ConflictException: If the slot is taken
        """
        now = self.clock()
        local_start = to_business_time(new_start)
        start = local_start.astimezone(UTC)
        if start <= now:
            raise ValidationException("Appointment must be scheduled in the future")

        row = await self._load(appointment_id)
        current = AppointmentStatus(row["status"])
        if current not in ACTIVE_STATUSES:
            raise InvalidStateException(f"Cannot reschedule a {current.value} appointment")
        await self.ensure_access(row, actor)

        barber = await self.barbers.get_active_barber(self.db, row["barber_id"], use_cache=False)
        duration = row["duration_minutes"]
        await self._require_open_slot(
            barber, local_start, duration, exclude_appointment_id=appointment_id
        )

        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status == current.value,
                    appointments.c.scheduled_start == row["scheduled_start"],
                )
            )
            .values(scheduled_start=start, updated_at=now)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        updated = result.mappings().first()
        if updated is None:
            await self.db.rollback()
            fresh = await self._find(appointment_id)
            if fresh is None:
                raise NotFoundException("Appointment not found")
            raise InvalidStateException("Appointment was changed concurrently")

        try:
            await release_slot_claims(self.db, [appointment_id])
            await self.db.execute(
                insert(appointment_slot_claims),
                build_slot_claims(appointment_id, row["barber_id"], start, duration),
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(
                "appointment_slot_race_lost",
                barber_id=str(row["barber_id"]),
                scheduled_start=start.isoformat(),
            )
            raise ConflictException("The requested time slot is no longer available") from e

        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            from_start=row["scheduled_start"].isoformat(),
            to_start=start.isoformat(),
            actor_id=str(actor.id),
            actor_role=actor.role.value,
        )
        return AppointmentResponse.from_row(updated)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If the appointment does not exist or the caller hid it
            ForbiddenException: If the caller has no access
        """
        row = await self._load(appointment_id)
        await self.ensure_access(row, actor)

        if DeletionFlags.from_row(row).is_hidden_for(actor.role):
            raise NotFoundException("Appointment not found")

        return AppointmentResponse.from_row(row)

    async def list_for_role(
        self,
        actor: Actor,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """
        List the appointments visible to the caller.

        Customers see their own bookings, barbers the bookings of the profile
        they own, admins everything. Records the caller's role has hidden are
        never returned.

        Args:
            actor: Caller
            filters: Filter and pagination parameters

        Returns:
            Paginated list ordered by start time
        """
        conditions: list[Any] = [
            appointments.c[deletion_flag_column(actor.role)] == false(),
        ]

        if actor.role == ActorRole.CUSTOMER:
            conditions.append(appointments.c.customer_id == actor.id)
        elif actor.role == ActorRole.BARBER:
            own_barber_id = await self.barbers.get_barber_id_for_user(self.db, actor.id)
            if own_barber_id is None:
                raise NotFoundException("Barber profile not found")
            conditions.append(appointments.c.barber_id == own_barber_id)

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.barber_id:
            conditions.append(appointments.c.barber_id == filters.barber_id)

        if filters.customer_id:
            conditions.append(appointments.c.customer_id == filters.customer_id)

        if filters.from_date:
            conditions.append(appointments.c.scheduled_start >= to_business_time(filters.from_date))

        if filters.to_date:
            conditions.append(appointments.c.scheduled_start <= to_business_time(filters.to_date))

        count_stmt = select(func.count()).select_from(appointments).where(and_(*conditions))
        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        offset = (filters.page - 1) * filters.page_size

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.scheduled_start.asc(), appointments.c.id)
            .limit(filters.page_size)
            .offset(offset)
        )

        result = await self.db.execute(stmt)
        items = [AppointmentResponse.from_row(row) for row in result.mappings().all()]

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _transition(
        self,
        appointment_id: UUID,
        actor: Actor,
        action: AppointmentAction,
        extra_values: dict[str, Any] | None = None,
    ) -> AppointmentResponse:
        """
        Apply one edge of the state machine as a compare-and-set.

        The UPDATE only matches while the row is still in the status the edge
        was validated against, so a concurrent writer makes this call fail
        instead of overwriting the other change.
        """
        row = await self._load(appointment_id)
        current = AppointmentStatus(row["status"])
        transition = resolve_transition(action, current)
        await self._authorize(row, actor, action)

        values: dict[str, Any] = {
            "status": transition.target.value,
            "updated_at": self.clock(),
        }
        if extra_values:
            values.update(extra_values)

        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status == current.value,
                )
            )
            .values(**values)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        updated = result.mappings().first()

        if updated is None:
            await self.db.rollback()
            fresh = await self._find(appointment_id)
            if fresh is None:
                raise NotFoundException("Appointment not found")
            raise InvalidStateException(
                f"Appointment was changed concurrently and is now {fresh['status']}"
            )

        if transition.target not in ACTIVE_STATUSES:
            await release_slot_claims(self.db, [appointment_id])

        await self.db.commit()

        logger.info(
            "appointment_transitioned",
            appointment_id=str(appointment_id),
            action=action.value,
            from_status=current.value,
            to_status=transition.target.value,
            actor_id=str(actor.id),
            actor_role=actor.role.value,
        )
        return AppointmentResponse.from_row(updated)

    async def approve(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """Confirm a pending appointment (barber of record or admin)."""
        return await self._transition(appointment_id, actor, AppointmentAction.APPROVE)

    async def complete(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """Mark a confirmed appointment as served (barber of record)."""
        return await self._transition(appointment_id, actor, AppointmentAction.COMPLETE)

    async def mark_no_show(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """Record that the customer did not attend (barber of record)."""
        return await self._transition(appointment_id, actor, AppointmentAction.NO_SHOW)

    async def cancel(
        self,
        appointment_id: UUID,
        actor: Actor,
        reason: str,
    ) -> AppointmentResponse:
        """
        Cancel a pending or confirmed appointment.

        Args:
            appointment_id: Appointment ID
            actor: Customer of record, barber of record or admin
            reason: Why the appointment is cancelled

        Returns:
            Cancelled appointment with cancellation metadata

        Raises:
            ValidationException: If the reason is blank or too long
            InvalidStateException: If the appointment is already final
            ForbiddenException: If the actor is not a party or admin
        """
        cleaned = validate_cancellation_reason(reason)
        return await self._transition(
            appointment_id,
            actor,
            AppointmentAction.CANCEL,
            {
                "cancellation_reason": cleaned,
                "cancelled_by": actor.role.value,
                "cancelled_at": self.clock(),
            },
        )
