"""Appointment endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.config import settings
from app.core.exceptions import ForbiddenException, ValidationException
from app.dependencies import AdminActor, BarberDirectory, CurrentActor, DatabaseSession
from app.schemas.actors import ActorRole
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentReschedule,
    AppointmentStatus,
    AvailabilityResponse,
    HideResponse,
    HideRevert,
)
from app.schemas.stats import StatsGroupBy, StatsResponse
from app.services.appointment_service import AppointmentService
from app.services.availability_service import AvailabilityService, parse_target_date
from app.services.deletion_service import DeletionService
from app.services.stats_service import StatsService

router = APIRouter()


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List bookable start times",
)
async def get_availability(
    db: DatabaseSession,
    barbers: BarberDirectory,
    barber_id: UUID = Query(...),
    target_date: str = Query(..., alias="date", description="Business-local date, YYYY-MM-DD"),
    service_id: UUID | None = Query(None),
) -> AvailabilityResponse:
    """
    Get the free start times of a barber on a date.

    Public: no authentication is required to browse availability.
    """
    day = parse_target_date(target_date)
    slots = await AvailabilityService(db, barbers).get_available_slots(barber_id, day, service_id)
    return AvailabilityResponse(
        barber_id=barber_id,
        day=day,
        timezone=settings.business_timezone,
        slot_interval_minutes=settings.slot_interval_minutes,
        slots=slots,
    )


@router.get(
    "/stats",
    response_model=StatsResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Appointment statistics",
)
async def get_stats(
    actor: CurrentActor,
    db: DatabaseSession,
    window_start: datetime = Query(..., alias="from"),
    window_end: datetime = Query(..., alias="to"),
    group_by: list[StatsGroupBy] = Query([StatsGroupBy.STATUS]),
) -> StatsResponse:
    """
    Get counts and revenue for appointments scheduled in ``[from, to)``.

    Barbers and customers only see their own appointments.
    """
    return await StatsService(db).get_stats(actor, window_start, window_end, group_by)


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    barbers: BarberDirectory,
) -> AppointmentResponse:
    """
    Book an appointment.

    Customers book for themselves; admins book on behalf of ``customer_id``.

    Args:
        data: Appointment creation data
        actor: Authenticated caller
        db: Database session
        barbers: Barber directory

    Returns:
        Created appointment in pending status
    """
    if actor.role == ActorRole.CUSTOMER:
        customer_id = actor.id
    elif actor.is_admin:
        if data.customer_id is None:
            raise ValidationException("customer_id is required when booking as admin")
        customer_id = data.customer_id
    else:
        raise ForbiddenException("Only customers and admins can book appointments")

    service = AppointmentService(db, barbers)
    return await service.create_appointment(
        customer_id,
        data.barber_id,
        data.service_id,
        data.scheduled_start,
        data.notes,
    )


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    barber_id: UUID | None = Query(None),
    customer_id: UUID | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List the appointments visible to the caller with filtering.

    Args:
        actor: Authenticated caller
        db: Database session
        status_filter: Filter by status
        barber_id: Filter by barber ID
        customer_id: Filter by customer ID
        from_date: Earliest start
        to_date: Latest start
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        barber_id=barber_id,
        customer_id=customer_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )

    service = AppointmentService(db)
    return await service.list_for_role(actor, filters)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id, actor)


@router.post(
    "/{appointment_id}/approve",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm a pending appointment",
)
async def approve_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Move a pending appointment to confirmed."""
    return await AppointmentService(db).approve(appointment_id, actor)


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark appointment as completed",
)
async def complete_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Move a confirmed appointment to completed."""
    return await AppointmentService(db).complete(appointment_id, actor)


@router.post(
    "/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark appointment as no-show",
)
async def mark_no_show(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Record that the customer did not attend a confirmed appointment."""
    return await AppointmentService(db).mark_no_show(appointment_id, actor)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    data: AppointmentCancel,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Cancel a pending or confirmed appointment.

    Args:
        appointment_id: Appointment ID
        data: Cancellation reason
        actor: Authenticated caller
        db: Database session

    Returns:
        Cancelled appointment
    """
    return await AppointmentService(db).cancel(appointment_id, actor, data.reason)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    actor: CurrentActor,
    db: DatabaseSession,
    barbers: BarberDirectory,
) -> AppointmentResponse:
    """Move a pending or confirmed appointment to another free slot of the same barber."""
    service = AppointmentService(db, barbers)
    return await service.reschedule(appointment_id, actor, data.scheduled_start)


@router.delete(
    "/{appointment_id}",
    response_model=HideResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Hide appointment from your own view",
)
async def hide_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> HideResponse:
    """
    Hide an appointment for the caller's role.

    The record is physically deleted once customer, barber and admin have
    all hidden it.
    """
    return await DeletionService(db).request_hide(appointment_id, actor)


@router.post(
    "/{appointment_id}/restore",
    response_model=HideResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Clear a role's hide flag (admin)",
)
async def restore_appointment(
    appointment_id: UUID,
    data: HideRevert,
    actor: AdminActor,
    db: DatabaseSession,
) -> HideResponse:
    """Make an appointment visible again to one role."""
    return await DeletionService(db).revert_hide(appointment_id, data.role, actor)


@router.delete(
    "/{appointment_id}/purge",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Appointments"],
    summary="Permanently delete appointment (admin)",
)
async def purge_appointment(
    appointment_id: UUID,
    actor: AdminActor,
    db: DatabaseSession,
) -> None:
    """Delete an appointment regardless of its hide flags."""
    await DeletionService(db).force_purge(appointment_id, actor)
