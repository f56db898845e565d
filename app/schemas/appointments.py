"""Appointment schemas for request/response validation."""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.actors import ActorRole


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class CancelledBy(str, Enum):
    """Party recorded as the author of a cancellation."""

    CUSTOMER = "customer"
    BARBER = "barber"
    ADMIN = "admin"
    SYSTEM = "system"


class DeletionFlags(BaseModel):
    """Per-role hide intent for one appointment."""

    customer: bool = False
    barber: bool = False
    admin: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DeletionFlags":
        """Build flags from the flat table columns."""
        return cls(
            customer=bool(row["deleted_by_customer"]),
            barber=bool(row["deleted_by_barber"]),
            admin=bool(row["deleted_by_admin"]),
        )

    def is_hidden_for(self, role: ActorRole) -> bool:
        """Check whether the record is hidden from a role's listings."""
        return getattr(self, role.value)

    @property
    def reached_consensus(self) -> bool:
        """All three roles asked to hide the record."""
        return self.customer and self.barber and self.admin


def deletion_flag_column(role: ActorRole) -> str:
    """Column holding the hide flag for a role."""
    return f"deleted_by_{role.value}"


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    barber_id: UUID
    service_id: UUID
    scheduled_start: datetime
    notes: str | None = Field(None, max_length=500)
    # Only honoured for admin callers booking on behalf of a customer
    customer_id: UUID | None = None


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to another start time."""

    scheduled_start: datetime


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str = Field(..., min_length=1, max_length=500)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    barber_id: UUID
    customer_id: UUID
    service_id: UUID
    scheduled_start: datetime
    duration_minutes: int
    price: Decimal
    notes: str | None = None
    status: AppointmentStatus
    deletion_flags: DeletionFlags
    marked_for_deletion_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_by: CancelledBy | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AppointmentResponse":
        """Build a response from an ``appointments`` row mapping."""
        data = dict(row)
        data["deletion_flags"] = DeletionFlags.from_row(row)
        return cls.model_validate(data)


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    barber_id: UUID | None = None
    customer_id: UUID | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class AvailabilityResponse(BaseModel):
    """Bookable start times for one barber on one business-local date."""

    barber_id: UUID
    day: date
    timezone: str
    slot_interval_minutes: int
    slots: list[datetime]


class HideResponse(BaseModel):
    """Outcome of a hide request or an admin restore."""

    appointment_id: UUID
    deletion_flags: DeletionFlags
    marked_for_deletion_at: datetime | None = None
    purged: bool = False


class HideRevert(BaseModel):
    """Schema for an admin clearing one role's hide flag."""

    role: ActorRole
