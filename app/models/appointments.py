"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Index,
    Integer,
    MetaData,
    Numeric,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
)

from app.models.types import UTCDateTime

# Metadata for all tables
metadata = MetaData()

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # References (owned by the directory, catalog and identity services)
    Column("barber_id", Uuid, nullable=False),
    Column("customer_id", Uuid, nullable=False),
    Column("service_id", Uuid, nullable=False),
    # Booking details, frozen from the service at creation time
    Column("scheduled_start", UTCDateTime, nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    Column("price", Numeric(10, 2), nullable=False),
    Column("notes", Text, nullable=True),
    # Status management
    Column("status", Text, nullable=False, server_default="pending"),
    # Cancellation metadata
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_by", Text, nullable=True),
    Column("cancelled_at", UTCDateTime, nullable=True),
    # Per-role hide flags; physical deletion once all three are set
    Column("deleted_by_customer", Boolean, nullable=False, server_default=false()),
    Column("deleted_by_barber", Boolean, nullable=False, server_default=false()),
    Column("deleted_by_admin", Boolean, nullable=False, server_default=false()),
    Column("marked_for_deletion_at", UTCDateTime, nullable=True),
    # Audit fields
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("updated_at", UTCDateTime, nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "cancelled_by IS NULL OR cancelled_by IN ('customer', 'barber', 'admin', 'system')",
        name="appointments_cancelled_by_check",
    ),
    CheckConstraint("duration_minutes > 0", name="appointments_duration_check"),
    Index("ix_appointments_barber_start", "barber_id", "scheduled_start"),
    Index("ix_appointments_customer_start", "customer_id", "scheduled_start"),
    Index("ix_appointments_status_start", "status", "scheduled_start"),
)

# One row per slot-grid increment covered by an active appointment. The unique
# key makes a second booking of any covered increment fail at commit.
appointment_slot_claims = Table(
    "appointment_slot_claims",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("appointment_id", Uuid, nullable=False, index=True),
    Column("barber_id", Uuid, nullable=False),
    Column("slot_start", UTCDateTime, nullable=False),
    UniqueConstraint("barber_id", "slot_start", name="uq_slot_claims_barber_slot"),
)
