"""Barber profile model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    MetaData,
    Table,
    Text,
    Uuid,
    func,
    true,
)

from app.models.types import UTCDateTime

metadata = MetaData()

barbers = Table(
    "barbers",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Account that owns this profile; permission checks resolve through it
    Column("user_id", Uuid, nullable=False, unique=True, index=True),
    Column("display_name", Text, nullable=False),
    Column("specialty", Text),
    Column("is_active", Boolean, nullable=False, server_default=true(), index=True),
    # Weekly schedule in business-local time:
    # {"monday": {"start": "09:00", "end": "18:00", "available": true}, ...}
    Column("schedule", JSON, nullable=False, default=dict),
    # Metadata
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("updated_at", UTCDateTime, nullable=False, server_default=func.now()),
)
