"""Service catalog model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    Numeric,
    Table,
    Text,
    Uuid,
    func,
    true,
)

from app.models.types import UTCDateTime

metadata = MetaData()

services = Table(
    "services",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", Text, nullable=False),
    Column("description", Text),
    Column("duration_minutes", Integer, nullable=False),
    Column("price", Numeric(10, 2), nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("updated_at", UTCDateTime, nullable=False, server_default=func.now()),
    CheckConstraint("duration_minutes > 0", name="services_duration_check"),
    CheckConstraint("price >= 0", name="services_price_check"),
)
