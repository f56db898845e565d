"""User model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    MetaData,
    String,
    Table,
    Text,
    Uuid,
    func,
    true,
)

from app.models.types import UTCDateTime

metadata = MetaData()

# Accounts are owned by the identity service; this table mirrors what the
# scheduling API needs to authorize a caller.
users = Table(
    "users",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("email", Text, nullable=False, unique=True, index=True),
    Column("full_name", Text),
    Column("phone", String(20)),
    Column("role", Text, nullable=False, server_default="customer"),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    # Audit
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("updated_at", UTCDateTime, nullable=False, server_default=func.now()),
    CheckConstraint(
        "role IN ('customer', 'barber', 'admin')",
        name="users_role_check",
    ),
)
