"""Database models."""

from sqlalchemy import MetaData

from app.models.appointments import appointment_slot_claims, appointments
from app.models.appointments import metadata as appointments_metadata
from app.models.barbers import barbers
from app.models.barbers import metadata as barbers_metadata
from app.models.catalog import metadata as catalog_metadata
from app.models.catalog import services
from app.models.users import metadata as users_metadata
from app.models.users import users

# Combined metadata for schema creation
metadata = MetaData()
for _source in (users_metadata, barbers_metadata, catalog_metadata, appointments_metadata):
    for _table in _source.tables.values():
        _table.to_metadata(metadata)

__all__ = [
    "appointment_slot_claims",
    "appointments",
    "barbers",
    "metadata",
    "services",
    "users",
]
