"""Service catalog schemas."""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class ServiceInfo(BaseModel):
    """Catalog entry as read at booking time."""

    id: UUID
    name: str
    duration_minutes: int
    price: Decimal
    is_active: bool

    model_config = {"from_attributes": True}
