"""Caller identity schemas."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class ActorRole(str, Enum):
    """Role of the authenticated caller."""

    CUSTOMER = "customer"
    BARBER = "barber"
    ADMIN = "admin"


class Actor(BaseModel):
    """Authenticated party invoking an operation."""

    id: UUID
    role: ActorRole

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        """Check if the actor is an administrator."""
        return self.role == ActorRole.ADMIN
