"""Schemas for batch maintenance sweeps."""

from uuid import UUID

from pydantic import BaseModel, Field


class SweepFailure(BaseModel):
    """One record the sweep could not process."""

    appointment_id: UUID
    error: str


class ExpireSweepResult(BaseModel):
    """Outcome of an expired-pending sweep."""

    processed_count: int = 0
    failures: list[SweepFailure] = Field(default_factory=list)


class PurgeSweepResult(BaseModel):
    """Outcome of a consensus purge sweep."""

    purged_count: int = 0
    failures: list[SweepFailure] = Field(default_factory=list)
