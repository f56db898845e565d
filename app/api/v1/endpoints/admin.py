"""Admin-only maintenance endpoints."""

import structlog
from fastapi import APIRouter, status

from app.dependencies import AdminActor, DatabaseSession
from app.schemas.maintenance import ExpireSweepResult, PurgeSweepResult
from app.services.deletion_service import DeletionService
from app.services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/admin/maintenance", tags=["Admin"])

logger = structlog.get_logger()


@router.post(
    "/expire-pending",
    response_model=ExpireSweepResult,
    status_code=status.HTTP_200_OK,
    summary="Cancel pending appointments whose time has passed (admin only)",
)
async def expire_pending(
    admin: AdminActor,
    db: DatabaseSession,
) -> ExpireSweepResult:
    """
    Run the expired-pending sweep on demand.

    The same sweep runs periodically in the background worker.

    Returns:
        Processed count and any per-record failures
    """
    logger.info("expired_sweep_requested", admin_id=str(admin.id))
    return await ReconciliationService(db).sweep()


@router.post(
    "/purge-consensus",
    response_model=PurgeSweepResult,
    status_code=status.HTTP_200_OK,
    summary="Delete appointments every party has hidden (admin only)",
)
async def purge_consensus(
    admin: AdminActor,
    db: DatabaseSession,
) -> PurgeSweepResult:
    """Run the consensus purge sweep on demand."""
    logger.info("consensus_purge_requested", admin_id=str(admin.id))
    return await DeletionService(db).purge_reached_consensus()
