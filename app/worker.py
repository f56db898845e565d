"""
ARQ background worker.

Runs the periodic appointment maintenance sweeps:
- expired pending bookings → cancelled, every ``EXPIRE_SWEEP_MINUTES``
- consensus purge of records every party hid, daily at ``CONSENSUS_PURGE_HOUR``

Start with ``arq app.worker.WorkerSettings``.
"""

import structlog
from arq.connections import RedisSettings
from arq.cron import cron

from app.config import settings
from app.database import AsyncSessionLocal, engine
from app.middleware.logging import configure_logging
from app.services.deletion_service import DeletionService
from app.services.reconciliation_service import ReconciliationService

logger = structlog.get_logger()


def get_redis_settings() -> RedisSettings:
    """Get Redis settings for the ARQ worker."""
    return RedisSettings(
        host=settings.redis_host,
        port=settings.redis_port,
        username=settings.redis_username or None,
        password=settings.redis_password or None,
        conn_timeout=15,
        conn_retry_delay=1,
    )


async def startup(ctx: dict) -> None:
    """Prepare the worker context."""
    configure_logging()
    ctx["session_factory"] = AsyncSessionLocal
    logger.info("worker_started", app_name=settings.app_name)


async def shutdown(ctx: dict) -> None:
    """Release database connections."""
    await engine.dispose()
    logger.info("worker_stopped")


async def expire_pending_appointments_task(ctx: dict) -> dict:
    """
    Cancel pending appointments nobody confirmed before their start.

    Returns:
        dict with processed_count and failures
    """
    async with ctx["session_factory"]() as db:
        result = await ReconciliationService(db).sweep()
    return result.model_dump(mode="json")


async def purge_consensus_task(ctx: dict) -> dict:
    """
    Delete appointments that every party has hidden.

    Returns:
        dict with purged_count and failures
    """
    async with ctx["session_factory"]() as db:
        result = await DeletionService(db).purge_reached_consensus()
    return result.model_dump(mode="json")


class WorkerSettings:
    """ARQ worker settings."""

    functions = [
        expire_pending_appointments_task,
        purge_consensus_task,
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()

    max_jobs = 4
    job_timeout = 300
    keep_result = 3600

    cron_jobs = [
        cron(
            expire_pending_appointments_task,
            minute=set(range(0, 60, settings.expire_sweep_minutes)),
            run_at_startup=True,
        ),
        cron(purge_consensus_task, hour=settings.consensus_purge_hour, minute=0),
    ]
