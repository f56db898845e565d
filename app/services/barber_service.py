"""Read-only access to the barber directory and the service catalog."""

from uuid import UUID

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundException, ScheduleException
from app.core.redis_client import CacheManager
from app.models.barbers import barbers
from app.models.catalog import services
from app.schemas.barbers import BarberProfile, WeeklySchedule
from app.schemas.catalog import ServiceInfo

logger = structlog.get_logger()


class BarberService:
    """Lookups against the barber directory and the service catalog."""

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def _get_barber_cache_key(barber_id: UUID) -> str:
        """Generate cache key for barber."""
        return f"barber:{barber_id}"

    @staticmethod
    def _to_profile(row: dict) -> BarberProfile:
        """Convert a ``barbers`` row into a profile, validating its schedule."""
        try:
            schedule = WeeklySchedule.model_validate(row["schedule"] or {})
        except ValidationError as e:
            logger.error("barber_schedule_invalid", barber_id=str(row["id"]), error=str(e))
            raise ScheduleException("Barber has no valid schedule configured") from e

        return BarberProfile(
            id=row["id"],
            user_id=row["user_id"],
            display_name=row["display_name"],
            is_active=row["is_active"],
            schedule=schedule,
        )

    async def get_barber(
        self,
        db: AsyncSession,
        barber_id: UUID,
        use_cache: bool = True,
    ) -> BarberProfile | None:
        """
        Get barber by ID with caching.

        ``use_cache=False`` skips the cached copy and refreshes it from the
        directory, for writes that must not act on a stale ``is_active``.
        """
        if self.cache and use_cache:
            cached = self.cache.get_json(self._get_barber_cache_key(barber_id))
            if cached:
                return BarberProfile.model_validate(cached)

        query = select(barbers).where(barbers.c.id == barber_id)
        result = await db.execute(query)
        row = result.mappings().first()

        if not row:
            return None

        profile = self._to_profile(dict(row))

        if self.cache:
            self.cache.set_json(
                self._get_barber_cache_key(barber_id),
                profile.model_dump(mode="json"),
                ttl=settings.barber_cache_ttl,
            )

        return profile

    async def get_active_barber(
        self,
        db: AsyncSession,
        barber_id: UUID,
        use_cache: bool = True,
    ) -> BarberProfile:
        """
        Get a barber that can take bookings.

        Raises:
            NotFoundException: If the barber does not exist or is inactive
        """
        profile = await self.get_barber(db, barber_id, use_cache=use_cache)
        if profile is None or not profile.is_active:
            raise NotFoundException("Barber not found")
        return profile

    async def get_barber_id_for_user(self, db: AsyncSession, user_id: UUID) -> UUID | None:
        """Get the ID of the barber profile owned by a user account."""
        query = select(barbers.c.id).where(barbers.c.user_id == user_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_active_service(self, db: AsyncSession, service_id: UUID) -> ServiceInfo:
        """
        Get a bookable catalog service.

        Raises:
            NotFoundException: If the service does not exist or is inactive
        """
        query = select(services).where(services.c.id == service_id)
        result = await db.execute(query)
        row = result.mappings().first()

        if not row or not row["is_active"]:
            raise NotFoundException("Service not found")

        return ServiceInfo.model_validate(dict(row))
