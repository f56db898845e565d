"""Tests for Redis caching of barber directory lookups."""

from unittest.mock import MagicMock
from uuid import UUID

import pytest
import redis
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundException
from app.core.redis_client import CacheManager
from app.models.barbers import barbers
from app.schemas.actors import Actor
from app.services.appointment_service import AppointmentService
from app.services.barber_service import BarberService
from tests.support import NEXT_MONDAY, frozen_clock, local_instant


def _dict_backed_redis() -> tuple[MagicMock, dict]:
    store: dict[str, str] = {}
    mock_redis = MagicMock()
    mock_redis.get.side_effect = store.get
    mock_redis.set.side_effect = lambda key, value: store.__setitem__(key, value)
    mock_redis.setex.side_effect = lambda key, ttl, value: store.__setitem__(key, value)
    return mock_redis, store


def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    mock_redis.get.return_value = None
    assert cache_manager.get_json("barber:1") is None
    mock_redis.get.assert_called_once_with("barber:1")

    mock_redis.get.return_value = '{"display_name": "Bruno"}'
    assert cache_manager.get_json("barber:1") == {"display_name": "Bruno"}


def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.set_json("barber:1", {"id": 1}) is True
    mock_redis.set.assert_called_once()

    mock_redis.reset_mock()
    assert cache_manager.set_json("barber:1", {"id": 1}, ttl=300) is True
    mock_redis.setex.assert_called_once()


def test_cache_manager_fails_open():
    """Redis errors degrade to misses instead of raising."""
    mock_redis = MagicMock()
    mock_redis.get.side_effect = redis.ConnectionError("down")
    mock_redis.setex.side_effect = redis.ConnectionError("down")
    mock_redis.delete.side_effect = redis.ConnectionError("down")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("barber:1") is None
    assert cache_manager.set_json("barber:1", {"id": 1}, ttl=60) is False
    assert cache_manager.delete("barber:1") is False


def test_cache_manager_ignores_corrupt_entries():
    mock_redis = MagicMock()
    mock_redis.get.return_value = "{not json"
    assert CacheManager(redis_client=mock_redis).get_json("barber:1") is None


@pytest.mark.asyncio
async def test_barber_lookup_is_cached(db_session: AsyncSession, barber: UUID):
    """Second lookup is served from the cache even after the row is gone."""
    mock_redis, store = _dict_backed_redis()
    service = BarberService(CacheManager(redis_client=mock_redis))

    first = await service.get_barber(db_session, barber)
    assert first is not None
    assert f"barber:{barber}" in store
    mock_redis.setex.assert_called_once()
    assert mock_redis.setex.call_args.args[1] == settings.barber_cache_ttl

    await db_session.execute(delete(barbers).where(barbers.c.id == barber))
    await db_session.commit()

    second = await service.get_barber(db_session, barber)
    assert second == first
    assert second.schedule.for_weekday(0) is not None


@pytest.mark.asyncio
async def test_barber_lookup_survives_redis_outage(db_session: AsyncSession, barber: UUID):
    mock_redis = MagicMock()
    mock_redis.get.side_effect = redis.ConnectionError("down")
    mock_redis.setex.side_effect = redis.ConnectionError("down")
    service = BarberService(CacheManager(redis_client=mock_redis))

    profile = await service.get_barber(db_session, barber)
    assert profile is not None
    assert profile.id == barber


@pytest.mark.asyncio
async def test_booking_rechecks_deactivated_barber(
    db_session: AsyncSession,
    barber: UUID,
    haircut: UUID,
    customer: Actor,
) -> None:
    """A barber deactivated after caching can still be browsed but not booked."""
    mock_redis, _ = _dict_backed_redis()
    directory = BarberService(CacheManager(redis_client=mock_redis))
    await directory.get_barber(db_session, barber)

    await db_session.execute(update(barbers).where(barbers.c.id == barber).values(is_active=False))
    await db_session.commit()

    assert (await directory.get_active_barber(db_session, barber)).is_active

    service = AppointmentService(db_session, directory, clock=frozen_clock)
    with pytest.raises(NotFoundException):
        await service.create_appointment(
            customer.id, barber, haircut, local_instant(NEXT_MONDAY, 10)
        )

    # The fresh read replaced the stale cache entry
    with pytest.raises(NotFoundException):
        await directory.get_active_barber(db_session, barber)
