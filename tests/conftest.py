import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Load environment variables from .env file, then fill in what tests need
load_dotenv()

_TEST_DIR = tempfile.mkdtemp(prefix="barberia-tests-")
TEST_DATABASE_URL = os.environ.setdefault(
    "TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
)

os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ["BUSINESS_TIMEZONE"] = "America/Bogota"
os.environ["SLOT_INTERVAL_MINUTES"] = "30"
os.environ["PENDING_GRACE_MINUTES"] = "0"
os.environ.setdefault("LOG_FORMAT", "console")

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import insert  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from app.database import get_db, to_async_url  # noqa: E402
from app.dependencies import get_barber_service  # noqa: E402
from app.main import app  # noqa: E402
from app.models import metadata  # noqa: E402
from app.models.appointments import appointment_slot_claims, appointments  # noqa: E402
from app.models.barbers import barbers  # noqa: E402
from app.models.catalog import services  # noqa: E402
from app.models.users import users  # noqa: E402
from app.schemas.actors import Actor, ActorRole  # noqa: E402
from app.services.availability_service import claimed_increments  # noqa: E402
from app.services.barber_service import BarberService  # noqa: E402
from tests.support import FROZEN_NOW, FULL_WEEK, auth_headers_for  # noqa: E402

# Fresh connection per session so concurrent sessions really contend
test_engine = create_async_engine(
    to_async_url(TEST_DATABASE_URL),
    echo=False,
    poolclass=NullPool,
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


@pytest.fixture
def session_factory(db_session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Factory for extra sessions on the same (already created) schema."""
    return TestSessionLocal


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_barber_service] = lambda: BarberService()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _insert_user(db: AsyncSession, role: str, name: str) -> Actor:
    user_id = uuid4()
    await db.execute(
        insert(users).values(
            id=user_id,
            email=f"{name}-{user_id.hex[:8]}@example.com",
            full_name=name.title(),
            role=role,
            is_active=True,
        )
    )
    await db.commit()
    return Actor(id=user_id, role=ActorRole(role))


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession) -> Actor:
    return await _insert_user(db_session, "customer", "carlos")


@pytest_asyncio.fixture
async def other_customer(db_session: AsyncSession) -> Actor:
    return await _insert_user(db_session, "customer", "diana")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> Actor:
    return await _insert_user(db_session, "admin", "admin")


@pytest_asyncio.fixture
async def barber_user(db_session: AsyncSession) -> Actor:
    return await _insert_user(db_session, "barber", "bruno")


@pytest_asyncio.fixture
async def other_barber_user(db_session: AsyncSession) -> Actor:
    return await _insert_user(db_session, "barber", "esteban")


async def _insert_barber(db: AsyncSession, user: Actor, schedule: dict) -> UUID:
    barber_id = uuid4()
    await db.execute(
        insert(barbers).values(
            id=barber_id,
            user_id=user.id,
            display_name=f"Barber {user.id.hex[:6]}",
            is_active=True,
            schedule=schedule,
        )
    )
    await db.commit()
    return barber_id


@pytest_asyncio.fixture
async def barber(db_session: AsyncSession, barber_user: Actor) -> UUID:
    """Barber working 09:00-18:00 every day."""
    return await _insert_barber(db_session, barber_user, FULL_WEEK)


@pytest_asyncio.fixture
async def other_barber(db_session: AsyncSession, other_barber_user: Actor) -> UUID:
    return await _insert_barber(db_session, other_barber_user, FULL_WEEK)


@pytest_asyncio.fixture
async def morning_barber(db_session: AsyncSession, barber_user: Actor) -> UUID:
    """Barber working Monday 09:00-12:00 only."""
    return await _insert_barber(
        db_session,
        barber_user,
        {
            "monday": {"start": "09:00", "end": "12:00", "available": True},
            "tuesday": {"start": "09:00", "end": "12:00", "available": False},
        },
    )


async def _insert_service(db: AsyncSession, name: str, duration: int, price: str) -> UUID:
    service_id = uuid4()
    await db.execute(
        insert(services).values(
            id=service_id,
            name=name,
            duration_minutes=duration,
            price=Decimal(price),
            is_active=True,
        )
    )
    await db.commit()
    return service_id


@pytest_asyncio.fixture
async def haircut(db_session: AsyncSession) -> UUID:
    """30-minute service."""
    return await _insert_service(db_session, "Haircut", 30, "25000.00")


@pytest_asyncio.fixture
async def full_service(db_session: AsyncSession) -> UUID:
    """60-minute service."""
    return await _insert_service(db_session, "Haircut and beard", 60, "40000.00")


InsertAppointment = Callable[..., Awaitable[UUID]]


@pytest.fixture
def insert_appointment(db_session: AsyncSession) -> InsertAppointment:
    """Insert an appointment row directly, in any status."""

    async def _insert(
        *,
        barber_id: UUID,
        customer_id: UUID,
        service_id: UUID,
        scheduled_start: datetime,
        duration_minutes: int = 30,
        price: str = "25000.00",
        status: str = "pending",
        **extra: Any,
    ) -> UUID:
        appointment_id = uuid4()
        await db_session.execute(
            insert(appointments).values(
                id=appointment_id,
                barber_id=barber_id,
                customer_id=customer_id,
                service_id=service_id,
                scheduled_start=scheduled_start,
                duration_minutes=duration_minutes,
                price=Decimal(price),
                status=status,
                created_at=FROZEN_NOW,
                updated_at=FROZEN_NOW,
                **extra,
            )
        )
        if status in ("pending", "confirmed"):
            claims = [
                {"appointment_id": appointment_id, "barber_id": barber_id, "slot_start": slot}
                for slot in claimed_increments(scheduled_start, duration_minutes, 30)
            ]
            await db_session.execute(insert(appointment_slot_claims), claims)
        await db_session.commit()
        return appointment_id

    return _insert


@pytest.fixture
def customer_headers(customer: Actor) -> dict:
    return auth_headers_for(customer)


@pytest.fixture
def barber_headers(barber_user: Actor) -> dict:
    return auth_headers_for(barber_user)


@pytest.fixture
def admin_headers(admin: Actor) -> dict:
    return auth_headers_for(admin)
