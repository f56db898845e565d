"""Tests for appointment endpoints."""

from decimal import Decimal
from uuid import UUID

import pytest
from httpx import AsyncClient

from app.schemas.actors import Actor
from tests.support import auth_headers_for, business_day_from_today

BOOKING_DAY = business_day_from_today(7)


def _at(hour: int, minute: int = 0) -> str:
    """ISO timestamp on the booking day in Bogota time."""
    return f"{BOOKING_DAY.isoformat()}T{hour:02d}:{minute:02d}:00-05:00"


async def _book(
    client: AsyncClient,
    headers: dict,
    barber: UUID,
    service: UUID,
    hour: int = 10,
    minute: int = 0,
) -> dict:
    response = await client.post(
        "/api/v1/appointments/",
        json={"barber_id": str(barber), "service_id": str(service), "scheduled_start": _at(hour, minute)},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_availability_is_public(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
) -> None:
    """Test listing free slots before and after a booking."""
    params = {"barber_id": str(barber), "date": BOOKING_DAY.isoformat()}

    response = await client.get("/api/v1/appointments/availability", params=params)
    assert response.status_code == 200
    data = response.json()
    assert data["timezone"] == "America/Bogota"
    assert data["slot_interval_minutes"] == 30
    assert len(data["slots"]) == 18

    await _book(client, customer_headers, barber, haircut, 10)

    response = await client.get("/api/v1/appointments/availability", params=params)
    assert len(response.json()["slots"]) == 17


@pytest.mark.asyncio
async def test_availability_bad_date(client: AsyncClient, barber: UUID) -> None:
    response = await client.get(
        "/api/v1/appointments/availability",
        params={"barber_id": str(barber), "date": "next monday"},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationException"


@pytest.mark.asyncio
async def test_create_appointment(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer: Actor,
    customer_headers: dict,
) -> None:
    """Test creating an appointment."""
    data = await _book(client, customer_headers, barber, haircut, 10)

    assert data["status"] == "pending"
    assert data["customer_id"] == str(customer.id)
    assert data["duration_minutes"] == 30
    assert Decimal(data["price"]) == Decimal("25000")
    assert data["deletion_flags"] == {"customer": False, "barber": False, "admin": False}
    assert "id" in data


@pytest.mark.asyncio
async def test_double_booking_conflict(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
    other_customer: Actor,
) -> None:
    await _book(client, customer_headers, barber, haircut, 10)

    response = await client.post(
        "/api/v1/appointments/",
        json={"barber_id": str(barber), "service_id": str(haircut), "scheduled_start": _at(10)},
        headers=auth_headers_for(other_customer),
    )
    assert response.status_code == 409
    assert response.json()["error"] == "ConflictException"


@pytest.mark.asyncio
async def test_booking_outside_hours(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
) -> None:
    response = await client.post(
        "/api/v1/appointments/",
        json={"barber_id": str(barber), "service_id": str(haircut), "scheduled_start": _at(6)},
        headers=customer_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"] == "ScheduleException"


@pytest.mark.asyncio
async def test_who_may_book(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer: Actor,
    barber_headers: dict,
    admin_headers: dict,
) -> None:
    payload = {"barber_id": str(barber), "service_id": str(haircut), "scheduled_start": _at(11)}

    response = await client.post("/api/v1/appointments/", json=payload, headers=barber_headers)
    assert response.status_code == 403

    response = await client.post("/api/v1/appointments/", json=payload, headers=admin_headers)
    assert response.status_code == 422

    payload["customer_id"] = str(customer.id)
    response = await client.post("/api/v1/appointments/", json=payload, headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["customer_id"] == str(customer.id)


@pytest.mark.asyncio
async def test_requires_authentication(client: AsyncClient) -> None:
    response = await client.get("/api/v1/appointments/")
    assert response.status_code in (401, 403)

    response = await client.get(
        "/api/v1/appointments/", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_and_get_appointments(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
    barber_headers: dict,
    other_customer: Actor,
) -> None:
    """Test listing and fetching appointments by role."""
    first = await _book(client, customer_headers, barber, haircut, 14)
    second = await _book(client, customer_headers, barber, haircut, 9)

    response = await client.get("/api/v1/appointments/", headers=customer_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert [item["id"] for item in data["items"]] == [second["id"], first["id"]]

    response = await client.get("/api/v1/appointments/", headers=barber_headers)
    assert response.json()["total"] == 2

    response = await client.get(
        "/api/v1/appointments/", params={"status": "confirmed"}, headers=customer_headers
    )
    assert response.json()["total"] == 0

    response = await client.get(f"/api/v1/appointments/{first['id']}", headers=customer_headers)
    assert response.status_code == 200
    assert response.json()["id"] == first["id"]

    response = await client.get(
        f"/api/v1/appointments/{first['id']}", headers=auth_headers_for(other_customer)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_status_transitions(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
    barber_headers: dict,
    admin_headers: dict,
) -> None:
    created = await _book(client, customer_headers, barber, haircut, 10)
    base = f"/api/v1/appointments/{created['id']}"

    response = await client.post(f"{base}/approve", headers=customer_headers)
    assert response.status_code == 403

    response = await client.post(f"{base}/approve", headers=barber_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    response = await client.post(f"{base}/approve", headers=barber_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidStateException"

    response = await client.post(f"{base}/complete", headers=admin_headers)
    assert response.status_code == 403

    response = await client.post(f"{base}/no-show", headers=barber_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "no_show"


@pytest.mark.asyncio
async def test_cancel_appointment(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
) -> None:
    created = await _book(client, customer_headers, barber, haircut, 10)
    url = f"/api/v1/appointments/{created['id']}/cancel"

    response = await client.post(url, json={"reason": ""}, headers=customer_headers)
    assert response.status_code == 422

    response = await client.post(url, json={"reason": "   "}, headers=customer_headers)
    assert response.status_code == 422

    response = await client.post(url, json={"reason": "Travelling"}, headers=customer_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["cancelled_by"] == "customer"
    assert data["cancellation_reason"] == "Travelling"
    assert data["cancelled_at"] is not None


@pytest.mark.asyncio
async def test_reschedule_appointment(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
    other_customer: Actor,
) -> None:
    created = await _book(client, customer_headers, barber, haircut, 10)
    await _book(client, auth_headers_for(other_customer), barber, haircut, 12)
    url = f"/api/v1/appointments/{created['id']}/reschedule"

    response = await client.post(url, json={"scheduled_start": _at(12)}, headers=customer_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "ConflictException"

    response = await client.post(url, json={"scheduled_start": _at(15)}, headers=customer_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "pending"

    params = {"barber_id": str(barber), "date": BOOKING_DAY.isoformat()}
    response = await client.get("/api/v1/appointments/availability", params=params)
    starts = response.json()["slots"]
    assert len(starts) == 16


@pytest.mark.asyncio
async def test_hide_restore_and_purge(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
    barber_headers: dict,
    admin_headers: dict,
) -> None:
    created = await _book(client, customer_headers, barber, haircut, 10)
    url = f"/api/v1/appointments/{created['id']}"

    response = await client.delete(url, headers=customer_headers)
    assert response.status_code == 200
    assert response.json()["deletion_flags"]["customer"] is True
    assert response.json()["purged"] is False

    assert (await client.get(url, headers=customer_headers)).status_code == 404
    assert (await client.get(url, headers=barber_headers)).status_code == 200

    response = await client.post(f"{url}/restore", json={"role": "customer"}, headers=customer_headers)
    assert response.status_code == 403

    response = await client.post(f"{url}/restore", json={"role": "customer"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["deletion_flags"]["customer"] is False
    assert (await client.get(url, headers=customer_headers)).status_code == 200

    assert (await client.delete(f"{url}/purge", headers=barber_headers)).status_code == 403
    assert (await client.delete(f"{url}/purge", headers=admin_headers)).status_code == 204
    assert (await client.get(url, headers=admin_headers)).status_code == 404


@pytest.mark.asyncio
async def test_consensus_over_http(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
    barber_headers: dict,
    admin_headers: dict,
) -> None:
    created = await _book(client, customer_headers, barber, haircut, 10)
    url = f"/api/v1/appointments/{created['id']}"

    await client.delete(url, headers=customer_headers)
    await client.delete(url, headers=barber_headers)
    response = await client.delete(url, headers=admin_headers)

    assert response.json()["purged"] is True
    assert (await client.get(url, headers=admin_headers)).status_code == 404


@pytest.mark.asyncio
async def test_stats_endpoint(
    client: AsyncClient,
    barber: UUID,
    haircut: UUID,
    customer_headers: dict,
    admin_headers: dict,
) -> None:
    await _book(client, customer_headers, barber, haircut, 10)
    await _book(client, customer_headers, barber, haircut, 11)

    params = [
        ("from", f"{BOOKING_DAY.isoformat()}T00:00:00-05:00"),
        ("to", f"{BOOKING_DAY.isoformat()}T23:59:00-05:00"),
        ("group_by", "status"),
        ("group_by", "day"),
    ]
    response = await client.get("/api/v1/appointments/stats", params=params, headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["group_by"] == ["status", "day"]
    assert data["rows"] == [
        {
            "status": "pending",
            "barber_id": None,
            "bucket": BOOKING_DAY.isoformat(),
            "count": 2,
            "revenue": "0",
        }
    ]

    response = await client.get(
        "/api/v1/appointments/stats",
        params=[("from", params[1][1]), ("to", params[0][1])],
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_maintenance_endpoints(
    client: AsyncClient,
    customer_headers: dict,
    admin_headers: dict,
) -> None:
    response = await client.post("/api/v1/admin/maintenance/expire-pending", headers=customer_headers)
    assert response.status_code == 403

    response = await client.post("/api/v1/admin/maintenance/expire-pending", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"processed_count": 0, "failures": []}

    response = await client.post("/api/v1/admin/maintenance/purge-consensus", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"purged_count": 0, "failures": []}
