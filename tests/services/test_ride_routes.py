from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from src.services.ride_service.app import app
from src.services.ride_service.dependencies import get_ride_service

PASSENGER = {"X-User-Id": "p-1", "X-User-Role": "passenger"}
DRIVER_A = {"X-User-Id": "d-a", "X-User-Role": "driver"}
DRIVER_B = {"X-User-Id": "d-b", "X-User-Role": "driver"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}

RIDE_BODY = {"from": {"lat": 0, "lng": 0, "address": "A"}, "to": {"lat": 1, "lng": 1}}


@pytest_asyncio.fixture
async def client(ride_service):
    app.dependency_overrides[get_ride_service] = lambda: ride_service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _create_ride(client) -> dict:
    response = await client.post("/api/v1/rides", json=RIDE_BODY, headers=PASSENGER)
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_create_ride(client):
    ride = await _create_ride(client)

    assert ride["status"] == "bidding"
    assert ride["passenger_id"] == "p-1"
    assert ride["driver_id"] is None
    assert ride["price"] is None
    assert ride["from"]["address"] == "A"


@pytest.mark.asyncio
async def test_create_ride_requires_passenger(client):
    response = await client.post("/api/v1/rides", json=RIDE_BODY, headers=DRIVER_A)

    assert response.status_code == 403
    assert response.json()["error_code"] == "role_not_allowed"


@pytest.mark.asyncio
async def test_missing_identity_is_401(client):
    response = await client.post("/api/v1/rides", json=RIDE_BODY)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_role_is_403(client):
    response = await client.get("/api/v1/rides", headers={"X-User-Id": "x", "X-User-Role": "dispatcher"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_coordinates_is_400(client):
    body = {"from": {"lat": 91, "lng": 0}, "to": {"lat": 1, "lng": 1}}

    response = await client.post("/api/v1/rides", json=body, headers=PASSENGER)

    assert response.status_code == 400
    assert response.json()["error_code"] == "invalid_coordinates"
    assert response.json()["details"]["point"] == "from"


@pytest.mark.asyncio
async def test_bidding_and_matching_flow(client):
    ride = await _create_ride(client)
    ride_id = ride["id"]

    bid_a = await client.post(f"/api/v1/rides/{ride_id}/bids", json={"price": 500}, headers=DRIVER_A)
    bid_b = await client.post(f"/api/v1/rides/{ride_id}/bids", json={"price": 400}, headers=DRIVER_B)
    assert bid_a.status_code == 201
    assert bid_b.status_code == 201
    assert bid_b.json()["status"] == "pending"

    accepted = await client.post(
        f"/api/v1/rides/{ride_id}/accept", json={"bid_id": bid_b.json()["id"]}, headers=PASSENGER
    )
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "matched"
    assert accepted.json()["driver_id"] == "d-b"
    assert accepted.json()["price"] == 400

    bids = await client.get(f"/api/v1/rides/{ride_id}/bids", headers=PASSENGER)
    assert [b["status"] for b in bids.json()["bids"]] == ["rejected", "accepted"]

    late = await client.post(f"/api/v1/rides/{ride_id}/bids", json={"price": 300}, headers=DRIVER_A)
    assert late.status_code == 409
    assert late.json()["error_code"] == "ride_not_open_for_bidding"

    again = await client.post(
        f"/api/v1/rides/{ride_id}/accept", json={"bid_id": bid_a.json()["id"]}, headers=PASSENGER
    )
    assert again.status_code == 409
    assert again.json()["error_code"] == "invalid_status"


@pytest.mark.asyncio
async def test_status_flow(client):
    ride = await _create_ride(client)
    ride_id = ride["id"]
    bid = await client.post(f"/api/v1/rides/{ride_id}/bids", json={"price": 300}, headers=DRIVER_A)
    await client.post(f"/api/v1/rides/{ride_id}/accept", json={"bid_id": bid.json()["id"]}, headers=PASSENGER)

    forbidden = await client.patch(f"/api/v1/rides/{ride_id}/status", json={"status": "in_progress"}, headers=DRIVER_B)
    assert forbidden.status_code == 403

    started = await client.patch(f"/api/v1/rides/{ride_id}/status", json={"status": "in_progress"}, headers=DRIVER_A)
    assert started.status_code == 200
    assert started.json()["status"] == "in_progress"

    done = await client.patch(f"/api/v1/rides/{ride_id}/status", json={"status": "completed"}, headers=DRIVER_A)
    assert done.json()["status"] == "completed"

    cancel = await client.patch(f"/api/v1/rides/{ride_id}/status", json={"status": "cancelled"}, headers=PASSENGER)
    assert cancel.status_code == 409


@pytest.mark.asyncio
async def test_unsupported_status_is_400(client):
    ride = await _create_ride(client)

    response = await client.patch(f"/api/v1/rides/{ride['id']}/status", json={"status": "matched"}, headers=PASSENGER)

    assert response.status_code == 400
    assert response.json()["error_code"] == "unsupported_status"


@pytest.mark.asyncio
async def test_not_found(client):
    response = await client.get(f"/api/v1/rides/{uuid4()}", headers=PASSENGER)

    assert response.status_code == 404
    assert response.json()["error_code"] == "ride_not_found"


@pytest.mark.asyncio
async def test_listing_by_role(client):
    first = await _create_ride(client)
    await _create_ride(client)
    bid = await client.post(f"/api/v1/rides/{first['id']}/bids", json={"price": 300}, headers=DRIVER_A)
    await client.post(f"/api/v1/rides/{first['id']}/accept", json={"bid_id": bid.json()["id"]}, headers=PASSENGER)

    mine = await client.get("/api/v1/rides", headers=PASSENGER)
    driven = await client.get("/api/v1/rides", headers=DRIVER_A)
    available = await client.get("/api/v1/rides/available", headers=DRIVER_B)
    everything = await client.get("/api/v1/admin/rides?limit=1", headers=ADMIN)

    assert len(mine.json()["rides"]) == 2
    assert [r["id"] for r in driven.json()["rides"]] == [first["id"]]
    assert len(available.json()["rides"]) == 1
    assert len(everything.json()["rides"]) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("raw_price", ["Infinity", "-Infinity", "NaN"])
async def test_non_finite_bid_price_is_400(client, raw_price):
    ride = await _create_ride(client)

    response = await client.post(
        f"/api/v1/rides/{ride['id']}/bids",
        content=f'{{"price": {raw_price}}}',
        headers={**DRIVER_A, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "invalid_price"
    bids = await client.get(f"/api/v1/rides/{ride['id']}/bids", headers=PASSENGER)
    assert bids.json()["bids"] == []


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -3])
async def test_non_positive_limit_uses_default(client, limit):
    for _ in range(3):
        await _create_ride(client)

    response = await client.get(f"/api/v1/rides?limit={limit}", headers=PASSENGER)

    assert response.status_code == 200
    assert len(response.json()["rides"]) == 3


@pytest.mark.asyncio
async def test_role_guarded_listings(client):
    assert (await client.get("/api/v1/rides/available", headers=PASSENGER)).status_code == 403
    assert (await client.get("/api/v1/admin/rides", headers=DRIVER_A)).status_code == 403


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["service"] == "ride_service"


@pytest.mark.asyncio
async def test_ready_reports_dependencies(client):
    db = MagicMock()
    db.health_check = AsyncMock(return_value=False)

    with patch("src.services.ride_service.app.get_db", return_value=db):
        response = await client.get("/ready")

    assert response.status_code == 503
    assert response.json()["dependencies"]["postgres"] == "unhealthy"
