import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from rentbill.api.deps import get_dispatcher
from rentbill.database import get_db
from rentbill.main import app

from tests.helpers import RecordingDispatcher


@pytest.fixture
async def client(session_factory):
    dispatcher = RecordingDispatcher()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        client.dispatcher = dispatcher
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def tenant_in_room(client):
    building = await client.post("/api/v1/buildings", json={"name": "Sunrise Residency"})
    assert building.status_code == 201
    room = await client.post("/api/v1/rooms", json={
        "building_id": building.json()["id"],
        "number": "101",
        "monthly_rent": "3000",
    })
    assert room.status_code == 201
    tenant = await client.post("/api/v1/tenants", json={
        "full_name": "Asha Verma",
        "phone": "9876543210",
        "room_id": room.json()["id"],
        "move_in_date": "2026-01-01T00:00:00Z",
    })
    assert tenant.status_code == 201
    return tenant.json()


async def test_bill_flow(client, tenant_in_room):
    payload = {
        "tenant_id": tenant_in_room["id"],
        "room_id": tenant_in_room["room_id"],
        "billing_month": "2026-06",
        "electricity": "150",
    }

    created = await client.post("/api/v1/bills/generate", json=payload)
    assert created.status_code == 201
    bill = created.json()
    assert bill["total_amount"] > 0
    assert bill["payment_status"] == "NOT_PAID"

    duplicate = await client.post("/api/v1/bills/generate", json=payload)
    assert duplicate.status_code == 409
    assert duplicate.headers["X-Error-Code"] == "DUPLICATE_BILL"

    paid = await client.put(f"/api/v1/bills/{bill['id']}/pay", json={"payment_ref": "UPI-1"})
    assert paid.status_code == 200
    assert paid.json()["is_paid"]

    again = await client.put(f"/api/v1/bills/{bill['id']}/pay", json={"payment_ref": "UPI-2"})
    assert again.status_code == 409
    assert again.headers["X-Error-Code"] == "ALREADY_PAID"

    listed = await client.get("/api/v1/bills", params={"tenant_id": tenant_in_room["id"]})
    assert listed.json()["total"] == 1


async def test_missing_bill_is_404(client):
    response = await client.get(f"/api/v1/bills/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


async def test_public_lookup_needs_a_key(client):
    response = await client.get("/api/v1/bills/public")

    assert response.status_code == 400


async def test_occupancy_preview(client, tenant_in_room):
    response = await client.get(
        f"/api/v1/rooms/{tenant_in_room['room_id']}/occupancy", params={"month": "2026-06"}
    )

    assert response.status_code == 200
    tenants = response.json()["tenants"]
    assert [entry["tenant_code"] for entry in tenants] == ["T001"]
    assert tenants[0]["elapsed_days"] == 30
