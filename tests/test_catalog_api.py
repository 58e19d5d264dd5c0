"""Tests for the catalog endpoints."""

from __future__ import annotations

import pytest

from inventory.config import AdminSettings
from inventory.models import Vehicle
from tests.conftest import ADMIN_KEY

ADMIN = {"X-Admin-Key": ADMIN_KEY}
UPLOAD_URL = "https://demo.supabase.co/storage/v1/object/public/own-vehicle-uploads/manual/yaris-1.jpg"


async def _seed(session) -> dict[str, Vehicle]:
    vehicles = {
        "audi": Vehicle(
            hexon_nr=101,
            make="Audi",
            model="A4",
            fuel_type="Diesel",
            transmission="Handgeschakeld",
            price=18000,
            mileage=140000,
            year=2017,
            categories=["Gezinswagens"],
            display_order=2,
        ),
        "bmw": Vehicle(
            hexon_nr=102,
            make="BMW",
            model="i3",
            fuel_type="Elektrisch",
            transmission="Automaat",
            price=25000,
            mileage=30000,
            year=2023,
            categories=["Stadswagens", "Elek/Hybrid", "Recent"],
            image_urls="https://img.example.com/102/1.jpg,https://img.example.com/102/2.jpg",
            display_order=1,
        ),
        "citroen": Vehicle(
            hexon_nr=103,
            make="Citroen",
            model="C3",
            fuel_type="Benzine",
            transmission="Handgeschakeld",
            price=9000,
            mileage=90000,
            year=2015,
            categories=["Stadswagens"],
            status="sold",
            display_order=3,
        ),
        "dacia": Vehicle(
            hexon_nr=104,
            make="Dacia",
            model="Duster",
            fuel_type="LPG",
            transmission="Handgeschakeld",
            price=12000,
            mileage=60000,
            year=2019,
            categories=["SUV"],
            status="archived",
            display_order=0,
        ),
    }
    session.add_all(vehicles.values())
    await session.commit()
    return vehicles


def _makes(response) -> list[str]:
    return [vehicle["make"] for vehicle in response.json()]


@pytest.mark.asyncio
async def test_list_hides_archived_in_display_order(client, session) -> None:
    await _seed(session)

    response = await client.get("/vehicles")

    assert response.status_code == 200
    assert _makes(response) == ["BMW", "Audi", "Citroen"]

    bmw = response.json()[0]
    assert bmw["images"] == ["https://img.example.com/102/1.jpg", "https://img.example.com/102/2.jpg"]
    assert bmw["image"] == "https://img.example.com/102/1.jpg"
    assert bmw["featured"] is True
    assert bmw["is_sold"] is False
    assert "image_urls" not in bmw

    citroen = response.json()[2]
    assert citroen["is_sold"] is True
    assert citroen["image"] == ""


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("params", "expected"),
    [
        ({"include_sold": "false"}, ["BMW", "Audi"]),
        ({"include_archived": "true"}, ["Dacia", "BMW", "Audi", "Citroen"]),
        ({"category": "Stadswagens"}, ["BMW", "Citroen"]),
        ({"category": "Elek/Hybrid"}, ["BMW"]),
        ({"make": "Audi"}, ["Audi"]),
        ({"fuel": "Benzine"}, ["Citroen"]),
        ({"transmission": "Handgeschakeld"}, ["Audi", "Citroen"]),
        ({"max_price": "20000"}, ["Audi", "Citroen"]),
        ({"max_mileage": "100000"}, ["BMW", "Citroen"]),
        ({"min_year": "2016"}, ["BMW", "Audi"]),
        ({"sort": "price-asc"}, ["Citroen", "Audi", "BMW"]),
        ({"sort": "price-desc"}, ["BMW", "Audi", "Citroen"]),
        ({"sort": "mileage-asc"}, ["BMW", "Citroen", "Audi"]),
        ({"sort": "alphabetical"}, ["Audi", "BMW", "Citroen"]),
        ({"sort": "newest"}, ["Citroen", "BMW", "Audi"]),
        ({"skip": "1", "limit": "1"}, ["Audi"]),
        ({"category": "Stadswagens", "skip": "1"}, ["Citroen"]),
    ],
)
async def test_list_filters_and_sorting(client, session, params, expected) -> None:
    await _seed(session)

    response = await client.get("/vehicles", params=params)

    assert response.status_code == 200
    assert _makes(response) == expected


@pytest.mark.asyncio
async def test_invalid_sort_is_rejected(client) -> None:
    response = await client.get("/vehicles", params={"sort": "cheapest"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_facets_skip_archived(client, session) -> None:
    await _seed(session)

    response = await client.get("/vehicles/facets")

    assert response.status_code == 200
    assert response.json() == {
        "makes": ["Audi", "BMW", "Citroen"],
        "fuels": ["Benzine", "Diesel", "Elektrisch"],
        "transmissions": ["Automaat", "Handgeschakeld"],
    }


@pytest.mark.asyncio
async def test_vehicle_detail(client, session) -> None:
    vehicles = await _seed(session)

    response = await client.get(f"/vehicles/{vehicles['audi'].id}")

    assert response.status_code == 200
    assert response.json()["hexon_nr"] == 101
    assert response.json()["model"] == "A4"


@pytest.mark.asyncio
async def test_vehicle_detail_not_found(client) -> None:
    response = await client.get("/vehicles/999")

    assert response.status_code == 404
    assert response.json() == {"error": "not_found", "detail": "Vehicle 999 not found"}


@pytest.mark.asyncio
async def test_admin_requires_key(client) -> None:
    missing = await client.post("/vehicles", json={"make": "Toyota", "model": "Yaris"})
    assert missing.status_code == 401

    wrong = await client.post("/vehicles", json={"make": "Toyota", "model": "Yaris"}, headers={"X-Admin-Key": "x"})
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_admin_unconfigured(client, settings) -> None:
    settings.admin = AdminSettings(api_key=None)

    response = await client.post("/vehicles", json={"make": "Toyota", "model": "Yaris"}, headers=ADMIN)

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_create_vehicle_generates_inventory_number(client) -> None:
    response = await client.post(
        "/vehicles",
        json={"make": "Toyota", "model": "Yaris", "price": 15950, "images": [UPLOAD_URL]},
        headers=ADMIN,
    )

    assert response.status_code == 201
    body = response.json()
    assert isinstance(body["hexon_nr"], int)
    assert body["status"] == "active"
    assert body["price"] == 15950
    assert body["mileage"] == 0
    assert body["images"] == [UPLOAD_URL]
    assert body["sold_at"] is None


@pytest.mark.asyncio
async def test_create_sold_vehicle_stamps_sold_at(client) -> None:
    response = await client.post(
        "/vehicles",
        json={"make": "Toyota", "model": "Yaris", "status": "sold"},
        headers=ADMIN,
    )

    assert response.status_code == 201
    assert response.json()["is_sold"] is True
    assert response.json()["sold_at"] is not None


@pytest.mark.asyncio
async def test_create_duplicate_inventory_number(client, session) -> None:
    await _seed(session)

    response = await client.post(
        "/vehicles",
        json={"hexon_nr": 101, "make": "Audi", "model": "A6"},
        headers=ADMIN,
    )

    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_vehicle"


@pytest.mark.asyncio
async def test_create_requires_make_and_model(client) -> None:
    response = await client.post("/vehicles", json={"make": "Toyota"}, headers=ADMIN)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_changes_only_supplied_fields(client, session) -> None:
    vehicles = await _seed(session)
    vehicle_id = vehicles["audi"].id

    response = await client.put(
        f"/vehicles/{vehicle_id}",
        json={"price": 17500, "mileage": None, "description": "Nette auto"},
        headers=ADMIN,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["price"] == 17500
    assert body["mileage"] == 140000
    assert body["description"] == "Nette auto"
    assert body["make"] == "Audi"
    assert body["categories"] == ["Gezinswagens"]


@pytest.mark.asyncio
async def test_update_status_keeps_sold_at_in_step(client, session) -> None:
    vehicles = await _seed(session)
    vehicle_id = vehicles["audi"].id

    sold = await client.put(f"/vehicles/{vehicle_id}", json={"status": "sold"}, headers=ADMIN)
    assert sold.json()["sold_at"] is not None

    active = await client.put(f"/vehicles/{vehicle_id}", json={"status": "active"}, headers=ADMIN)
    assert active.json()["sold_at"] is None


@pytest.mark.asyncio
async def test_update_rejects_taken_inventory_number(client, session) -> None:
    vehicles = await _seed(session)

    response = await client.put(f"/vehicles/{vehicles['audi'].id}", json={"hexon_nr": 102}, headers=ADMIN)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_update_unknown_vehicle(client) -> None:
    response = await client.put("/vehicles/999", json={"price": 1}, headers=ADMIN)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_toggle_sold(client, session) -> None:
    vehicles = await _seed(session)
    vehicle_id = vehicles["audi"].id

    sold = await client.post(f"/vehicles/{vehicle_id}/sold", headers=ADMIN)
    assert sold.status_code == 200
    assert sold.json()["status"] == "sold"
    assert sold.json()["sold_at"] is not None

    back = await client.post(f"/vehicles/{vehicle_id}/sold", headers=ADMIN)
    assert back.json()["status"] == "active"
    assert back.json()["sold_at"] is None


@pytest.mark.asyncio
async def test_toggle_archive(client, session) -> None:
    vehicles = await _seed(session)

    archived = await client.post(f"/vehicles/{vehicles['citroen'].id}/archive", headers=ADMIN)
    assert archived.json()["is_archived"] is True
    assert archived.json()["sold_at"] is None

    restored = await client.post(f"/vehicles/{vehicles['dacia'].id}/archive", headers=ADMIN)
    assert restored.json()["status"] == "active"

    listing = await client.get("/vehicles")
    assert _makes(listing) == ["Dacia", "BMW", "Audi"]


@pytest.mark.asyncio
async def test_reorder(client, session) -> None:
    vehicles = await _seed(session)
    ids = [vehicles["citroen"].id, vehicles["audi"].id, vehicles["bmw"].id]

    response = await client.put("/vehicles/order", json={"ids": ids}, headers=ADMIN)

    assert response.status_code == 204
    assert _makes(await client.get("/vehicles")) == ["Citroen", "Audi", "BMW"]


@pytest.mark.asyncio
async def test_reorder_with_unknown_id_changes_nothing(client, session) -> None:
    vehicles = await _seed(session)

    response = await client.put(
        "/vehicles/order",
        json={"ids": [vehicles["citroen"].id, 999]},
        headers=ADMIN,
    )

    assert response.status_code == 404
    assert _makes(await client.get("/vehicles")) == ["BMW", "Audi", "Citroen"]


@pytest.mark.asyncio
async def test_delete_removes_uploaded_images(client, session, storage) -> None:
    vehicle = Vehicle(
        hexon_nr=555,
        make="Toyota",
        model="Yaris",
        image_urls=f"{UPLOAD_URL},https://img.example.com/555/1.jpg",
    )
    session.add(vehicle)
    await session.commit()

    response = await client.delete(f"/vehicles/{vehicle.id}", headers=ADMIN)

    assert response.status_code == 204
    assert storage.removed == [("own-vehicle-uploads", ["manual/yaris-1.jpg"])]
    assert (await client.get(f"/vehicles/{vehicle.id}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_unknown_vehicle(client) -> None:
    response = await client.delete("/vehicles/999", headers=ADMIN)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_health_and_index(client, settings) -> None:
    health = await client.get("/health")
    assert health.json() == {"status": "ok", "version": settings.version}

    index = await client.get("/")
    assert index.json()["app"] == "Dealer Inventory Service"
    assert index.json()["endpoints"]["feed_import"] == "/mobilox-import"
