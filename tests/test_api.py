from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from booking_service.app.database import get_db
from booking_service.app.main import app, get_lifecycle, get_maintenance, get_payments

from conftest import day


@pytest.fixture
async def client(session_factory, manager, ledger, workflow):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lifecycle] = lambda: manager
    app.dependency_overrides[get_payments] = lambda: ledger
    app.dependency_overrides[get_maintenance] = lambda: workflow

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def booking_body(fleet, start=0, end=3, **overrides):
    body = {
        "customer_id": fleet.customer_id,
        "vehicle_id": fleet.vehicle_id,
        "pickup_location_id": fleet.pickup_location_id,
        "dropoff_location_id": fleet.dropoff_location_id,
        "pickup_date": day(start).isoformat(),
        "expected_return_date": day(end).isoformat(),
    }
    body.update(overrides)
    return body


async def test_fleet_setup_through_the_api(client):
    response = await client.post("/categories/", json={"category_name": "SUV", "daily_rate": "60.00"})
    assert response.status_code == 201
    category = response.json()

    response = await client.post("/vehicles/", json={
        "registration_number": "KDC 789C",
        "make": "Toyota",
        "model": "Prado",
        "year_manufactured": 2021,
        "color": "Black",
        "fuel_type": "Diesel",
        "transmission": "Automatic",
        "seating_capacity": 7,
        "category_id": category["id"],
    })
    assert response.status_code == 201
    vehicle = response.json()
    assert vehicle["current_status"] == "Available"
    assert vehicle["maintenance_hold"] is False

    response = await client.post("/customers/", json={
        "first_name": "Wanjiku",
        "last_name": "Mwangi",
        "email": "wanjiku@example.com",
        "phone": "+254722000000",
        "date_of_birth": "1992-08-09",
        "driving_license_number": "DL-9001",
        "license_expiry_date": "2031-08-09",
        "address": "7 Ngong Road",
        "city": "Nairobi",
        "postal_code": "00200",
    })
    assert response.status_code == 201
    assert response.json()["country"] == "Kenya"

    response = await client.post("/locations/", json={
        "location_name": "Westlands", "address": "Waiyaki Way", "city": "Nairobi",
        "phone": "+254200000003", "operating_hours": "07:00-21:00",
    })
    assert response.status_code == 201

    response = await client.get("/vehicles/", params={"available_only": True})
    assert [v["registration_number"] for v in response.json()] == ["KDC 789C"]


async def test_duplicate_registration_is_a_conflict(client, fleet):
    response = await client.post("/vehicles/", json={
        "registration_number": "KDA 123A",
        "make": "Nissan",
        "model": "Note",
        "year_manufactured": 2018,
        "color": "White",
        "fuel_type": "Petrol",
        "transmission": "Automatic",
        "seating_capacity": 5,
        "category_id": fleet.category_id,
    })

    assert response.status_code == 409


async def test_invalid_customer_email_is_rejected(client):
    response = await client.post("/customers/", json={
        "first_name": "No",
        "last_name": "Mail",
        "email": "not-an-email",
        "phone": "0",
        "date_of_birth": "1990-01-01",
        "driving_license_number": "DL-X",
        "license_expiry_date": "2031-01-01",
        "address": "-",
        "city": "-",
        "postal_code": "-",
    })

    assert response.status_code == 422


async def test_booking_flow(client, fleet):
    response = await client.post("/quotes/", json={
        "vehicle_id": fleet.vehicle_id,
        "pickup_date": day(0).isoformat(),
        "expected_return_date": day(3).isoformat(),
    })
    assert response.status_code == 200
    assert Decimal(response.json()["total_amount"]) == Decimal("87.00")

    response = await client.post("/bookings/", json=booking_body(fleet))
    assert response.status_code == 201
    confirmation = response.json()
    assert confirmation["booking_status"] == "Confirmed"
    assert confirmation["booking_reference"].startswith("BK")
    assert confirmation["price"]["total_days"] == 3
    assert Decimal(confirmation["price"]["tax_amount"]) == Decimal("12.00")
    assert Decimal(confirmation["price"]["total_amount"]) == Decimal("87.00")

    response = await client.post("/bookings/", json=booking_body(fleet, 1, 2))
    assert response.status_code == 409

    response = await client.get(
        f"/vehicles/{fleet.vehicle_id}/availability",
        params={"start": day(1).isoformat(), "end": day(2).isoformat()},
    )
    assert response.json()["available"] is False

    response = await client.get(f"/bookings/reference/{confirmation['booking_reference']}")
    assert response.json()["id"] == confirmation["booking_id"]

    response = await client.put(f"/bookings/{confirmation['booking_id']}/cancel")
    assert response.status_code == 200
    assert response.json()["booking_status"] == "Cancelled"

    response = await client.get(f"/vehicles/{fleet.vehicle_id}")
    assert response.json()["current_status"] == "Available"

    response = await client.post("/bookings/", json=booking_body(fleet, 1, 2))
    assert response.status_code == 201


async def test_bad_dates_are_a_bad_request(client, fleet):
    response = await client.post("/bookings/", json=booking_body(fleet, 3, 1))

    assert response.status_code == 400


async def test_unknown_booking_is_not_found(client):
    assert (await client.get("/bookings/999")).status_code == 404
    assert (await client.put("/bookings/999/activate")).status_code == 404


async def test_vehicle_update_cannot_change_status(client, fleet):
    response = await client.put(f"/vehicles/{fleet.vehicle_id}",
                                json={"color": "Red", "current_status": "Rented"})

    assert response.status_code == 200
    assert response.json()["color"] == "Red"
    assert response.json()["current_status"] == "Available"


async def test_rental_payment_and_feedback(client, fleet):
    booking_id = (await client.post("/bookings/", json=booking_body(fleet))).json()["booking_id"]

    response = await client.post(f"/bookings/{booking_id}/payments",
                                 json={"payment_method": "Mobile_Money", "payment_amount": "87.00"})
    assert response.status_code == 201
    assert response.json()["payment_reference"].startswith("PAY")

    assert (await client.put(f"/bookings/{booking_id}/activate")).json()["booking_status"] == "Active"

    response = await client.post(f"/bookings/{booking_id}/damage-reports", json={
        "damage_description": "Scratch on rear bumper",
        "damage_type": "Cosmetic",
        "damage_cost": "40.00",
        "reported_by": fleet.employee_id,
    })
    assert response.status_code == 201
    assert response.json()["vehicle_id"] == fleet.vehicle_id

    response = await client.put(f"/bookings/{booking_id}/complete",
                                json={"actual_return_date": day(3).isoformat()})
    assert response.status_code == 200
    booking = response.json()
    assert booking["booking_status"] == "Completed"
    assert booking["payment_status"] == "Paid"

    review = {"customer_id": fleet.customer_id, "rating": 5, "review_title": "Smooth pickup"}
    response = await client.post(f"/bookings/{booking_id}/reviews", json=review)
    assert response.status_code == 201
    review_id = response.json()["id"]
    assert response.json()["is_approved"] is False

    assert (await client.post(f"/bookings/{booking_id}/reviews", json=review)).status_code == 400

    response = await client.put(f"/reviews/{review_id}/approve", json={"approved_by": fleet.employee_id})
    assert response.json()["is_approved"] is True


async def test_review_rules(client, fleet):
    booking_id = (await client.post("/bookings/", json=booking_body(fleet))).json()["booking_id"]

    review = {"customer_id": fleet.customer_id, "rating": 4}
    assert (await client.post(f"/bookings/{booking_id}/reviews", json=review)).status_code == 400

    await client.put(f"/bookings/{booking_id}/activate")
    await client.put(f"/bookings/{booking_id}/complete", json={"actual_return_date": day(3).isoformat()})

    stranger = {"customer_id": fleet.other_customer_id, "rating": 4}
    assert (await client.post(f"/bookings/{booking_id}/reviews", json=stranger)).status_code == 400
    assert (await client.post(f"/bookings/{booking_id}/reviews",
                              json={"customer_id": fleet.customer_id, "rating": 6})).status_code == 422


async def test_damage_needs_a_started_rental(client, fleet):
    booking_id = (await client.post("/bookings/", json=booking_body(fleet))).json()["booking_id"]

    response = await client.post(f"/bookings/{booking_id}/damage-reports", json={
        "damage_description": "Dent", "damage_type": "Minor", "damage_cost": "10.00",
    })

    assert response.status_code == 400


async def test_maintenance_through_the_api(client, fleet):
    response = await client.post(f"/vehicles/{fleet.vehicle_id}/maintenance", json={
        "maintenance_type": "Oil_Change",
        "description": "Oil and filter",
        "maintenance_date": "2030-10-25",
        "cost": "45.00",
        "service_provider": "Quick Lube",
    })
    assert response.status_code == 201
    maintenance_id = response.json()["id"]

    assert (await client.put(f"/maintenance/{maintenance_id}/start")).json()["status"] == "In_Progress"
    assert (await client.get(f"/vehicles/{fleet.vehicle_id}")).json()["current_status"] == "Maintenance"
    assert (await client.post("/bookings/", json=booking_body(fleet))).status_code == 409

    response = await client.put(f"/maintenance/{maintenance_id}/finish", json={"next_service_date": "2031-04-25"})
    assert response.json()["status"] == "Completed"

    vehicle = (await client.get(f"/vehicles/{fleet.vehicle_id}")).json()
    assert vehicle["current_status"] == "Available"
    assert vehicle["next_service_date"] == "2031-04-25"

    assert (await client.put(f"/vehicles/{fleet.vehicle_id}/retire")).json()["current_status"] == "Out_of_Service"
    assert (await client.put(f"/vehicles/{fleet.vehicle_id}/reinstate")).json()["current_status"] == "Available"


async def test_health(client):
    response = await client.get("/health")

    assert response.json()["status"] == "healthy"
    assert response.json()["database"]["status"] == "connected"
