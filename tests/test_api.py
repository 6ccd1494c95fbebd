"""End-to-end tests of the HTTP API."""

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import MONDAY, ORG_ID, OTHER_ORG_ID, WEEKDAYS_9_TO_14
from scheduling_core.database.session import get_session_factory
from scheduling_core.main import app
from scheduling_core.services.notifications_service import get_notification_dispatcher

HEADERS = {"X-Organization-Id": ORG_ID, "X-User-Id": "admin-1"}


@pytest.fixture
async def client(session_factory):
    """HTTP client against the app, bound to the test database."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
    await get_notification_dispatcher().drain()


async def create_department(client, **fields):
    response = await client.post("/api/v1/departments", json={"name": "Sales", **fields}, headers=HEADERS)
    assert response.status_code == 201, response.text
    department = response.json()
    response = await client.put(
        f"/api/v1/schedules/department/{department['id']}",
        json={"weekly_hours": WEEKDAYS_9_TO_14},
        headers=HEADERS,
    )
    assert response.status_code == 200, response.text
    return department


def booking_body(department_id, start_at="2030-01-07T10:00:00+01:00", **fields):
    return {
        "department_id": department_id,
        "client_name": "Ana García",
        "client_phone": "+34 600 000 000",
        "start_at": start_at,
        **fields,
    }


class TestHealth:
    """Probes and metadata."""

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers

    async def test_api_info(self, client):
        response = await client.get("/api/v1/")
        assert response.status_code == 200
        assert response.json()["version"] == "v1"


class TestCallerHeaders:
    """Every engine endpoint requires the organization header."""

    async def test_missing_organization(self, client):
        response = await client.get("/api/v1/departments")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"


class TestBookingFlow:
    """Availability, booking, assignment and cancellation over HTTP."""

    async def test_full_flow(self, client):
        department = await create_department(client)
        response = await client.put(
            f"/api/v1/departments/{department['id']}/members/user-1",
            json={"is_lead": True},
            headers=HEADERS,
        )
        assert response.status_code == 200

        availability = await client.post(
            "/api/v1/availability",
            json={
                "department_id": department["id"],
                "start_date": MONDAY.isoformat(),
                "end_date": MONDAY.isoformat(),
            },
            headers=HEADERS,
        )
        assert availability.status_code == 200
        assert availability.json()["slots"] == {"2030-01-07": ["09:00", "10:00", "11:00", "12:00", "13:00"]}

        booked = await client.post("/api/v1/appointments", json=booking_body(department["id"]), headers=HEADERS)
        assert booked.status_code == 201, booked.text
        body = booked.json()
        assert body["outcome"] == "success"
        assert body["status"] == "PENDING"

        conflict = await client.post("/api/v1/appointments", json=booking_body(department["id"]), headers=HEADERS)
        assert conflict.status_code == 409
        assert conflict.json()["outcome"] == "conflict"

        assigned = await client.post(
            f"/api/v1/appointments/{body['appointment_id']}/assign",
            json={"user_id": "user-1"},
            headers=HEADERS,
        )
        assert assigned.status_code == 200
        assert assigned.json()["status"] == "CONFIRMED"
        assert assigned.json()["assigned_by_user_id"] == "admin-1"

        cancelled = await client.post(
            f"/api/v1/appointments/{body['appointment_id']}/cancel",
            json={"reason": "Client called"},
            headers=HEADERS,
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "CANCELLED"

        again = await client.post(f"/api/v1/appointments/{body['appointment_id']}/cancel", headers=HEADERS)
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "APPOINTMENT_CANCELLED"

        listed = await client.get("/api/v1/appointments", params={"status": "CANCELLED"}, headers=HEADERS)
        assert listed.status_code == 200
        assert [a["id"] for a in listed.json()["appointments"]] == [body["appointment_id"]]

    async def test_invalid_target(self, client):
        response = await client.post("/api/v1/appointments", json=booking_body("missing"), headers=HEADERS)

        assert response.status_code == 422
        assert response.json() == {
            "outcome": "invalid_target",
            "reason": "DEPARTMENT_NOT_FOUND",
            "message": "Department not found",
        }

    async def test_outside_availability(self, client):
        department = await create_department(client)

        response = await client.post(
            "/api/v1/appointments",
            json=booking_body(department["id"], start_at="2030-01-07T20:00:00+01:00"),
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert response.json()["error"]["details"]["reason"] == "OUTSIDE_AVAILABILITY"

    async def test_request_body_validation(self, client):
        response = await client.post(
            "/api/v1/appointments",
            json={"department_id": "x", "client_name": "A", "client_phone": "123", "start_at": "soon"},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_callback(self, client):
        department = await create_department(client)

        response = await client.post(
            "/api/v1/appointments/callbacks",
            json={"department_id": department["id"], "client_name": "Luis", "client_phone": "600123123"},
            headers=HEADERS,
        )

        assert response.status_code == 201
        assert response.json()["window"] == {"kind": "callback", "preferred_at": None}


class TestTenancy:
    """Rows of other organizations are invisible."""

    async def test_department_of_other_organization(self, client):
        department = await create_department(client)

        response = await client.get(
            f"/api/v1/departments/{department['id']}", headers={"X-Organization-Id": OTHER_ORG_ID}
        )

        assert response.status_code == 404

    async def test_appointment_of_other_organization(self, client):
        department = await create_department(client)
        booked = await client.post("/api/v1/appointments", json=booking_body(department["id"]), headers=HEADERS)

        response = await client.get(
            f"/api/v1/appointments/{booked.json()['appointment_id']}",
            headers={"X-Organization-Id": OTHER_ORG_ID},
        )

        assert response.status_code == 404


class TestSchedules:
    """Schedule and exception endpoints."""

    async def test_exception_lifecycle(self, client):
        department = await create_department(client)
        base = f"/api/v1/schedules/DEPARTMENT/{department['id']}"

        created = await client.put(
            f"{base}/exceptions",
            json={"exception_date": "2030-01-07", "is_closed": True, "description": "Holiday"},
            headers=HEADERS,
        )
        assert created.status_code == 200

        listed = await client.get(f"{base}/exceptions", headers=HEADERS)
        assert [e["exception_date"] for e in listed.json()] == ["2030-01-07"]

        deleted = await client.delete(f"{base}/exceptions/{created.json()['id']}", headers=HEADERS)
        assert deleted.status_code == 204

        listed = await client.get(f"{base}/exceptions", headers=HEADERS)
        assert listed.json() == []

    async def test_invalid_target_type(self, client):
        response = await client.get("/api/v1/schedules/team/x", headers=HEADERS)

        assert response.status_code == 422
        assert response.json()["error"]["details"]["reason"] == "INVALID_TARGET_TYPE"

    async def test_invalid_hours(self, client):
        department = await create_department(client)

        response = await client.put(
            f"/api/v1/schedules/DEPARTMENT/{department['id']}",
            json={"weekly_hours": {"1": [{"start": "14:00", "end": "09:00"}]}},
            headers=HEADERS,
        )

        assert response.status_code == 422
