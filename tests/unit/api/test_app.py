"""HTTP routing tests through httpx's ASGI transport."""

import datetime as dt
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
import pytest_asyncio

from bloodbank.api.actions import ActionHandlers
from bloodbank.api.app import create_app
from bloodbank.appointments.adapters.fake import FakeAppointmentStore
from bloodbank.appointments.directory import DirectoryLookup
from bloodbank.appointments.service import AppointmentService

# Fixtures (fake_store, service, directory, today) provided by tests/conftest.py


@pytest_asyncio.fixture
async def client(
    service: AppointmentService, directory: DirectoryLookup
) -> AsyncGenerator[httpx.AsyncClient]:
    app = create_app(handlers=ActionHandlers(service, directory))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://bank.test") as client:
        yield client


@pytest.fixture
def booking(today: dt.date) -> dict[str, Any]:
    return {
        "donor_id": 1,
        "hospital_id": 10,
        "appointment_date": (today + dt.timedelta(days=5)).isoformat(),
        "appointment_time": "13:15:00",
        "blood_type": "O+",
    }


class TestAppointmentRoutes:
    @pytest.mark.asyncio
    async def test_booking_lifecycle(
        self, client: httpx.AsyncClient, booking: dict[str, Any]
    ) -> None:
        created = await client.post("/api/appointments", json=booking)
        assert created.status_code == 200
        appointment_id = created.json()["appointment_id"]

        confirmed = await client.patch(
            f"/api/appointments/{appointment_id}", json={"action": "confirm"}
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["new_status"] == "confirmed"

        listed = await client.get("/api/appointments", params={"donor_id": 1})
        assert listed.status_code == 200
        assert [a["appointment_id"] for a in listed.json()["appointments"]["upcoming"]] == [
            appointment_id
        ]

    @pytest.mark.asyncio
    async def test_validation_error_is_422(
        self, client: httpx.AsyncClient, booking: dict[str, Any]
    ) -> None:
        response = await client.post(
            "/api/appointments", json={**booking, "appointment_time": "16:30"}
        )

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_malformed_json_is_422(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/appointments",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_slot_taken_is_409(
        self, client: httpx.AsyncClient, booking: dict[str, Any]
    ) -> None:
        await client.post("/api/appointments", json=booking)

        response = await client.post(
            "/api/appointments", json={**booking, "donor_id": 2, "blood_type": "A-"}
        )

        assert response.status_code == 409
        assert response.json()["error"] == "SLOT_TAKEN"

    @pytest.mark.asyncio
    async def test_path_id_wins_over_body(
        self, client: httpx.AsyncClient, booking: dict[str, Any]
    ) -> None:
        created = await client.post("/api/appointments", json=booking)
        appointment_id = created.json()["appointment_id"]

        response = await client.patch(
            f"/api/appointments/{appointment_id}",
            json={"appointment_id": 999, "action": "cancel"},
        )

        assert response.status_code == 200
        assert response.json()["appointment"]["appointment_id"] == appointment_id

    @pytest.mark.asyncio
    async def test_non_numeric_id_is_422(self, client: httpx.AsyncClient) -> None:
        response = await client.patch("/api/appointments/abc", json={"action": "confirm"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_appointment_is_404(self, client: httpx.AsyncClient) -> None:
        response = await client.patch("/api/appointments/404", json={"action": "confirm"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_forbidden_is_403(
        self, client: httpx.AsyncClient, booking: dict[str, Any]
    ) -> None:
        created = await client.post("/api/appointments", json=booking)
        appointment_id = created.json()["appointment_id"]

        response = await client.patch(
            f"/api/appointments/{appointment_id}", json={"action": "cancel", "user_id": 2}
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_ineligible_donor_is_409(
        self, client: httpx.AsyncClient, booking: dict[str, Any]
    ) -> None:
        response = await client.post("/api/appointments", json={**booking, "donor_id": 3})

        assert response.status_code == 409
        assert response.json()["error"] == "NOT_ELIGIBLE"

    @pytest.mark.asyncio
    async def test_store_failure_is_503(
        self,
        client: httpx.AsyncClient,
        fake_store: FakeAppointmentStore,
        booking: dict[str, Any],
    ) -> None:
        fake_store.transaction_error = RuntimeError("db gone")

        response = await client.post("/api/appointments", json=booking)

        assert response.status_code == 503
        assert response.json()["error"] == "STORE_ERROR"


class TestDonorRoutes:
    @pytest.mark.asyncio
    async def test_find_donor(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/donors/find", params={"identifier": "5550101"})

        assert response.status_code == 200
        assert response.json()["donor"]["full_name"] == "Asha Rao"

    @pytest.mark.asyncio
    async def test_find_donor_missing(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/donors/find", params={"identifier": "nobody"})

        assert response.status_code == 404


class TestHealthRoute:
    @pytest.mark.asyncio
    async def test_ok(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"success": True, "status": "ok"}

    @pytest.mark.asyncio
    async def test_unavailable(
        self, client: httpx.AsyncClient, fake_store: FakeAppointmentStore
    ) -> None:
        fake_store.healthy = False

        response = await client.get("/health")

        assert response.status_code == 503
