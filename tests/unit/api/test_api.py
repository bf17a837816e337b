from collections.abc import Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from medbook.api.app import create_app
from medbook.config import AppConfig, StorageBackend
from medbook.domain.exceptions import IdentityUnavailableError
from medbook.domain.models import Identity
from medbook.factory import Services, build_services
from medbook.identity.ports import TokenVerifier

BOOKING = {
    "patientId": "P1",
    "doctorId": "D1",
    "date": "2025-04-15",
    "startTime": "09:00",
    "endTime": "09:30",
}


def _auth(uid: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {uid}"}


class _UnreachableVerifier:
    async def verify(self, token: str) -> Identity:
        raise IdentityUnavailableError("Identity provider is unavailable")

    async def close(self) -> None:
        return None


@pytest.fixture
def services(verifier: TokenVerifier) -> Services:
    return build_services(AppConfig(storage=StorageBackend.MEMORY), verifier=verifier)


@pytest.fixture
def client(services: Services) -> Iterator[TestClient]:
    app = create_app(AppConfig(storage=StorageBackend.MEMORY), services)
    with TestClient(app) as test_client:
        yield test_client


def _book(client: TestClient, **overrides: Any) -> dict[str, Any]:
    body = {**BOOKING, **overrides}
    resp = client.post("/appointments", json=body, headers=_auth(body["patientId"]))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestAuthentication:
    def test_missing_header_is_401(self, client: TestClient) -> None:
        resp = client.get("/appointments/patient/P1")

        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        body = resp.json()
        assert body["success"] is False
        assert body["statusCode"] == 401
        assert body["kind"] == "Unauthenticated"
        assert body["path"] == "/appointments/patient/P1"

    def test_rejected_token_is_401(self, client: TestClient) -> None:
        resp = client.get("/appointments/patient/P1", headers=_auth("invalid"))

        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid or expired Firebase token"

    def test_unreachable_identity_provider_is_503(self, services: Services) -> None:
        services.verifier = _UnreachableVerifier()
        app = create_app(AppConfig(storage=StorageBackend.MEMORY), services)

        with TestClient(app) as client:
            resp = client.get("/appointments/patient/P1", headers=_auth("P1"))

        assert resp.status_code == 503
        assert resp.json()["kind"] == "Unavailable"
        assert "www-authenticate" not in resp.headers

    def test_health_needs_no_auth(self, client: TestClient) -> None:
        resp = client.get("/")

        assert resp.json() == {"status": "ok", "storage": "memory"}


class TestAppointmentRoutes:
    def test_create_returns_envelope(self, client: TestClient) -> None:
        resp = client.post("/appointments", json=BOOKING, headers=_auth("P1"))

        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Appointment created successfully"
        assert body["data"]["status"] == "scheduled"
        assert body["data"]["id"]

    def test_booking_for_another_patient_is_403(self, client: TestClient) -> None:
        resp = client.post("/appointments", json=BOOKING, headers=_auth("P2"))

        assert resp.status_code == 403
        assert resp.json()["kind"] == "Forbidden"

    def test_overlap_is_400_with_existing_window(self, client: TestClient) -> None:
        _book(client)

        resp = client.post(
            "/appointments",
            json={**BOOKING, "patientId": "P2", "startTime": "09:15", "endTime": "09:45"},
            headers=_auth("P2"),
        )

        assert resp.status_code == 400
        body = resp.json()
        assert body["existingStart"] == "09:00"
        assert body["existingEnd"] == "09:30"

    def test_malformed_body_is_422(self, client: TestClient) -> None:
        resp = client.post(
            "/appointments", json={**BOOKING, "startTime": "9am"}, headers=_auth("P1")
        )

        assert resp.status_code == 422
        body = resp.json()
        assert body["kind"] == "Validation"
        assert "startTime" in body["message"]

    def test_get_unknown_is_404(self, client: TestClient) -> None:
        resp = client.get("/appointments/nope", headers=_auth("P1"))

        assert resp.status_code == 404
        assert resp.json()["message"] == "Appointment with ID nope not found"

    def test_full_lifecycle(self, client: TestClient) -> None:
        appt = _book(client)
        url = f"/appointments/{appt['id']}"

        assert client.get(url, headers=_auth("D1")).status_code == 200
        assert client.get(url, headers=_auth("X9")).status_code == 403

        early = client.patch(
            f"{url}/medical-notes", json={"diagnosis": "flu"}, headers=_auth("D1")
        )
        assert early.status_code == 400
        assert early.json()["kind"] == "InvalidState"

        done = client.patch(f"{url}/status", json={"status": "completed"}, headers=_auth("D1"))
        assert done.status_code == 200
        assert done.json()["data"]["status"] == "completed"

        noted = client.patch(
            f"{url}/medical-notes", json={"diagnosis": "flu"}, headers=_auth("D1")
        )
        assert noted.status_code == 200
        assert noted.json()["data"]["medicalNotes"] == {"diagnosis": "flu"}

        frozen = client.put(url, json={"notes": "move it"}, headers=_auth("P1"))
        assert frozen.status_code == 400
        assert frozen.json()["kind"] == "InvalidState"

    def test_patient_status_change_other_than_cancel_is_403(self, client: TestClient) -> None:
        appt = _book(client)

        resp = client.patch(
            f"/appointments/{appt['id']}/status",
            json={"status": "completed"},
            headers=_auth("P1"),
        )

        assert resp.status_code == 403

    def test_reschedule(self, client: TestClient) -> None:
        appt = _book(client)

        resp = client.put(
            f"/appointments/{appt['id']}",
            json={"startTime": "11:00", "endTime": "11:30"},
            headers=_auth("P1"),
        )

        assert resp.status_code == 200
        assert resp.json()["message"] == "Appointment updated successfully"
        assert resp.json()["data"]["startTime"] == "11:00"

    def test_listing_with_paging_and_status(self, client: TestClient) -> None:
        for hour in ("09", "10", "11"):
            _book(client, startTime=f"{hour}:00", endTime=f"{hour}:30")

        resp = client.get(
            "/appointments/doctor/D1",
            params={"status": "scheduled", "page": 2, "limit": 2},
            headers=_auth("D1"),
        )

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["total"] == 3
        assert data["page"] == 2
        assert [a["startTime"] for a in data["data"]] == ["11:00"]

    def test_listing_rejects_oversized_limit(self, client: TestClient) -> None:
        resp = client.get(
            "/appointments/patient/P1", params={"limit": 500}, headers=_auth("P1")
        )

        assert resp.status_code == 422

    def test_listing_someone_else_is_403(self, client: TestClient) -> None:
        resp = client.get("/appointments/patient/P1", headers=_auth("P2"))

        assert resp.status_code == 403


class TestProfileRoutes:
    def test_doctor_profile_flow(self, client: TestClient) -> None:
        created = client.post(
            "/doctors",
            json={"userId": "D1", "lastName": "Ruiz", "specialty": "cardiology"},
            headers=_auth("D1"),
        )
        assert created.status_code == 201
        profile_id = created.json()["data"]["id"]

        dup = client.post("/doctors", json={"userId": "D1"}, headers=_auth("D1"))
        assert dup.status_code == 400
        assert dup.json()["kind"] == "Conflict"

        search = client.get("/doctors/search", params={"specialty": "cardiology"})
        assert search.status_code == 200
        assert [d["id"] for d in search.json()["data"]["data"]] == [profile_id]

        by_user = client.get("/doctors/user/D1", headers=_auth("P1"))
        assert by_user.json()["data"]["lastName"] == "Ruiz"

        other = client.put(f"/doctors/{profile_id}", json={"location": "Lima"}, headers=_auth("P1"))
        assert other.status_code == 403

        own = client.put(f"/doctors/{profile_id}", json={"location": "Lima"}, headers=_auth("D1"))
        assert own.json()["data"]["location"] == "Lima"

    def test_doctor_search_needs_a_criterion(self, client: TestClient) -> None:
        resp = client.get("/doctors/search")

        assert resp.status_code == 422

    def test_missing_doctor_profile_by_user(self, client: TestClient) -> None:
        resp = client.get("/doctors/user/D9", headers=_auth("P1"))

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "data": None,
            "message": "No doctor profile found for this user",
        }

    def test_patient_profile_is_private(self, client: TestClient) -> None:
        created = client.post("/patients", json={"userId": "P1"}, headers=_auth("P1"))
        assert created.status_code == 201
        profile_id = created.json()["data"]["id"]

        assert client.get(f"/patients/{profile_id}", headers=_auth("D1")).status_code == 403
        assert client.get("/patients/user/P1", headers=_auth("D1")).status_code == 403

        history = client.patch(
            f"/patients/{profile_id}/medical-history",
            json={"medicalHistory": ["asthma"]},
            headers=_auth("P1"),
        )
        assert history.status_code == 200
        assert history.json()["data"]["medicalHistory"] == ["asthma"]

    def test_cannot_create_profile_for_someone_else(self, client: TestClient) -> None:
        resp = client.post("/patients", json={"userId": "P1"}, headers=_auth("P2"))

        assert resp.status_code == 403


class TestLifespan:
    def test_close_releases_verifier(self, services: Services, verifier: Any) -> None:
        app = create_app(AppConfig(storage=StorageBackend.MEMORY), services)
        with TestClient(app):
            pass

        assert verifier.closed is True


class TestConfiguredPaging:
    @pytest.fixture
    def config(self) -> AppConfig:
        return AppConfig(storage=StorageBackend.MEMORY, default_page_size=2)

    @pytest.fixture
    def paged_client(self, config: AppConfig, verifier: TokenVerifier) -> Iterator[TestClient]:
        app = create_app(config, build_services(config, verifier=verifier))
        with TestClient(app) as test_client:
            yield test_client

    def test_listing_defaults_to_configured_page_size(self, paged_client: TestClient) -> None:
        for hour in ("09", "10", "11"):
            _book(paged_client, startTime=f"{hour}:00", endTime=f"{hour}:30")

        resp = paged_client.get("/appointments/doctor/D1", headers=_auth("D1"))

        data = resp.json()["data"]
        assert data["limit"] == 2
        assert data["total"] == 3
        assert len(data["data"]) == 2

    def test_explicit_limit_wins(self, paged_client: TestClient) -> None:
        _book(paged_client)

        resp = paged_client.get(
            "/appointments/patient/P1", params={"limit": 5}, headers=_auth("P1")
        )

        assert resp.json()["data"]["limit"] == 5

    def test_doctor_search_defaults_to_configured_page_size(
        self, paged_client: TestClient
    ) -> None:
        for uid in ("D1", "D2", "D3"):
            paged_client.post(
                "/doctors", json={"userId": uid, "specialty": "cardiology"}, headers=_auth(uid)
            )

        resp = paged_client.get("/doctors/search", params={"specialty": "cardiology"})

        data = resp.json()["data"]
        assert data["limit"] == 2
        assert data["total"] == 3
