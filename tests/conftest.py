import datetime as dt
from collections.abc import Callable

import pytest

from medbook.appointments.commands import AppointmentCommands
from medbook.appointments.repository import AppointmentRepository
from medbook.appointments.service import AppointmentService
from medbook.domain.exceptions import AuthenticationError
from medbook.domain.models import (
    Appointment,
    AppointmentRequest,
    DoctorProfile,
    Identity,
    PatientProfile,
)
from medbook.profiles.service import DoctorProfileService, PatientProfileService
from medbook.storage.adapters.memory import InMemoryDocumentStore

DAY = dt.date(2025, 4, 15)


class StaticTokenVerifier:
    """Test double for TokenVerifier: the bearer token *is* the uid."""

    def __init__(self) -> None:
        self.closed = False

    async def verify(self, token: str) -> Identity:
        if token == "invalid":
            raise AuthenticationError("Invalid or expired Firebase token")
        return Identity(uid=token, email=f"{token}@example.com")

    async def close(self) -> None:
        self.closed = True


def _booking(
    start: str = "09:00",
    end: str = "09:30",
    *,
    patient_id: str = "P1",
    doctor_id: str = "D1",
    date: dt.date = DAY,
    **extra: str,
) -> AppointmentRequest:
    return AppointmentRequest(
        patient_id=patient_id,
        doctor_id=doctor_id,
        date=date,
        start_time=start,
        end_time=end,
        **extra,
    )


@pytest.fixture
def appointment_store() -> InMemoryDocumentStore[Appointment]:
    return InMemoryDocumentStore(Appointment)


@pytest.fixture
def repository(appointment_store: InMemoryDocumentStore[Appointment]) -> AppointmentRepository:
    return AppointmentRepository(appointment_store)


@pytest.fixture
def service(repository: AppointmentRepository) -> AppointmentService:
    return AppointmentService(repository)


@pytest.fixture
def commands(service: AppointmentService) -> AppointmentCommands:
    return AppointmentCommands(service)


@pytest.fixture
def doctor_store() -> InMemoryDocumentStore[DoctorProfile]:
    return InMemoryDocumentStore(DoctorProfile)


@pytest.fixture
def patient_store() -> InMemoryDocumentStore[PatientProfile]:
    return InMemoryDocumentStore(PatientProfile)


@pytest.fixture
def doctors(doctor_store: InMemoryDocumentStore[DoctorProfile]) -> DoctorProfileService:
    return DoctorProfileService(doctor_store)


@pytest.fixture
def patients(patient_store: InMemoryDocumentStore[PatientProfile]) -> PatientProfileService:
    return PatientProfileService(patient_store)


@pytest.fixture
def make_request() -> Callable[..., AppointmentRequest]:
    """Build a booking request; defaults to P1 with D1 on DAY, 09:00-09:30."""
    return _booking


@pytest.fixture
def verifier() -> StaticTokenVerifier:
    return StaticTokenVerifier()
