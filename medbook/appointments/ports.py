from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from medbook.domain.models import (
    Appointment,
    AppointmentPatch,
    AppointmentRequest,
    AppointmentStatus,
    MedicalNotes,
    Page,
)


class AbstractAppointmentService(ABC):
    """Abstract base class for the appointment lifecycle.

    Callers are expected to have authorized the caller already; these
    operations only enforce lifecycle and scheduling rules.
    """

    @abstractmethod
    async def get(self, appointment_id: str) -> Appointment:
        """Load an appointment.

        Raises:
            NotFoundError: If no appointment has this ID.
            StorageUnavailableError: If the store is unreachable.
        """

    @abstractmethod
    async def create(self, request: AppointmentRequest | Mapping[str, Any]) -> Appointment:
        """Book a new appointment in the ``scheduled`` state.

        Args:
            request: Who, with whom, and when.

        Returns:
            The stored appointment with its assigned ID and timestamps.

        Raises:
            ValidationError: If the request is malformed.
            ConflictError: If the window overlaps another active booking of the doctor.
            StorageUnavailableError: If the store is unreachable.
        """

    @abstractmethod
    async def update(
        self, appointment_id: str, patch: AppointmentPatch | Mapping[str, Any]
    ) -> Appointment:
        """Change the date, times or patient notes of a scheduled appointment.

        Fields missing from ``patch`` keep their current value.  When the
        schedule changes, the merged window is checked for conflicts,
        ignoring the appointment itself.

        Raises:
            NotFoundError: If no appointment has this ID.
            InvalidStateError: If the appointment is no longer scheduled.
            ValidationError: If the patch or the merged window is malformed.
            ConflictError: If the merged window overlaps another booking.
        """

    @abstractmethod
    async def update_status(
        self, appointment_id: str, status: AppointmentStatus | str
    ) -> Appointment:
        """Move an appointment to a new status.

        Raises:
            NotFoundError: If no appointment has this ID.
            InvalidStateError: If the transition is not allowed.
            ValidationError: If ``status`` is not a known status.
        """

    @abstractmethod
    async def add_medical_notes(
        self, appointment_id: str, notes: MedicalNotes | Mapping[str, Any]
    ) -> Appointment:
        """Merge the supplied keys into the appointment's medical notes.

        Raises:
            NotFoundError: If no appointment has this ID.
            InvalidStateError: If the appointment is not completed.
            ValidationError: If ``notes`` is malformed.
        """

    @abstractmethod
    async def find_by_doctor(
        self,
        doctor_id: str,
        status: AppointmentStatus | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[Appointment]:
        """List a doctor's appointments, optionally filtered by status.

        ``limit`` defaults to the service's configured page size.
        """

    @abstractmethod
    async def find_by_patient(
        self,
        patient_id: str,
        status: AppointmentStatus | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[Appointment]:
        """List a patient's appointments, optionally filtered by status."""

    @abstractmethod
    async def ensure_indexes(self) -> None:
        """Prepare the store for the queries this service issues."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the appointment store is reachable."""

    @abstractmethod
    async def close(self) -> None:
        """Release resources held by this service."""
