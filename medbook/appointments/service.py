import datetime as dt
from collections.abc import Mapping
from typing import Any

from loguru import logger

from medbook.appointments.conflicts import ConflictDetector
from medbook.appointments.ports import AbstractAppointmentService
from medbook.appointments.repository import AppointmentRepository
from medbook.domain.exceptions import ConflictError, InvalidStateError, NotFoundError
from medbook.domain.models import (
    Appointment,
    AppointmentPatch,
    AppointmentRequest,
    AppointmentStatus,
    MedicalNotes,
    Page,
    StatusUpdate,
)
from medbook.domain.validation import check_paging, check_window, validate


class AppointmentService(AbstractAppointmentService):
    """Appointment lifecycle over an AppointmentRepository.

    Every check runs before the single write of an operation, so a rejected
    call leaves the stored appointment untouched.  The conflict check and the
    write are separate round trips: two concurrent bookings of the same slot
    can both succeed.
    """

    def __init__(
        self,
        repository: AppointmentRepository,
        *,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ) -> None:
        self._repository = repository
        self._conflicts = ConflictDetector(repository)
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    async def get(self, appointment_id: str) -> Appointment:
        appointment = await self._repository.get(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def create(self, request: AppointmentRequest | Mapping[str, Any]) -> Appointment:
        request = validate(AppointmentRequest, request)
        logger.info(
            "Booking appointment: doctor={}, date={}, window={}-{}",
            request.doctor_id,
            request.date,
            request.start_time,
            request.end_time,
        )

        await self._ensure_free(
            request.doctor_id, request.date, request.start_time, request.end_time
        )

        appointment = await self._repository.add(request)
        logger.info("Appointment created: id={}", appointment.id)
        return appointment

    async def update(
        self, appointment_id: str, patch: AppointmentPatch | Mapping[str, Any]
    ) -> Appointment:
        patch = validate(AppointmentPatch, patch)
        existing = await self.get(appointment_id)

        if existing.status.is_terminal:
            raise InvalidStateError(f"Cannot update {existing.status.value} appointments")

        if patch.touches_window:
            date = patch.date or existing.date
            start_time = patch.start_time or existing.start_time
            end_time = patch.end_time or existing.end_time
            check_window(start_time, end_time)
            await self._ensure_free(
                existing.doctor_id, date, start_time, end_time, exclude=existing.id
            )

        changes = patch.model_dump(by_alias=True, mode="json", exclude_none=True)
        updated = await self._save(appointment_id, changes)
        logger.info("Appointment updated: id={}, fields={}", updated.id, sorted(changes))
        return updated

    async def update_status(
        self, appointment_id: str, status: AppointmentStatus | str
    ) -> Appointment:
        new_status = validate(StatusUpdate, {"status": status}).status
        existing = await self.get(appointment_id)

        if not existing.status.can_transition_to(new_status):
            raise InvalidStateError(
                f"Cannot change status from {existing.status.value} to {new_status.value}"
            )

        updated = await self._save(appointment_id, {"status": new_status.value})
        logger.info(
            "Appointment status changed: id={}, {} -> {}",
            updated.id,
            existing.status.value,
            new_status.value,
        )
        return updated

    async def add_medical_notes(
        self, appointment_id: str, notes: MedicalNotes | Mapping[str, Any]
    ) -> Appointment:
        notes = validate(MedicalNotes, notes)
        existing = await self.get(appointment_id)

        if existing.status is not AppointmentStatus.COMPLETED:
            raise InvalidStateError("Can only add medical notes to completed appointments")

        current = existing.medical_notes or MedicalNotes()
        merged = current.model_copy(update=notes.model_dump(exclude_none=True))
        updated = await self._save(
            appointment_id,
            {"medicalNotes": merged.model_dump(by_alias=True, mode="json", exclude_none=True)},
        )
        logger.info("Medical notes added: id={}", updated.id)
        return updated

    async def find_by_doctor(
        self,
        doctor_id: str,
        status: AppointmentStatus | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[Appointment]:
        return await self._find("doctorId", doctor_id, status, page, limit)

    async def find_by_patient(
        self,
        patient_id: str,
        status: AppointmentStatus | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[Appointment]:
        return await self._find("patientId", patient_id, status, page, limit)

    async def ensure_indexes(self) -> None:
        await self._repository.ensure_indexes()

    async def health_check(self) -> bool:
        return await self._repository.health_check()

    async def close(self) -> None:
        await self._repository.close()

    async def _ensure_free(
        self,
        doctor_id: str,
        date: dt.date,
        start_time: str,
        end_time: str,
        *,
        exclude: str | None = None,
    ) -> None:
        conflict = await self._conflicts.find_conflict(
            doctor_id, date, start_time, end_time, exclude
        )
        if conflict is not None:
            raise ConflictError(conflict.start_time, conflict.end_time)

    async def _save(self, appointment_id: str, fields: Mapping[str, Any]) -> Appointment:
        updated = await self._repository.save(appointment_id, fields)
        if updated is None:
            raise NotFoundError("Appointment", appointment_id)
        return updated

    async def _find(
        self,
        field: str,
        participant_id: str,
        status: AppointmentStatus | None,
        page: int,
        limit: int | None,
    ) -> Page[Appointment]:
        if limit is None:
            limit = self._default_page_size
        check_paging(page, limit, self._max_page_size)
        filters: dict[str, Any] = {field: participant_id}
        if status is not None:
            filters["status"] = validate(StatusUpdate, {"status": status}).status.value
        logger.debug("Listing appointments by {}: page={}, limit={}", field, page, limit)
        return await self._repository.page(filters, page, limit)
