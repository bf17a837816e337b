from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from medbook.appointments.ports import AbstractAppointmentService
from medbook.domain.exceptions import MedbookError
from medbook.domain.models import (
    Appointment,
    AppointmentPatch,
    AppointmentRequest,
    AppointmentStatus,
    Identity,
    MedicalNotes,
    Page,
    StatusUpdate,
)
from medbook.domain.policy import Action, authorize
from medbook.domain.validation import validate


class CommandAction(str, Enum):
    CREATE = "create"
    GET = "get"
    UPDATE = "update"
    UPDATE_STATUS = "updateStatus"
    ADD_NOTES = "addNotes"
    FIND = "find"


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class Command(_Payload):
    """An inbound request from a verified caller."""

    caller_id: str = Field(min_length=1)
    action: CommandAction
    payload: dict[str, Any] = Field(default_factory=dict)


class TargetPayload(_Payload):
    id: str = Field(min_length=1)


class UpdatePayload(TargetPayload):
    patch: AppointmentPatch


class StatusPayload(TargetPayload):
    status: AppointmentStatus


class NotesPayload(TargetPayload):
    notes: MedicalNotes


class FindPayload(_Payload):
    doctor_id: str | None = None
    patient_id: str | None = None
    status: AppointmentStatus | None = None
    page: int = 1
    limit: int | None = None

    @model_validator(mode="after")
    def _one_participant(self) -> "FindPayload":
        if (self.doctor_id is None) == (self.patient_id is None):
            raise ValueError("exactly one of doctorId or patientId is required")
        return self


class AppointmentCommands:
    """Authorizes callers and drives the appointment lifecycle.

    The typed methods raise domain errors and are what the HTTP routes call.
    ``dispatch`` accepts the generic command shape and never raises: it
    returns ``{"success": True, "data": ...}`` or
    ``{"success": False, "error": {"kind": ..., "message": ...}}``.
    """

    def __init__(self, service: AbstractAppointmentService) -> None:
        self._service = service
        self._handlers: dict[CommandAction, Callable[[Identity, dict[str, Any]], Awaitable[Any]]] = {
            CommandAction.CREATE: self._handle_create,
            CommandAction.GET: self._handle_get,
            CommandAction.UPDATE: self._handle_update,
            CommandAction.UPDATE_STATUS: self._handle_update_status,
            CommandAction.ADD_NOTES: self._handle_add_notes,
            CommandAction.FIND: self._handle_find,
        }

    @property
    def service(self) -> AbstractAppointmentService:
        return self._service

    async def create(
        self, identity: Identity, request: AppointmentRequest | Mapping[str, Any]
    ) -> Appointment:
        request = validate(AppointmentRequest, request)
        authorize(identity, Action.CREATE, request.patient_id)
        return await self._service.create(request)

    async def get(self, identity: Identity, appointment_id: str) -> Appointment:
        appointment = await self._service.get(appointment_id)
        authorize(identity, Action.VIEW, appointment)
        return appointment

    async def update(
        self,
        identity: Identity,
        appointment_id: str,
        patch: AppointmentPatch | Mapping[str, Any],
    ) -> Appointment:
        patch = validate(AppointmentPatch, patch)
        appointment = await self._service.get(appointment_id)
        authorize(identity, Action.UPDATE, appointment)
        return await self._service.update(appointment_id, patch)

    async def update_status(
        self, identity: Identity, appointment_id: str, status: AppointmentStatus | str
    ) -> Appointment:
        status = validate(StatusUpdate, {"status": status}).status
        appointment = await self._service.get(appointment_id)
        authorize(identity, Action.UPDATE_STATUS, appointment, new_status=status)
        return await self._service.update_status(appointment_id, status)

    async def add_medical_notes(
        self,
        identity: Identity,
        appointment_id: str,
        notes: MedicalNotes | Mapping[str, Any],
    ) -> Appointment:
        notes = validate(MedicalNotes, notes)
        appointment = await self._service.get(appointment_id)
        authorize(identity, Action.ADD_NOTES, appointment)
        return await self._service.add_medical_notes(appointment_id, notes)

    async def find_by_doctor(
        self,
        identity: Identity,
        doctor_id: str,
        status: AppointmentStatus | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[Appointment]:
        authorize(identity, Action.LIST_BY_DOCTOR, doctor_id)
        return await self._service.find_by_doctor(doctor_id, status, page, limit)

    async def find_by_patient(
        self,
        identity: Identity,
        patient_id: str,
        status: AppointmentStatus | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[Appointment]:
        authorize(identity, Action.LIST_BY_PATIENT, patient_id)
        return await self._service.find_by_patient(patient_id, status, page, limit)

    async def dispatch(self, command: Command | Mapping[str, Any]) -> dict[str, Any]:
        try:
            command = validate(Command, command)
            identity = Identity(uid=command.caller_id)
            logger.debug("Command: {} from uid={}", command.action.value, identity.uid)
            result = await self._handlers[command.action](identity, command.payload)
        except MedbookError as exc:
            return {"success": False, "error": exc.to_dict()}
        except Exception:
            logger.exception("Unexpected error while dispatching appointment command")
            return {
                "success": False,
                "error": {
                    "kind": "Internal",
                    "message": "An unexpected error occurred while processing the request.",
                },
            }
        return {
            "success": True,
            "data": result.model_dump(by_alias=True, mode="json", exclude_none=True),
        }

    async def _handle_create(self, identity: Identity, payload: dict[str, Any]) -> Appointment:
        return await self.create(identity, payload)

    async def _handle_get(self, identity: Identity, payload: dict[str, Any]) -> Appointment:
        target = validate(TargetPayload, payload)
        return await self.get(identity, target.id)

    async def _handle_update(self, identity: Identity, payload: dict[str, Any]) -> Appointment:
        body = validate(UpdatePayload, payload)
        return await self.update(identity, body.id, body.patch)

    async def _handle_update_status(
        self, identity: Identity, payload: dict[str, Any]
    ) -> Appointment:
        body = validate(StatusPayload, payload)
        return await self.update_status(identity, body.id, body.status)

    async def _handle_add_notes(self, identity: Identity, payload: dict[str, Any]) -> Appointment:
        body = validate(NotesPayload, payload)
        return await self.add_medical_notes(identity, body.id, body.notes)

    async def _handle_find(self, identity: Identity, payload: dict[str, Any]) -> Page[Appointment]:
        query = validate(FindPayload, payload)
        if query.doctor_id is not None:
            return await self.find_by_doctor(
                identity, query.doctor_id, query.status, query.page, query.limit
            )
        return await self.find_by_patient(
            identity, query.patient_id or "", query.status, query.page, query.limit
        )
