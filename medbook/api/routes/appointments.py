from typing import Any

from fastapi import APIRouter, Depends, Query, status

from medbook.api.dependencies import get_appointments, get_identity
from medbook.api.responses import envelope
from medbook.appointments.commands import AppointmentCommands
from medbook.domain.models import (
    AppointmentPatch,
    AppointmentRequest,
    AppointmentStatus,
    Identity,
    MedicalNotes,
    StatusUpdate,
)

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    body: AppointmentRequest,
    identity: Identity = Depends(get_identity),
    commands: AppointmentCommands = Depends(get_appointments),
) -> dict[str, Any]:
    appointment = await commands.create(identity, body)
    return envelope(appointment, "Appointment created successfully")


@router.get("/doctor/{doctor_id}")
async def list_doctor_appointments(
    doctor_id: str,
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    identity: Identity = Depends(get_identity),
    commands: AppointmentCommands = Depends(get_appointments),
) -> dict[str, Any]:
    result = await commands.find_by_doctor(identity, doctor_id, status_filter, page, limit)
    return envelope(result)


@router.get("/patient/{patient_id}")
async def list_patient_appointments(
    patient_id: str,
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    identity: Identity = Depends(get_identity),
    commands: AppointmentCommands = Depends(get_appointments),
) -> dict[str, Any]:
    result = await commands.find_by_patient(identity, patient_id, status_filter, page, limit)
    return envelope(result)


@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: str,
    identity: Identity = Depends(get_identity),
    commands: AppointmentCommands = Depends(get_appointments),
) -> dict[str, Any]:
    return envelope(await commands.get(identity, appointment_id))


@router.put("/{appointment_id}")
async def update_appointment(
    appointment_id: str,
    body: AppointmentPatch,
    identity: Identity = Depends(get_identity),
    commands: AppointmentCommands = Depends(get_appointments),
) -> dict[str, Any]:
    appointment = await commands.update(identity, appointment_id, body)
    return envelope(appointment, "Appointment updated successfully")


@router.patch("/{appointment_id}/status")
async def update_appointment_status(
    appointment_id: str,
    body: StatusUpdate,
    identity: Identity = Depends(get_identity),
    commands: AppointmentCommands = Depends(get_appointments),
) -> dict[str, Any]:
    appointment = await commands.update_status(identity, appointment_id, body.status)
    return envelope(appointment, "Appointment status updated successfully")


@router.patch("/{appointment_id}/medical-notes")
async def add_medical_notes(
    appointment_id: str,
    body: MedicalNotes,
    identity: Identity = Depends(get_identity),
    commands: AppointmentCommands = Depends(get_appointments),
) -> dict[str, Any]:
    appointment = await commands.add_medical_notes(identity, appointment_id, body)
    return envelope(appointment, "Medical notes added successfully")
