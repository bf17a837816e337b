from typing import Any

from fastapi import APIRouter, Depends, status

from medbook.api.dependencies import get_identity, get_patients
from medbook.api.responses import envelope
from medbook.domain.models import (
    Identity,
    MedicalHistoryUpdate,
    PatientProfilePatch,
    PatientProfileRequest,
)
from medbook.domain.policy import Action, authorize
from medbook.profiles.service import PatientProfileService

router = APIRouter(prefix="/patients", tags=["patients"])


@router.get("/user/{user_id}")
async def get_patient_by_user(
    user_id: str,
    identity: Identity = Depends(get_identity),
    patients: PatientProfileService = Depends(get_patients),
) -> dict[str, Any]:
    authorize(identity, Action.PROFILE_VIEW, user_id)
    profile = await patients.get_by_user(user_id)
    if profile is None:
        return envelope(None, "No patient profile found for this user")
    return envelope(profile)


@router.get("/{profile_id}")
async def get_patient(
    profile_id: str,
    identity: Identity = Depends(get_identity),
    patients: PatientProfileService = Depends(get_patients),
) -> dict[str, Any]:
    profile = await patients.get(profile_id)
    authorize(identity, Action.PROFILE_VIEW, profile.user_id)
    return envelope(profile)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_patient(
    body: PatientProfileRequest,
    identity: Identity = Depends(get_identity),
    patients: PatientProfileService = Depends(get_patients),
) -> dict[str, Any]:
    authorize(identity, Action.PROFILE_CREATE, body.user_id)
    profile = await patients.create(body)
    return envelope(profile, "Patient profile created successfully")


@router.put("/{profile_id}")
async def update_patient(
    profile_id: str,
    body: PatientProfilePatch,
    identity: Identity = Depends(get_identity),
    patients: PatientProfileService = Depends(get_patients),
) -> dict[str, Any]:
    existing = await patients.get(profile_id)
    authorize(identity, Action.PROFILE_UPDATE, existing.user_id)
    profile = await patients.update(profile_id, body)
    return envelope(profile, "Patient profile updated successfully")


@router.patch("/{profile_id}/medical-history")
async def update_medical_history(
    profile_id: str,
    body: MedicalHistoryUpdate,
    identity: Identity = Depends(get_identity),
    patients: PatientProfileService = Depends(get_patients),
) -> dict[str, Any]:
    existing = await patients.get(profile_id)
    authorize(identity, Action.PROFILE_UPDATE, existing.user_id)
    profile = await patients.update_medical_history(profile_id, body.medical_history)
    return envelope(profile, "Medical history updated successfully")
