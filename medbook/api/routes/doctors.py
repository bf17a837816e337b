from typing import Any

from fastapi import APIRouter, Depends, Query, status

from medbook.api.dependencies import get_doctors, get_identity
from medbook.api.responses import envelope
from medbook.domain.models import DoctorProfilePatch, DoctorProfileRequest, Identity
from medbook.domain.policy import Action, authorize
from medbook.profiles.service import DoctorProfileService

router = APIRouter(prefix="/doctors", tags=["doctors"])


# Declared before "/{profile_id}" so "search" is not taken for an id.
@router.get("/search")
async def search_doctors(
    specialty: str | None = None,
    location: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    doctors: DoctorProfileService = Depends(get_doctors),
) -> dict[str, Any]:
    result = await doctors.search(specialty=specialty, location=location, page=page, limit=limit)
    return envelope(result)


@router.get("/user/{user_id}")
async def get_doctor_by_user(
    user_id: str,
    identity: Identity = Depends(get_identity),
    doctors: DoctorProfileService = Depends(get_doctors),
) -> dict[str, Any]:
    profile = await doctors.get_by_user(user_id)
    if profile is None:
        return envelope(None, "No doctor profile found for this user")
    return envelope(profile)


@router.get("/{profile_id}")
async def get_doctor(
    profile_id: str,
    identity: Identity = Depends(get_identity),
    doctors: DoctorProfileService = Depends(get_doctors),
) -> dict[str, Any]:
    return envelope(await doctors.get(profile_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_doctor(
    body: DoctorProfileRequest,
    identity: Identity = Depends(get_identity),
    doctors: DoctorProfileService = Depends(get_doctors),
) -> dict[str, Any]:
    authorize(identity, Action.PROFILE_CREATE, body.user_id)
    profile = await doctors.create(body)
    return envelope(profile, "Doctor profile created successfully")


@router.put("/{profile_id}")
async def update_doctor(
    profile_id: str,
    body: DoctorProfilePatch,
    identity: Identity = Depends(get_identity),
    doctors: DoctorProfileService = Depends(get_doctors),
) -> dict[str, Any]:
    existing = await doctors.get(profile_id)
    authorize(identity, Action.PROFILE_UPDATE, existing.user_id)
    profile = await doctors.update(profile_id, body)
    return envelope(profile, "Doctor profile updated successfully")
