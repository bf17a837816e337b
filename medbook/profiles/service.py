from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from loguru import logger
from pydantic import BaseModel

from medbook.domain.exceptions import NotFoundError, ProfileExistsError, ValidationError
from medbook.domain.models import (
    DoctorProfile,
    DoctorProfilePatch,
    DoctorProfileRequest,
    MedicalHistoryUpdate,
    Page,
    PatientProfile,
    PatientProfilePatch,
    PatientProfileRequest,
)
from medbook.domain.validation import check_paging, validate
from medbook.storage.ports import DocumentStore, guarded

ProfileT = TypeVar("ProfileT", DoctorProfile, PatientProfile)


class ProfileService(Generic[ProfileT]):
    """Create-once, update-many profiles keyed by the owner's user id."""

    role: str = "profile"
    request_model: type[BaseModel] = BaseModel
    patch_model: type[BaseModel] = BaseModel

    def __init__(
        self,
        store: DocumentStore[ProfileT],
        *,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ) -> None:
        self._store = store
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    @property
    def _resource(self) -> str:
        return f"{self.role.capitalize()} profile"

    async def get(self, profile_id: str) -> ProfileT:
        profile = await guarded(self._resource, "get", self._store.get(profile_id))
        if profile is None:
            raise NotFoundError(self._resource, profile_id)
        return profile

    async def get_by_user(self, user_id: str) -> ProfileT | None:
        return await guarded(
            self._resource, "find_one", self._store.find_one({"userId": user_id})
        )

    async def create(self, request: BaseModel | Mapping[str, Any]) -> ProfileT:
        request = validate(self.request_model, request)
        user_id: str = getattr(request, "user_id")
        if await self.get_by_user(user_id) is not None:
            raise ProfileExistsError(self.role, user_id)

        fields = request.model_dump(by_alias=True, mode="json", exclude_none=True)
        profile = await guarded(self._resource, "insert", self._store.insert(fields))
        logger.info("{} created: id={}", self._resource, profile.id)
        return profile

    async def update(self, profile_id: str, patch: BaseModel | Mapping[str, Any]) -> ProfileT:
        patch = validate(self.patch_model, patch)
        await self.get(profile_id)
        changes = patch.model_dump(by_alias=True, mode="json", exclude_none=True)
        return await self._save(profile_id, changes)

    async def ensure_indexes(self) -> None:
        await guarded(self._resource, "ensure_indexes", self._store.ensure_indexes())

    async def close(self) -> None:
        await self._store.close()

    async def _save(self, profile_id: str, changes: Mapping[str, Any]) -> ProfileT:
        profile = await guarded(self._resource, "update", self._store.update(profile_id, changes))
        if profile is None:
            raise NotFoundError(self._resource, profile_id)
        logger.info("{} updated: id={}, fields={}", self._resource, profile_id, sorted(changes))
        return profile


class DoctorProfileService(ProfileService[DoctorProfile]):
    role = "doctor"
    request_model = DoctorProfileRequest
    patch_model = DoctorProfilePatch

    async def search(
        self,
        *,
        specialty: str | None = None,
        location: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[DoctorProfile]:
        """Find doctors by specialty, or by location when no specialty is given."""
        if specialty:
            filters = {"specialty": specialty}
        elif location:
            filters = {"location": location}
        else:
            raise ValidationError("Either specialty or location must be provided")
        if limit is None:
            limit = self._default_page_size
        check_paging(page, limit, self._max_page_size)

        total = await guarded(self._resource, "count", self._store.count(filters))
        data = await guarded(
            self._resource,
            "find",
            self._store.find(
                filters,
                sort=(("lastName", 1), ("firstName", 1)),
                offset=(page - 1) * limit,
                limit=limit,
            ),
        )
        return Page[DoctorProfile](data=data, total=total, page=page, limit=limit)


class PatientProfileService(ProfileService[PatientProfile]):
    role = "patient"
    request_model = PatientProfileRequest
    patch_model = PatientProfilePatch

    async def update_medical_history(
        self, profile_id: str, medical_history: list[str] | Mapping[str, Any]
    ) -> PatientProfile:
        payload = (
            medical_history
            if isinstance(medical_history, Mapping)
            else {"medicalHistory": medical_history}
        )
        update = validate(MedicalHistoryUpdate, payload)
        await self.get(profile_id)
        return await self._save(profile_id, {"medicalHistory": update.medical_history})
