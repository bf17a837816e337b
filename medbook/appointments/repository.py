import datetime as dt
from collections.abc import Mapping
from typing import Any

from medbook.domain.models import Appointment, AppointmentRequest, AppointmentStatus, Page
from medbook.storage.ports import DocumentStore, Filters, guarded

_RESOURCE = "Appointment"
_CHRONOLOGICAL = (("date", 1), ("startTime", 1))


class AppointmentRepository:
    """Appointment-shaped queries over a DocumentStore."""

    def __init__(self, store: DocumentStore[Appointment]) -> None:
        self._store = store

    async def get(self, appointment_id: str) -> Appointment | None:
        return await guarded(_RESOURCE, "get", self._store.get(appointment_id))

    async def add(self, request: AppointmentRequest) -> Appointment:
        fields = request.model_dump(by_alias=True, mode="json", exclude_none=True)
        fields["status"] = AppointmentStatus.SCHEDULED.value
        return await guarded(_RESOURCE, "insert", self._store.insert(fields))

    async def save(self, appointment_id: str, fields: Mapping[str, Any]) -> Appointment | None:
        return await guarded(_RESOURCE, "update", self._store.update(appointment_id, fields))

    async def active_on(self, doctor_id: str, date: dt.date) -> list[Appointment]:
        """Every non-cancelled appointment of ``doctor_id`` on ``date``."""
        filters = {
            "doctorId": doctor_id,
            "date": date.isoformat(),
            "status": {"$ne": AppointmentStatus.CANCELLED.value},
        }
        return await guarded(_RESOURCE, "find", self._store.find(filters))

    async def page(self, filters: Filters, page: int, limit: int) -> Page[Appointment]:
        # Count and page are separate reads; they may disagree under concurrent writes.
        total = await guarded(_RESOURCE, "count", self._store.count(filters))
        data = await guarded(
            _RESOURCE,
            "find",
            self._store.find(
                filters, sort=_CHRONOLOGICAL, offset=(page - 1) * limit, limit=limit
            ),
        )
        return Page[Appointment](data=data, total=total, page=page, limit=limit)

    async def ensure_indexes(self) -> None:
        await guarded(_RESOURCE, "ensure_indexes", self._store.ensure_indexes())

    async def health_check(self) -> bool:
        return await self._store.health_check()

    async def close(self) -> None:
        await self._store.close()
