import datetime as dt

from loguru import logger

from medbook.appointments.repository import AppointmentRepository
from medbook.domain.models import Appointment


def overlaps(start_time: str, end_time: str, existing_start: str, existing_end: str) -> bool:
    """Whether ``[start_time, end_time)`` overlaps ``[existing_start, existing_end)``.

    Times are zero-padded ``HH:MM`` strings, so string comparison is
    chronological.  Back-to-back windows (one ends exactly when the other
    starts) do not overlap.
    """
    starts_inside = existing_start <= start_time < existing_end
    ends_inside = existing_start < end_time <= existing_end
    covers = start_time <= existing_start and end_time >= existing_end
    return starts_inside or ends_inside or covers


class ConflictDetector:
    """Finds existing bookings that collide with a candidate window."""

    def __init__(self, repository: AppointmentRepository) -> None:
        self._repository = repository

    async def find_conflict(
        self,
        doctor_id: str,
        date: dt.date,
        start_time: str,
        end_time: str,
        exclude_appointment_id: str | None = None,
    ) -> Appointment | None:
        """Return one non-cancelled appointment overlapping the window, or None."""
        for existing in await self._repository.active_on(doctor_id, date):
            if existing.id == exclude_appointment_id:
                continue
            if overlaps(start_time, end_time, existing.start_time, existing.end_time):
                logger.debug(
                    "Window {}-{} on {} collides with appointment id={}",
                    start_time,
                    end_time,
                    date,
                    existing.id,
                )
                return existing
        return None

    async def has_conflict(
        self,
        doctor_id: str,
        date: dt.date,
        start_time: str,
        end_time: str,
        exclude_appointment_id: str | None = None,
    ) -> bool:
        conflict = await self.find_conflict(
            doctor_id, date, start_time, end_time, exclude_appointment_id
        )
        return conflict is not None
