import datetime as dt
from enum import Enum
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Zero-padded 24h clock, so lexical order matches chronological order.
TimeOfDay = Annotated[str, Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]

ItemT = TypeVar("ItemT")


class AppointmentStatus(str, Enum):
    """Possible states of an appointment."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"

    @property
    def is_terminal(self) -> bool:
        return self is not AppointmentStatus.SCHEDULED

    def can_transition_to(self, target: "AppointmentStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


class _Record(BaseModel):
    """Stored document. Serialized with camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class _Input(BaseModel):
    """Caller-supplied payload. Unknown keys are rejected."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


class Identity(_Record):
    """A verified caller."""

    uid: str
    email: str | None = None


class MedicalNotes(_Input):
    """Clinical notes a doctor attaches to a completed appointment."""

    symptoms: str | None = None
    diagnosis: str | None = None
    prescription: str | None = None
    follow_up_date: dt.date | None = None


class AppointmentRequest(_Input):
    """A request to book an appointment."""

    patient_id: str = Field(min_length=1)
    doctor_id: str = Field(min_length=1)
    date: dt.date
    start_time: TimeOfDay
    end_time: TimeOfDay
    notes: str | None = None
    symptoms: str | None = None

    @model_validator(mode="after")
    def _check_window(self) -> "AppointmentRequest":
        if self.start_time >= self.end_time:
            raise ValueError("startTime must be before endTime")
        return self


class AppointmentPatch(_Input):
    """Partial update of an appointment's schedule or patient notes."""

    date: dt.date | None = None
    start_time: TimeOfDay | None = None
    end_time: TimeOfDay | None = None
    notes: str | None = None
    symptoms: str | None = None

    @model_validator(mode="after")
    def _check_window(self) -> "AppointmentPatch":
        if self.start_time and self.end_time and self.start_time >= self.end_time:
            raise ValueError("startTime must be before endTime")
        return self

    @property
    def touches_window(self) -> bool:
        return any(v is not None for v in (self.date, self.start_time, self.end_time))


class StatusUpdate(_Input):
    status: AppointmentStatus


class Appointment(_Record):
    """A booked appointment."""

    id: str
    patient_id: str
    doctor_id: str
    date: dt.date
    start_time: str
    end_time: str
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str | None = None
    symptoms: str | None = None
    medical_notes: MedicalNotes | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    def involves(self, user_id: str) -> bool:
        return user_id in (self.patient_id, self.doctor_id)


class Page(BaseModel, Generic[ItemT]):
    """One page of a listing. ``page`` is 1-based; ``total`` counts every match."""

    model_config = ConfigDict(frozen=True)

    data: list[ItemT]
    total: int
    page: int
    limit: int


class EmergencyContact(_Input):
    name: str = Field(min_length=1)
    relationship: str = Field(min_length=1)
    phone: str = Field(min_length=1)


class DoctorProfilePatch(_Input):
    first_name: str | None = None
    last_name: str | None = None
    specialty: str | None = None
    location: str | None = None
    languages: str | None = None
    years_of_experience: str | None = None
    education: str | None = None
    professional_bio: str | None = None
    consultation_fee: str | None = None
    profile_picture: str | None = None


class DoctorProfileRequest(DoctorProfilePatch):
    user_id: str = Field(min_length=1)


class DoctorProfile(DoctorProfileRequest):
    """A doctor's public profile."""

    model_config = ConfigDict(extra="ignore")

    id: str
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class PatientProfilePatch(_Input):
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    contact_number: str | None = None
    address: str | None = None
    medical_history: list[str] | None = None
    allergies: list[str] | None = None
    emergency_contact: EmergencyContact | None = None


class PatientProfileRequest(PatientProfilePatch):
    user_id: str = Field(min_length=1)


class PatientProfile(PatientProfileRequest):
    """A patient's private profile."""

    model_config = ConfigDict(extra="ignore")

    id: str
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class MedicalHistoryUpdate(_Input):
    medical_history: list[str]
