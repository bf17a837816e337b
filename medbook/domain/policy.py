"""Who may do what to which appointment or profile.

Every rule is a pure function of the caller, the target and (for status
changes) the requested status.  ``denial_reason`` returns ``None`` when the
action is allowed and a user-facing reason otherwise; ``authorize`` raises
``ForbiddenError`` with that reason.  Lifecycle constraints (terminal states,
notes only after completion) are enforced by the appointment service, not here.
"""

from collections.abc import Callable
from enum import Enum

from loguru import logger

from medbook.domain.exceptions import ForbiddenError
from medbook.domain.models import Appointment, AppointmentStatus, Identity


class Action(str, Enum):
    CREATE = "create"
    VIEW = "view"
    UPDATE = "update"
    UPDATE_STATUS = "updateStatus"
    ADD_NOTES = "addNotes"
    LIST_BY_DOCTOR = "listByDoctor"
    LIST_BY_PATIENT = "listByPatient"
    PROFILE_CREATE = "profileCreate"
    PROFILE_VIEW = "profileView"
    PROFILE_UPDATE = "profileUpdate"


# Target is either an appointment or the user id that owns the resource.
Target = Appointment | str
_Rule = Callable[[Identity, Target, AppointmentStatus | None], str | None]


def _appointment(target: Target) -> Appointment:
    if not isinstance(target, Appointment):
        raise TypeError(f"Expected an Appointment, got {type(target).__name__}")
    return target


def _owner(target: Target) -> str:
    return target.patient_id if isinstance(target, Appointment) else target


def _create(identity: Identity, target: Target, _: AppointmentStatus | None) -> str | None:
    if identity.uid != _owner(target):
        return "You can only book appointments for yourself"
    return None


def _view(identity: Identity, target: Target, _: AppointmentStatus | None) -> str | None:
    if not _appointment(target).involves(identity.uid):
        return "You are not authorized to view this appointment"
    return None


def _update(identity: Identity, target: Target, _: AppointmentStatus | None) -> str | None:
    if identity.uid != _appointment(target).patient_id:
        return "You can only update appointments you booked"
    return None


def _update_status(
    identity: Identity, target: Target, new_status: AppointmentStatus | None
) -> str | None:
    appointment = _appointment(target)
    if not appointment.involves(identity.uid):
        return "You are not authorized to update this appointment"
    if identity.uid == appointment.doctor_id:
        return None
    if new_status is not AppointmentStatus.CANCELLED:
        return "Patients can only cancel appointments"
    return None


def _add_notes(identity: Identity, target: Target, _: AppointmentStatus | None) -> str | None:
    if identity.uid != _appointment(target).doctor_id:
        return "Only the doctor can add medical notes"
    return None


def _own_listing(identity: Identity, target: Target, _: AppointmentStatus | None) -> str | None:
    if identity.uid != _owner(target):
        return "You can only view your own appointments"
    return None


def _profile_create(identity: Identity, target: Target, _: AppointmentStatus | None) -> str | None:
    if identity.uid != _owner(target):
        return "You can only create a profile for yourself"
    return None


def _profile_view(identity: Identity, target: Target, _: AppointmentStatus | None) -> str | None:
    if identity.uid != _owner(target):
        return "You can only access your own profile"
    return None


def _profile_update(identity: Identity, target: Target, _: AppointmentStatus | None) -> str | None:
    if identity.uid != _owner(target):
        return "You can only update your own profile"
    return None


_RULES: dict[Action, _Rule] = {
    Action.CREATE: _create,
    Action.VIEW: _view,
    Action.UPDATE: _update,
    Action.UPDATE_STATUS: _update_status,
    Action.ADD_NOTES: _add_notes,
    Action.LIST_BY_DOCTOR: _own_listing,
    Action.LIST_BY_PATIENT: _own_listing,
    Action.PROFILE_CREATE: _profile_create,
    Action.PROFILE_VIEW: _profile_view,
    Action.PROFILE_UPDATE: _profile_update,
}


def denial_reason(
    identity: Identity,
    action: Action,
    target: Target,
    new_status: AppointmentStatus | None = None,
) -> str | None:
    return _RULES[action](identity, target, new_status)


def authorize(
    identity: Identity,
    action: Action,
    target: Target,
    new_status: AppointmentStatus | None = None,
) -> None:
    """Raise ``ForbiddenError`` unless ``identity`` may perform ``action`` on ``target``."""
    reason = denial_reason(identity, action, target, new_status)
    if reason is not None:
        logger.info("Denied {} for uid={}", action.value, identity.uid)
        raise ForbiddenError(reason)
