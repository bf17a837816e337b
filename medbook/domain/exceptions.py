from typing import Any, ClassVar


class MedbookError(Exception):
    """Base exception for all domain errors surfaced to callers."""

    kind: ClassVar[str] = "Error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(MedbookError):
    """Raised when a referenced appointment or profile does not exist."""

    kind = "NotFound"

    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} with ID {resource_id} not found")


class ForbiddenError(MedbookError):
    """Raised when the caller is not allowed to perform an action."""

    kind = "Forbidden"


class ConflictError(MedbookError):
    """Raised when a time window overlaps an existing appointment."""

    kind = "Conflict"

    def __init__(self, existing_start: str, existing_end: str) -> None:
        self.existing_start = existing_start
        self.existing_end = existing_end
        super().__init__(
            f"Time conflict with existing appointment from {existing_start} to {existing_end}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "existingStart": self.existing_start,
            "existingEnd": self.existing_end,
        }


class ProfileExistsError(MedbookError):
    """Raised when a profile already exists for a user."""

    kind = "Conflict"

    def __init__(self, role: str, user_id: str) -> None:
        self.role = role
        self.user_id = user_id
        super().__init__(f"{role.capitalize()} profile already exists for user ID {user_id}")


class InvalidStateError(MedbookError):
    """Raised when an operation violates the appointment lifecycle."""

    kind = "InvalidState"


class ValidationError(MedbookError):
    """Raised when input is structurally invalid."""

    kind = "Validation"


class AuthenticationError(MedbookError):
    """Raised when a bearer credential is missing, malformed or cannot be verified."""

    kind = "Unauthenticated"


class StorageUnavailableError(MedbookError):
    """Raised when the document store is unreachable or fails unexpectedly."""

    kind = "Unavailable"


class IdentityUnavailableError(MedbookError):
    """Raised when the identity provider cannot be reached to check a token."""

    kind = "Unavailable"
