from collections.abc import Mapping
from typing import Any, TypeVar

import pydantic

from medbook.domain.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def describe_errors(exc: pydantic.ValidationError) -> str:
    """Flatten pydantic errors into ``"field: problem; ..."`` without echoing input values."""
    parts: list[str] = []
    for error in exc.errors(include_url=False, include_input=False):
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid input"


def validate(model: type[ModelT], payload: ModelT | Mapping[str, Any] | None) -> ModelT:
    """Coerce ``payload`` into ``model``, raising the domain ``ValidationError`` on failure.

    Already-validated instances pass through untouched.
    """
    if isinstance(payload, model):
        return payload
    if payload is None or not isinstance(payload, Mapping):
        raise ValidationError(f"Expected an object for {model.__name__}")
    try:
        return model.model_validate(dict(payload))
    except pydantic.ValidationError as exc:
        raise ValidationError(describe_errors(exc)) from exc


def check_window(start_time: str, end_time: str) -> None:
    if start_time >= end_time:
        raise ValidationError(
            f"startTime ({start_time}) must be before endTime ({end_time})"
        )


def check_paging(page: int, limit: int, max_limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
