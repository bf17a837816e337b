import datetime as dt
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from medbook.domain.exceptions import MedbookError

STATUS_BY_KIND: dict[str, int] = {
    "NotFound": 404,
    "Forbidden": 403,
    "Conflict": 400,
    "InvalidState": 400,
    "Validation": 422,
    "Unauthenticated": 401,
    "Unavailable": 503,
}


def envelope(data: Any, message: str | None = None) -> dict[str, Any]:
    """Wrap a payload in the ``{success, message, data}`` response shape."""
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json", exclude_none=True)
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def _error_body(request: Request, status_code: int, error: dict[str, Any]) -> dict[str, Any]:
    return {
        "success": False,
        "statusCode": status_code,
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        "path": request.url.path,
        **error,
    }


async def handle_domain_error(request: Request, exc: MedbookError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    logger.warning(
        "{} {} - {} - {}", request.method, request.url.path, status_code, exc.message
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content=_error_body(request, status_code, exc.to_dict()),
        headers=headers,
    )


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    message = "; ".join(parts) or "Invalid request"
    status_code = 422
    logger.warning("{} {} - {} - {}", request.method, request.url.path, status_code, message)
    return JSONResponse(
        status_code=status_code,
        content=_error_body(request, status_code, {"kind": "Validation", "message": message}),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error("{} {} - unhandled error", request.method, request.url.path)
    status_code = 500
    return JSONResponse(
        status_code=status_code,
        content=_error_body(
            request, status_code, {"kind": "Internal", "message": "Internal server error"}
        ),
    )
