from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

GENERIC_SERVER_MESSAGE = "Unexpected server error."

# Codes for errors raised by FastAPI/Starlette itself rather than by our services.
_HTTP_STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "INVALID_TOKEN",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "TOO_MANY_ATTEMPTS",
}

_VALIDATION_LOC_SOURCES = {"body", "query", "path", "header"}


class ApiError(Exception):
    """Expected failure with an HTTP status and a stable machine-readable code."""

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"ApiError({self.status_code}, {self.code!r}, {self.message!r})"


def bad_request(code: str, message: str) -> ApiError:
    return ApiError(status_code=400, code=code, message=message)


def unauthorized(code: str, message: str) -> ApiError:
    return ApiError(status_code=401, code=code, message=message)


def forbidden(code: str, message: str) -> ApiError:
    return ApiError(status_code=403, code=code, message=message)


def not_found(code: str, message: str) -> ApiError:
    return ApiError(status_code=404, code=code, message=message)


def too_many_requests(code: str, message: str) -> ApiError:
    return ApiError(status_code=429, code=code, message=message)


def http_error_code(status_code: int) -> str:
    return _HTTP_STATUS_CODES.get(status_code, "HTTP_ERROR")


def describe_validation_errors(errors: Sequence[Mapping[str, Any]]) -> str:
    """Flatten pydantic errors into `field: reason` pairs, dropping the body/query prefix."""
    parts: list[str] = []
    for item in errors:
        loc = ".".join(str(part) for part in item.get("loc", ()) if part not in _VALIDATION_LOC_SOURCES)
        reason = str(item.get("msg") or "Invalid value")
        parts.append(f"{loc}: {reason}" if loc else reason)
    return "; ".join(parts) or "Request validation failed."


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_payload(*, code: str, message: str, request_id: str) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "request_id": request_id}}


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_payload(code=code, message=message, request_id=get_request_id(request)),
    )
