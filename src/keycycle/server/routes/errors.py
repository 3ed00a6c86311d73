"""
Translation of router failures into HTTP error responses.
"""

from fastapi import status
from fastapi.responses import JSONResponse

from keycycle.router.errors import (
    ExhaustedError,
    NoBackendAvailable,
    NonRetryable,
    RateLimited,
    RouterError,
)


def status_for_error(error: RouterError) -> int:
    """Pick the HTTP status for a router error."""
    if isinstance(error, NoBackendAvailable):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(error, (ExhaustedError, RateLimited)):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(error, NonRetryable):
        upstream = error.status_code
        if upstream is not None and 400 <= upstream < 600:
            return upstream
    return status.HTTP_502_BAD_GATEWAY


def error_response(
    error: RouterError,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build a JSON error envelope for a router error."""
    return JSONResponse(
        content=error.to_dict(),
        status_code=status_for_error(error),
        headers=headers,
    )


def simple_error(error_type: str, message: str, status_code: int) -> JSONResponse:
    """Build a JSON error envelope without a router error."""
    return JSONResponse(
        content={"error": {"type": error_type, "message": message, "backend": None}},
        status_code=status_code,
    )
