"""
Errors raised by backend clients.
"""

from typing import Any


class BackendError(Exception):
    """
    Transport or service failure from a backend.

    Carries the metadata the rate-limit classifier inspects: a message, an
    optional numeric HTTP status and an optional service error code.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        backend_id: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.backend_id = backend_id
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "message": self.message,
            "status_code": self.status_code,
            "code": self.code,
            "backend": self.backend_id,
        }


class UnhealthyResponseError(BackendError):
    """A structurally valid response that carries no usable content."""

    def __init__(
        self,
        message: str,
        finish_reason: str | None = None,
        backend_id: str | None = None,
    ):
        super().__init__(message, code=finish_reason, backend_id=backend_id)
        self.finish_reason = finish_reason
