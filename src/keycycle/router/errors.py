"""
Router error taxonomy.

Every error names the backend it is attributable to (where there is one) so
exclusions and failures can be traced.
"""

from typing import Any


class RouterError(Exception):
    """Base class for router failures."""

    error_type = "router_error"

    def __init__(self, message: str, backend_id: str | None = None):
        self.message = message
        self.backend_id = backend_id
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to error envelope."""
        return {
            "error": {
                "type": self.error_type,
                "message": self.message,
                "backend": self.backend_id,
            }
        }


class NoBackendAvailable(RouterError):
    """Every backend is disabled or currently excluded."""

    error_type = "no_backend_available"

    def __init__(self, message: str = "No available backends. All backends are excluded or disabled."):
        super().__init__(message)


class RateLimited(RouterError):
    """A backend failed with a rate-limit shaped error."""

    error_type = "rate_limited"

    def __init__(self, backend_id: str, error: BaseException):
        self.error = error
        super().__init__(f"Backend '{backend_id}' is rate limited: {error}", backend_id)


class NonRetryable(RouterError):
    """A failure that another backend cannot fix."""

    error_type = "non_retryable"

    def __init__(self, backend_id: str | None, error: BaseException):
        self.error = error
        super().__init__(str(error) or type(error).__name__, backend_id)

    @property
    def status_code(self) -> int | None:
        """Upstream HTTP status, when the original error carried one."""
        status = getattr(self.error, "status_code", None)
        return status if isinstance(status, int) else None


class ExhaustedError(RouterError):
    """The attempt budget ran out while only rate-limit failures were seen."""

    error_type = "attempts_exhausted"

    def __init__(self, attempts: int, last_error: RateLimited | None):
        self.attempts = attempts
        self.last_error = last_error
        backend_id = last_error.backend_id if last_error else None
        detail = f": {last_error.error}" if last_error else ""
        super().__init__(f"Max attempts ({attempts}) exceeded{detail}", backend_id)
