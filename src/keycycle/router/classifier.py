"""
Failure classification and response health checks.

Rate-limit detection is a heuristic: it matches status codes, error codes
and message substrings. A missed pattern turns a transient failure into a
non-retryable one; a spurious match costs one unnecessary rotation. New
backend error shapes are handled by configuring or replacing the classifier,
not by changing the dispatcher.
"""

from typing import Any, Iterable, Protocol

import httpx

from keycycle.backends.errors import UnhealthyResponseError

# Substrings (lowercase) that mark quota/throughput exhaustion
DEFAULT_RATE_LIMIT_PATTERNS = (
    "rate limit",
    "quota exceeded",
    "too many requests",
    "requests per minute",
    "requests per day",
    "rpm",
    "rpd",
    "resource_exhausted",
    "quota_exceeded",
)

DEFAULT_RATE_LIMIT_STATUS_CODES = frozenset({429})

# Finish reasons that mean the service declined to produce content
DEFAULT_BLOCKED_FINISH_REASONS = frozenset({"SAFETY", "RECITATION"})

# Depth limit when following __cause__ chains
_MAX_CAUSE_DEPTH = 5


class ErrorClassifier(Protocol):
    """Decides whether a failure is rate-limit shaped."""

    def is_rate_limited(self, error: BaseException) -> bool: ...


class HeuristicRateLimitClassifier:
    """
    Case-insensitive match of failure metadata against rate-limit patterns.

    Looks at the error message, a numeric status (status_code or status
    attribute, or the response of an httpx.HTTPStatusError) and an error code.
    Errors wrapped via __cause__ are inspected too.
    """

    def __init__(
        self,
        patterns: Iterable[str] = DEFAULT_RATE_LIMIT_PATTERNS,
        status_codes: Iterable[int] = DEFAULT_RATE_LIMIT_STATUS_CODES,
    ):
        self.patterns = tuple(p.lower() for p in patterns)
        self.status_codes = frozenset(status_codes)

    @classmethod
    def with_extra(
        cls,
        patterns: Iterable[str] = (),
        status_codes: Iterable[int] = (),
    ) -> "HeuristicRateLimitClassifier":
        """Create a classifier with patterns added to the defaults."""
        return cls(
            patterns=(*DEFAULT_RATE_LIMIT_PATTERNS, *patterns),
            status_codes=DEFAULT_RATE_LIMIT_STATUS_CODES | frozenset(status_codes),
        )

    def is_rate_limited(self, error: BaseException) -> bool:
        current: BaseException | None = error
        depth = 0
        while current is not None and depth < _MAX_CAUSE_DEPTH:
            if self._matches(current):
                return True
            current = current.__cause__
            depth += 1
        return False

    def _matches(self, error: BaseException) -> bool:
        status = self._status_of(error)
        if status is not None and status in self.status_codes:
            return True

        code = getattr(error, "code", None)
        if code is not None:
            code_text = str(code).lower()
            if code_text in {str(s) for s in self.status_codes}:
                return True
            if any(p in code_text for p in self.patterns):
                return True

        message = getattr(error, "message", None)
        if not isinstance(message, str) or not message:
            message = str(error)
        message = message.lower()
        return any(p in message for p in self.patterns)

    def _status_of(self, error: BaseException) -> int | None:
        if isinstance(error, httpx.HTTPStatusError):
            return error.response.status_code
        for attr in ("status_code", "status"):
            value = getattr(error, attr, None)
            if isinstance(value, int):
                return value
            if isinstance(value, str) and value.isdigit():
                return int(value)
        return None


class ResponseHealthCheck:
    """
    Rejects responses that are structurally valid but carry no content.

    A response with no candidates, or whose first candidate finished for a
    blocked reason, raises UnhealthyResponseError.
    """

    def __init__(self, blocked_finish_reasons: Iterable[str] = DEFAULT_BLOCKED_FINISH_REASONS):
        self.blocked_finish_reasons = frozenset(r.upper() for r in blocked_finish_reasons)

    def __call__(self, response: Any) -> None:
        candidates = response.get("candidates") if isinstance(response, dict) else None
        if not candidates:
            raise UnhealthyResponseError("Invalid response from backend: no candidates")

        finish_reason = candidates[0].get("finishReason")
        if finish_reason and str(finish_reason).upper() in self.blocked_finish_reasons:
            raise UnhealthyResponseError(
                f"Response blocked by the service (finish reason {finish_reason})",
                finish_reason=str(finish_reason),
            )
