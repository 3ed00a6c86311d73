"""
Tests for rate-limit classification and response health checks.
"""

import httpx
import pytest

from keycycle.backends import BackendError, UnhealthyResponseError
from keycycle.router import HeuristicRateLimitClassifier, ResponseHealthCheck


class TestRateLimitClassifier:
    """Tests for the heuristic classifier."""

    @pytest.mark.parametrize(
        "message",
        [
            "Rate limit reached for requests",
            "Quota exceeded for quota metric 'Generate Content API requests per minute'",
            "429 Too Many Requests",
            "You exceeded the requests per day limit",
            "RPM limit hit",
            "RESOURCE_EXHAUSTED",
            "quota_exceeded: try later",
        ],
    )
    def test_matches_rate_limit_messages(self, message):
        """Should recognise quota and rate-limit wording in messages."""
        classifier = HeuristicRateLimitClassifier()

        assert classifier.is_rate_limited(Exception(message)) is True

    def test_matches_status_code(self):
        """Should treat HTTP 429 as a rate limit."""
        classifier = HeuristicRateLimitClassifier()

        assert classifier.is_rate_limited(BackendError("slow down", status_code=429)) is True

    def test_matches_string_code(self):
        """Should accept a numeric status given as a string code."""
        classifier = HeuristicRateLimitClassifier()
        error = BackendError("something went wrong", code="429")

        assert classifier.is_rate_limited(error) is True

    def test_matches_service_status_code(self):
        """Should match the RESOURCE_EXHAUSTED service status."""
        classifier = HeuristicRateLimitClassifier()
        error = BackendError("Resource has been exhausted", status_code=200, code="RESOURCE_EXHAUSTED")

        assert classifier.is_rate_limited(error) is True

    def test_matches_httpx_status_error(self):
        """Should read the status from an httpx response error."""
        classifier = HeuristicRateLimitClassifier()
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(429, request=request)
        error = httpx.HTTPStatusError("boom", request=request, response=response)

        assert classifier.is_rate_limited(error) is True

    def test_matches_wrapped_cause(self):
        """Should follow the exception cause chain."""
        classifier = HeuristicRateLimitClassifier()
        try:
            try:
                raise BackendError("too many requests", status_code=429)
            except BackendError as inner:
                raise RuntimeError("operation failed") from inner
        except RuntimeError as outer:
            assert classifier.is_rate_limited(outer) is True

    @pytest.mark.parametrize(
        "error",
        [
            BackendError("API key not valid", status_code=400, code="INVALID_ARGUMENT"),
            BackendError("Permission denied", status_code=403, code="PERMISSION_DENIED"),
            BackendError("Internal error", status_code=500, code="INTERNAL"),
            UnhealthyResponseError("Response blocked by the service", finish_reason="SAFETY"),
            ValueError("malformed request"),
        ],
    )
    def test_other_errors_are_not_rate_limits(self, error):
        """Should not classify unrelated failures as rate limits."""
        classifier = HeuristicRateLimitClassifier()

        assert classifier.is_rate_limited(error) is False

    def test_extra_patterns(self):
        """Should extend the defaults with extra patterns and statuses."""
        classifier = HeuristicRateLimitClassifier.with_extra(
            patterns=["capacity exhausted"], status_codes=[503]
        )

        assert classifier.is_rate_limited(Exception("Model capacity exhausted")) is True
        assert classifier.is_rate_limited(BackendError("overloaded", status_code=503)) is True
        assert classifier.is_rate_limited(Exception("quota exceeded")) is True

    def test_custom_patterns_replace_defaults(self):
        """Should use only the given patterns when provided."""
        classifier = HeuristicRateLimitClassifier(patterns=["slow down"], status_codes=[])

        assert classifier.is_rate_limited(Exception("please SLOW DOWN")) is True
        assert classifier.is_rate_limited(Exception("quota exceeded")) is False


class TestResponseHealthCheck:
    """Tests for the response health check."""

    def test_healthy_response_passes(self):
        """Should accept a response with a normal candidate."""
        check = ResponseHealthCheck()

        check({"candidates": [{"finishReason": "STOP", "content": {"parts": [{"text": "x"}]}}]})

    def test_candidate_without_finish_reason_passes(self):
        """Should accept a candidate with no finish reason yet."""
        check = ResponseHealthCheck()

        check({"candidates": [{"content": {"parts": [{"text": "partial"}]}}]})

    @pytest.mark.parametrize("response", [{}, {"candidates": []}, {"promptFeedback": {}}, None])
    def test_empty_candidates_are_unhealthy(self, response):
        """Should reject responses without candidates."""
        check = ResponseHealthCheck()

        with pytest.raises(UnhealthyResponseError):
            check(response)

    @pytest.mark.parametrize("reason", ["SAFETY", "RECITATION", "safety"])
    def test_blocked_finish_reasons_are_unhealthy(self, reason):
        """Should reject SAFETY and RECITATION finishes."""
        check = ResponseHealthCheck()

        with pytest.raises(UnhealthyResponseError) as exc_info:
            check({"candidates": [{"finishReason": reason}]})

        assert exc_info.value.finish_reason == reason

    def test_custom_blocked_reasons(self):
        """Should honour a custom set of blocked finish reasons."""
        check = ResponseHealthCheck(blocked_finish_reasons=["PROHIBITED_CONTENT"])

        check({"candidates": [{"finishReason": "SAFETY"}]})
        with pytest.raises(UnhealthyResponseError):
            check({"candidates": [{"finishReason": "PROHIBITED_CONTENT"}]})
