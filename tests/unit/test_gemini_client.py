"""
Tests for the Gemini REST client.

HTTP traffic goes through httpx.MockTransport.
"""

import json

import httpx
import pytest

from keycycle.backends import Backend, BackendError, TransportKind
from keycycle.backends.factory import build_clients, gemini_client_factory
from keycycle.backends.gemini import GEMINI_BASE_URL, GeminiClient
from keycycle.router import HeuristicRateLimitClassifier


def attach_transport(client: GeminiClient, handler) -> list[httpx.Request]:
    """Route the client's traffic to handler; returns the list of seen requests."""
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client._client = httpx.AsyncClient(
        base_url=client.base_url, transport=httpx.MockTransport(record)
    )
    return seen


def direct_backend() -> Backend:
    return Backend(id="k1", name="Key 1", api_key="AIza-test-key")


class TestGeminiClientConfig:
    """Tests for client construction."""

    def test_direct_backend_uses_public_endpoint(self):
        """Should use the public endpoint for direct backends."""
        client = GeminiClient(direct_backend())
        assert client.base_url == GEMINI_BASE_URL

    def test_proxied_backend_uses_backend_url(self):
        """Should use the backend URL for proxied backends."""
        backend = Backend(
            id="p",
            name="Proxy",
            api_key="token",
            transport=TransportKind.PROXIED,
            base_url="http://proxy.local:8000/",
        )
        client = GeminiClient(backend)
        assert client.base_url == "http://proxy.local:8000"

    def test_proxied_backend_requires_url(self):
        """Should require a URL for proxied backends."""
        backend = Backend(id="p", name="Proxy", api_key="token", transport=TransportKind.PROXIED)
        with pytest.raises(ValueError):
            GeminiClient(backend)


class TestGeminiRequests:
    """Tests for request shaping."""

    async def test_generate_content(self):
        """Should post to generateContent with the API key header."""
        client = GeminiClient(direct_backend())
        body = {"candidates": [{"content": {"parts": [{"text": "hi"}]}, "finishReason": "STOP"}]}
        seen = attach_transport(client, lambda r: httpx.Response(200, json=body))

        result = await client.generate_content(
            {"model": "models/gemini-2.5-pro", "contents": [{"parts": [{"text": "hello"}]}]}
        )

        assert result == body
        request = seen[0]
        assert request.url.path == "/v1beta/models/gemini-2.5-pro:generateContent"
        assert request.headers["x-goog-api-key"] == "AIza-test-key"
        sent = json.loads(request.content)
        assert "model" not in sent
        assert sent["contents"][0]["parts"][0]["text"] == "hello"

    async def test_default_model(self):
        """Should fall back to the default model."""
        client = GeminiClient(direct_backend())
        seen = attach_transport(client, lambda r: httpx.Response(200, json={"totalTokens": 3}))

        result = await client.count_tokens({"contents": []})

        assert result == {"totalTokens": 3}
        assert seen[0].url.path == "/v1beta/models/gemini-2.5-flash:countTokens"

    async def test_embed_uses_embedding_model(self):
        """Should default to the embedding model for embeddings."""
        client = GeminiClient(direct_backend())
        seen = attach_transport(
            client, lambda r: httpx.Response(200, json={"embedding": {"values": [0.5]}})
        )

        await client.embed_content({"content": {"parts": [{"text": "x"}]}})

        assert seen[0].url.path == "/v1beta/models/text-embedding-004:embedContent"

    async def test_proxied_backend_sends_bearer_token(self):
        """Should authenticate proxied backends with a bearer token."""
        backend = Backend(
            id="p",
            name="Proxy",
            api_key="proxy-token",
            transport=TransportKind.PROXIED,
            base_url="http://proxy.local:8000",
        )
        client = GeminiClient(backend)
        seen = attach_transport(client, lambda r: httpx.Response(200, json={"candidates": []}))

        await client.generate_content({"contents": []})

        assert seen[0].headers["authorization"] == "Bearer proxy-token"
        assert "x-goog-api-key" not in seen[0].headers


class TestGeminiErrors:
    """Tests for translating HTTP failures."""

    async def test_rate_limit_error_body(self):
        """Should turn a 429 body into a rate-limit BackendError."""
        client = GeminiClient(direct_backend())
        error_body = {
            "error": {
                "code": 429,
                "message": "Quota exceeded for metric: generate_content_free_tier_requests",
                "status": "RESOURCE_EXHAUSTED",
            }
        }
        attach_transport(client, lambda r: httpx.Response(429, json=error_body))

        with pytest.raises(BackendError) as exc_info:
            await client.generate_content({"contents": []})

        error = exc_info.value
        assert error.status_code == 429
        assert error.code == "RESOURCE_EXHAUSTED"
        assert error.backend_id == "k1"
        assert HeuristicRateLimitClassifier().is_rate_limited(error)

    async def test_invalid_key_error_body(self):
        """Should keep the service message for other errors."""
        client = GeminiClient(direct_backend())
        error_body = {
            "error": {"code": 400, "message": "API key not valid.", "status": "INVALID_ARGUMENT"}
        }
        attach_transport(client, lambda r: httpx.Response(400, json=error_body))

        with pytest.raises(BackendError) as exc_info:
            await client.generate_content({"contents": []})

        assert exc_info.value.message == "API key not valid."
        assert not HeuristicRateLimitClassifier().is_rate_limited(exc_info.value)

    async def test_non_json_error_body(self):
        """Should use the raw body when it is not JSON."""
        client = GeminiClient(direct_backend())
        attach_transport(client, lambda r: httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(BackendError) as exc_info:
            await client.generate_content({"contents": []})

        assert exc_info.value.status_code == 502
        assert "Bad Gateway" in exc_info.value.message

    async def test_transport_failure(self):
        """Should wrap transport errors in BackendError."""
        client = GeminiClient(direct_backend())

        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        attach_transport(client, fail)

        with pytest.raises(BackendError) as exc_info:
            await client.generate_content({"contents": []})

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestGeminiStreaming:
    """Tests for SSE stream parsing."""

    async def test_parses_sse_chunks(self):
        """Should parse data lines and skip the rest."""
        client = GeminiClient(direct_backend())
        lines = [
            'data: {"candidates": [{"content": {"parts": [{"text": "Hel"}]}}]}',
            "",
            ": keep-alive",
            'data: {"candidates": [{"content": {"parts": [{"text": "lo"}]}, "finishReason": "STOP"}]}',
            "",
            "data: not-json",
            "",
        ]
        seen = attach_transport(
            client,
            lambda r: httpx.Response(
                200,
                content="\n".join(lines).encode(),
                headers={"content-type": "text/event-stream"},
            ),
        )

        chunks = [c async for c in client.generate_content_stream({"contents": []})]

        assert len(chunks) == 2
        assert chunks[1]["candidates"][0]["finishReason"] == "STOP"
        assert seen[0].url.path == "/v1beta/models/gemini-2.5-flash:streamGenerateContent"
        assert seen[0].url.params["alt"] == "sse"
        assert seen[0].headers["accept"] == "text/event-stream"

    async def test_stream_error_status(self):
        """Should raise BackendError for a failed stream."""
        client = GeminiClient(direct_backend())
        error_body = {"error": {"code": 429, "message": "Too many requests", "status": "RESOURCE_EXHAUSTED"}}
        attach_transport(client, lambda r: httpx.Response(429, json=error_body))

        with pytest.raises(BackendError) as exc_info:
            async for _ in client.generate_content_stream({"contents": []}):
                pass

        assert exc_info.value.status_code == 429


class TestClientFactory:
    """Tests for building clients for a pool."""

    def test_skips_disabled_and_keyless(self):
        """Should build clients only for enabled keyed backends."""
        backends = [
            Backend(id="a", name="A", api_key="ka"),
            Backend(id="b", name="B", api_key=""),
            Backend(id="c", name="C", api_key="kc", enabled=False),
        ]

        clients = build_clients(backends, gemini_client_factory())

        assert list(clients) == ["a"]
        assert isinstance(clients["a"], GeminiClient)

    def test_skips_backend_whose_client_fails(self):
        """Should skip backends whose client cannot be built."""
        backends = [
            Backend(id="a", name="A", api_key="ka"),
            Backend(id="p", name="P", api_key="kp", transport=TransportKind.PROXIED),
        ]

        clients = build_clients(backends, gemini_client_factory())

        assert list(clients) == ["a"]

    async def test_close_releases_http_client(self):
        """Should drop the HTTP client on close."""
        client = GeminiClient(direct_backend())
        attach_transport(client, lambda r: httpx.Response(200, json={}))

        await client.close()

        assert client._client is None
