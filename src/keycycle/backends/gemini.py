"""
Google Gemini REST client.

Talks to the generateContent family of endpoints with httpx. Request and
response bodies are passed through untouched; the only translation is from
HTTP failures to BackendError.
"""

import json
import logging
from typing import Any, AsyncIterator

import httpx

from keycycle.backends.base import Backend, ContentClient, TransportKind
from keycycle.backends.errors import BackendError

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
API_VERSION = "v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_EMBEDDING_MODEL = "text-embedding-004"


class GeminiClient(ContentClient):
    """
    Gemini API client bound to a single backend credential.

    Direct backends call the public Google endpoint with an API key header.
    Proxied backends call the backend's own base URL with a bearer token.
    """

    def __init__(
        self,
        backend: Backend,
        base_url: str | None = None,
        timeout: float = 120.0,
    ):
        """
        Initialize Gemini client.

        Args:
            backend: Backend whose credential this client uses
            base_url: Default API base URL for direct backends
            timeout: Request timeout in seconds
        """
        super().__init__(backend)
        if backend.transport == TransportKind.PROXIED:
            if not backend.base_url:
                raise ValueError(f"Proxied backend '{backend.id}' requires a base_url")
            url = backend.base_url
        else:
            url = backend.base_url or base_url or GEMINI_BASE_URL
        self._base_url = url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
        return self._client

    def _build_headers(self, stream: bool = False) -> dict[str, str]:
        """Build request headers."""
        headers = {"Content-Type": "application/json"}
        if self.backend.transport == TransportKind.PROXIED:
            headers["Authorization"] = f"Bearer {self.backend.api_key}"
        else:
            headers["x-goog-api-key"] = self.backend.api_key
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    def _split_request(
        self, request: dict[str, Any], default_model: str
    ) -> tuple[str, dict[str, Any]]:
        """Separate the model name from the request body."""
        body = dict(request)
        model = body.pop("model", None) or default_model
        if model.startswith("models/"):
            model = model[len("models/") :]
        return model, body

    def _url(self, model: str, method: str) -> str:
        return f"/{API_VERSION}/models/{model}:{method}"

    def _error_from_body(self, status_code: int, raw: bytes) -> BackendError:
        """
        Build a BackendError from a Gemini error body.

        Gemini errors look like {"error": {"code": 429, "message": ..., "status": ...}}.
        """
        message = f"Status {status_code}"
        code = None
        try:
            payload = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            payload = {}
            if raw:
                message = raw.decode("utf-8", errors="replace")

        if isinstance(payload, list) and payload:
            payload = payload[0]
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            message = error.get("message") or message
            code = error.get("status")

        return BackendError(
            message,
            status_code=status_code,
            code=code,
            backend_id=self.backend.id,
        )

    async def _post(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(url, headers=self._build_headers(), json=body)
        except httpx.HTTPError as e:
            raise BackendError(
                f"Request to backend '{self.backend.id}' failed: {e}",
                backend_id=self.backend.id,
            ) from e

        if response.status_code != 200:
            raise self._error_from_body(response.status_code, response.content)

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise BackendError(
                f"Invalid JSON from backend '{self.backend.id}'",
                status_code=response.status_code,
                backend_id=self.backend.id,
            ) from e

    async def generate_content(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send a generateContent request."""
        model, body = self._split_request(request, DEFAULT_MODEL)
        return await self._post(self._url(model, "generateContent"), body)

    async def generate_content_stream(
        self, request: dict[str, Any]
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a streamGenerateContent request, yielding parsed SSE chunks."""
        model, body = self._split_request(request, DEFAULT_MODEL)
        client = await self._get_client()
        url = f"{self._url(model, 'streamGenerateContent')}?alt=sse"

        try:
            async with client.stream(
                "POST",
                url,
                headers=self._build_headers(stream=True),
                json=body,
            ) as response:
                if response.status_code != 200:
                    raw = await response.aread()
                    raise self._error_from_body(response.status_code, raw)

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[5:].strip()
                    if not data or data == "[DONE]":
                        continue
                    try:
                        yield json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed stream line from {self.backend.id}")
        except httpx.HTTPError as e:
            raise BackendError(
                f"Stream from backend '{self.backend.id}' failed: {e}",
                backend_id=self.backend.id,
            ) from e

    async def count_tokens(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send a countTokens request."""
        model, body = self._split_request(request, DEFAULT_MODEL)
        return await self._post(self._url(model, "countTokens"), body)

    async def embed_content(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send an embedContent request."""
        model, body = self._split_request(request, DEFAULT_EMBEDDING_MODEL)
        return await self._post(self._url(model, "embedContent"), body)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
