"""
Backend data model and client interface.

A backend is one configured upstream credential/endpoint. Every backend is
served by a ContentClient that knows how to talk to the generation service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator


class TransportKind(str, Enum):
    """How a backend reaches the generation service."""

    DIRECT = "direct"
    PROXIED = "proxied"


@dataclass(frozen=True)
class Backend:
    """One configured upstream credential."""

    id: str
    name: str
    api_key: str = ""
    transport: TransportKind = TransportKind.DIRECT
    enabled: bool = True
    base_url: str | None = None

    @property
    def is_configured(self) -> bool:
        """Check if the backend carries a credential."""
        return bool(self.api_key)

    @property
    def masked_key(self) -> str:
        """Credential hint safe for display."""
        if not self.api_key:
            return ""
        if len(self.api_key) <= 8:
            return "****"
        return f"{self.api_key[:4]}...{self.api_key[-4:]}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (never includes the credential)."""
        return {
            "id": self.id,
            "name": self.name,
            "transport": self.transport.value,
            "enabled": self.enabled,
            "configured": self.is_configured,
            "base_url": self.base_url,
            "key_hint": self.masked_key,
        }


class ContentClient(ABC):
    """
    Abstract client for one backend of the generation service.

    Requests and responses are opaque dictionaries. Failures must be raised as
    BackendError so the router can classify them.
    """

    def __init__(self, backend: Backend):
        self.backend = backend

    @abstractmethod
    async def generate_content(self, request: dict[str, Any]) -> dict[str, Any]:
        """Single-shot generation."""
        ...

    @abstractmethod
    def generate_content_stream(self, request: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        """
        Streaming generation.

        Returns a finite, forward-only async iterator of response chunks.
        It cannot be restarted.
        """
        ...

    @abstractmethod
    async def count_tokens(self, request: dict[str, Any]) -> dict[str, Any]:
        """Count tokens for a request."""
        ...

    @abstractmethod
    async def embed_content(self, request: dict[str, Any]) -> dict[str, Any]:
        """Compute embeddings for a request."""
        ...

    async def close(self) -> None:
        """Release transport resources."""
        return None
