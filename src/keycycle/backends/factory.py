"""
Client construction for configured backends.
"""

import logging
from typing import Callable

from keycycle.backends.base import Backend, ContentClient
from keycycle.backends.gemini import GeminiClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Backend], ContentClient]


def gemini_client_factory(base_url: str | None = None, timeout: float = 120.0) -> ClientFactory:
    """Return a factory building GeminiClient instances."""

    def build(backend: Backend) -> ContentClient:
        return GeminiClient(backend, base_url=base_url, timeout=timeout)

    return build


def build_clients(
    backends: list[Backend],
    factory: ClientFactory,
) -> dict[str, ContentClient]:
    """
    Build one client per usable backend.

    Disabled backends and backends without a credential get no client. A
    backend whose client fails to construct is logged and skipped; the router
    treats it as unusable.

    Args:
        backends: Configured backends in order
        factory: Callable producing a client for a backend

    Returns:
        Mapping of backend id to client
    """
    clients: dict[str, ContentClient] = {}
    for backend in backends:
        if not backend.enabled or not backend.is_configured:
            continue
        try:
            clients[backend.id] = factory(backend)
        except Exception as e:
            logger.warning(f"Failed to initialize client for backend {backend.name}: {e}")
    return clients
