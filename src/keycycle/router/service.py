"""
Multi-backend router facade.

Wires the registry, selector and dispatcher together and exposes the
generation operations plus an observability/control surface.
"""

import logging
import time
from typing import Any, AsyncIterator, Callable, Iterable, Mapping

from keycycle.backends.base import Backend, ContentClient
from keycycle.backends.factory import ClientFactory, build_clients, gemini_client_factory
from keycycle.router.classifier import ErrorClassifier, ResponseHealthCheck
from keycycle.router.config import RouterConfig
from keycycle.router.dispatcher import Dispatcher
from keycycle.router.events import EventHub, EventListener
from keycycle.router.registry import DEFAULT_COOLDOWN, BackendRegistry
from keycycle.router.selector import Selector

logger = logging.getLogger(__name__)


class MultiBackendRouter:
    """
    Routes generation requests over a pool of interchangeable backends.

    Rate-limited backends are excluded and the next one is tried; after the
    cooldown every excluded backend is readmitted.
    """

    def __init__(
        self,
        backends: Iterable[Backend],
        *,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        cooldown: float = DEFAULT_COOLDOWN,
        clients: Mapping[str, ContentClient] | None = None,
        client_factory: ClientFactory | None = None,
        classifier: ErrorClassifier | None = None,
        response_check: Callable[[Any], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize router.

        Args:
            backends: Configured backends in rotation order
            max_attempts: Attempts per logical request
            retry_delay: Seconds between attempts
            cooldown: Seconds after the last exclusion before readmission
            clients: Prebuilt client per backend id (skips client_factory)
            client_factory: Builds a client for each usable backend
            classifier: Rate-limit classifier
            response_check: Health check for generate responses and stream chunks
            clock: Monotonic time source
        """
        backends = list(backends)
        if clients is None:
            clients = build_clients(backends, client_factory or gemini_client_factory())
        self._clients = dict(clients)

        unusable = [b.id for b in backends if b.enabled and b.id not in self._clients]
        for backend_id in unusable:
            logger.warning(f"Backend {backend_id} has no usable client and will not rotate")

        self.events = EventHub()
        self.registry = BackendRegistry(
            backends,
            cooldown=cooldown,
            clock=clock,
            unusable=unusable,
            events=self.events,
        )
        self.selector = Selector(self.registry)
        self.dispatcher = Dispatcher(
            self.registry,
            self.selector,
            self._clients,
            max_attempts=max_attempts,
            retry_delay=retry_delay,
            classifier=classifier,
            events=self.events,
        )
        self._response_check = response_check or ResponseHealthCheck()

        logger.info(
            f"Router ready with {len(self.registry.rotation_ring())}/{len(backends)} backends "
            f"(max_attempts={max_attempts}, retry_delay={retry_delay}s, cooldown={cooldown}s)"
        )

    @classmethod
    def from_config(cls, config: RouterConfig, **kwargs: Any) -> "MultiBackendRouter":
        """Create a router from a RouterConfig."""
        return cls(
            config.to_backends(),
            max_attempts=config.max_attempts,
            retry_delay=config.retry_delay,
            cooldown=config.cooldown,
            **kwargs,
        )

    @property
    def max_attempts(self) -> int:
        return self.dispatcher.max_attempts

    @property
    def retry_delay(self) -> float:
        return self.dispatcher.retry_delay

    async def generate(self, request: dict[str, Any]) -> dict[str, Any]:
        """Generate content on the current backend, failing over on rate limits."""
        return await self.dispatcher.invoke(
            lambda client: client.generate_content(request),
            check=self._response_check,
        )

    def generate_stream(self, request: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        """Stream generated content; failover only happens before the first chunk."""
        return self.dispatcher.invoke_stream(
            lambda client: client.generate_content_stream(request),
            check=self._response_check,
        )

    async def count_tokens(self, request: dict[str, Any]) -> dict[str, Any]:
        """Count tokens on the current backend, failing over on rate limits."""
        return await self.dispatcher.invoke(lambda client: client.count_tokens(request))

    async def embed(self, request: dict[str, Any]) -> dict[str, Any]:
        """Embed content on the current backend, failing over on rate limits."""
        return await self.dispatcher.invoke(lambda client: client.embed_content(request))

    def current_backend_id(self) -> str | None:
        backend = self.selector.current()
        return backend.id if backend else None

    def excluded_backend_ids(self) -> set[str]:
        self.registry.maybe_recover()
        return self.registry.excluded_ids()

    def eligible_backend_ids(self) -> set[str]:
        self.registry.maybe_recover()
        return {b.id for b in self.registry.eligible_backends()}

    def reset_exclusions(self) -> None:
        """Operator reset: readmit every excluded backend now."""
        self.registry.reset()

    def add_listener(self, listener: EventListener) -> None:
        self.events.add_listener(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self.events.remove_listener(listener)

    def status(self) -> dict[str, Any]:
        """
        Get router state as dictionary.

        Returns:
            Current backend, per-backend state and retry settings
        """
        current = self.current_backend_id()
        state = self.registry.to_dict()
        return {
            "current": current,
            "max_attempts": self.max_attempts,
            "retry_delay": self.retry_delay,
            "cursor": self.selector.position,
            **state,
        }

    async def aclose(self) -> None:
        """Close every backend client."""
        for backend_id, client in self._clients.items():
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Failed to close client for backend {backend_id}: {e}")


# Global router instance
_router: MultiBackendRouter | None = None


def get_router() -> MultiBackendRouter | None:
    """
    Get the global router.

    Returns:
        Router installed by the server, or None
    """
    return _router


def set_router(router: MultiBackendRouter | None) -> None:
    """Install the global router."""
    global _router
    _router = router


def reset_router() -> None:
    """Reset the global router (for testing)."""
    global _router
    _router = None
