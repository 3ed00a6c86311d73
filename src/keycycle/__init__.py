"""
keycycle - Rate-limit aware multi-backend router for generative content APIs

Spreads requests over a pool of interchangeable API keys/endpoints, rotating
away from backends that hit their quota and readmitting them after a cooldown.

Example usage:
    # Start the server
    $ keycycle serve

    # View rotation status
    $ keycycle status --live

    # Readmit all excluded backends
    $ keycycle reset
"""

__version__ = "0.1.0"

from keycycle.backends import (
    Backend,
    BackendError,
    ContentClient,
    GeminiClient,
    TransportKind,
    UnhealthyResponseError,
)
from keycycle.router import (
    ExhaustedError,
    MultiBackendRouter,
    NoBackendAvailable,
    NonRetryable,
    RateLimited,
    RouterConfig,
    RouterError,
    load_router_config,
)

__all__ = [
    # Version info
    "__version__",
    # Backends
    "Backend",
    "BackendError",
    "ContentClient",
    "GeminiClient",
    "TransportKind",
    "UnhealthyResponseError",
    # Router
    "MultiBackendRouter",
    "RouterConfig",
    "load_router_config",
    # Errors
    "ExhaustedError",
    "NoBackendAvailable",
    "NonRetryable",
    "RateLimited",
    "RouterError",
]
