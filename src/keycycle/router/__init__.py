"""
keycycle.router - Rate-limit aware routing over a backend pool.

Rotates requests across interchangeable backends, excluding rate-limited
ones until a shared cooldown elapses.
"""

from keycycle.router.classifier import (
    DEFAULT_BLOCKED_FINISH_REASONS,
    DEFAULT_RATE_LIMIT_PATTERNS,
    ErrorClassifier,
    HeuristicRateLimitClassifier,
    ResponseHealthCheck,
)
from keycycle.router.config import (
    BackendConfig,
    ConfigValidationError,
    RouterConfig,
    backends_from_keys,
    load_router_config,
    validate_router_config,
)
from keycycle.router.dispatcher import Dispatcher
from keycycle.router.errors import (
    ExhaustedError,
    NoBackendAvailable,
    NonRetryable,
    RateLimited,
    RouterError,
)
from keycycle.router.events import EventHub, RouterEvent, RouterEventType
from keycycle.router.registry import DEFAULT_COOLDOWN, BackendRegistry
from keycycle.router.selector import Selector
from keycycle.router.service import (
    MultiBackendRouter,
    get_router,
    reset_router,
    set_router,
)

__all__ = [
    # Core
    "BackendRegistry",
    "DEFAULT_COOLDOWN",
    "Dispatcher",
    "MultiBackendRouter",
    "Selector",
    "get_router",
    "reset_router",
    "set_router",
    # Classification
    "DEFAULT_BLOCKED_FINISH_REASONS",
    "DEFAULT_RATE_LIMIT_PATTERNS",
    "ErrorClassifier",
    "HeuristicRateLimitClassifier",
    "ResponseHealthCheck",
    # Config
    "BackendConfig",
    "ConfigValidationError",
    "RouterConfig",
    "backends_from_keys",
    "load_router_config",
    "validate_router_config",
    # Errors
    "ExhaustedError",
    "NoBackendAvailable",
    "NonRetryable",
    "RateLimited",
    "RouterError",
    # Events
    "EventHub",
    "RouterEvent",
    "RouterEventType",
]
