"""
keycycle.backends - Upstream backend model and clients.
"""

from keycycle.backends.base import Backend, ContentClient, TransportKind
from keycycle.backends.errors import BackendError, UnhealthyResponseError
from keycycle.backends.factory import ClientFactory, build_clients, gemini_client_factory
from keycycle.backends.gemini import GeminiClient

__all__ = [
    # Model
    "Backend",
    "ContentClient",
    "TransportKind",
    # Errors
    "BackendError",
    "UnhealthyResponseError",
    # Clients
    "ClientFactory",
    "GeminiClient",
    "build_clients",
    "gemini_client_factory",
]
