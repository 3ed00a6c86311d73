"""
keycycle.server.middleware - ASGI middleware.
"""

from keycycle.server.middleware.logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
