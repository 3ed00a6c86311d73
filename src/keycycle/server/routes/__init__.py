"""
keycycle.server.routes - API route handlers.
"""

from keycycle.server.routes import admin, generate, health

__all__ = ["admin", "generate", "health"]
