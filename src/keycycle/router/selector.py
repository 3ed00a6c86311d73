"""
Round-robin backend selection with lazy cooldown recovery.

There is no background timer: excluded backends are readmitted as a side
effect of the first selection after the cooldown has elapsed.
"""

import logging
import threading

from keycycle.backends.base import Backend
from keycycle.router.registry import BackendRegistry

logger = logging.getLogger(__name__)


class Selector:
    """
    Picks the current backend from the registry.

    The cursor is a counter over the rotation ring (enabled, usable backends
    in configuration order). The current backend is the first non-excluded
    backend at or after the cursor position. With nothing excluded this is
    plain round-robin over the ring; when a backend is excluded its successor
    takes its place instead of being skipped.
    """

    def __init__(self, registry: BackendRegistry):
        self._registry = registry
        self._cursor = 0
        self._lock = threading.Lock()

    @property
    def position(self) -> int:
        """Current cursor value."""
        with self._lock:
            return self._cursor

    def current(self) -> Backend | None:
        """
        Get the backend the next attempt should use.

        Returns:
            Selected backend, or None if nothing is eligible
        """
        self._registry.maybe_recover()
        eligible = self._registry.eligible_backends()
        if not eligible:
            return None

        ring = self._registry.rotation_ring()
        eligible_ids = {b.id for b in eligible}
        with self._lock:
            cursor = self._cursor

        for offset in range(len(ring)):
            backend = ring[(cursor + offset) % len(ring)]
            if backend.id in eligible_ids:
                return backend

        return None

    def advance(self) -> None:
        """Move the cursor to the next backend."""
        with self._lock:
            self._cursor += 1
            cursor = self._cursor
        logger.debug(f"Rotation cursor advanced to {cursor}")
