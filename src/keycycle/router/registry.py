"""
Backend registry with runtime exclusion state.

The registry holds:
- The configured backends, in configuration order
- The set of backends excluded after rate-limit failures
- The time of the most recent exclusion (one shared cooldown clock)

Backends are never removed. A backend can be out of rotation because the
operator disabled it, because it has no usable client, or because it is
excluded; to_dict() reports which.
"""

import logging
import threading
import time
from typing import Any, Callable, Iterable

from keycycle.backends.base import Backend
from keycycle.router.events import EventHub, RouterEventType

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = 60.0


class BackendRegistry:
    """
    Registry of backends and their exclusion state.

    All reads and writes of the excluded set and timestamp happen under one
    lock. No I/O is performed while holding it.
    """

    def __init__(
        self,
        backends: Iterable[Backend],
        cooldown: float = DEFAULT_COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
        unusable: Iterable[str] = (),
        events: EventHub | None = None,
    ):
        """
        Initialize registry.

        Args:
            backends: Configured backends in rotation order
            cooldown: Seconds after the last exclusion before all are readmitted
            clock: Monotonic time source
            unusable: Ids of enabled backends that have no working client
            events: Event hub for exclusion/recovery notifications

        Raises:
            ValueError: If backend ids are duplicated or cooldown is negative
        """
        self._backends: list[Backend] = list(backends)
        ids = [b.id for b in self._backends]
        if len(ids) != len(set(ids)):
            raise ValueError("Backend ids must be unique")
        if cooldown < 0:
            raise ValueError("cooldown must be non-negative")

        self._by_id = {b.id: b for b in self._backends}
        self._unusable = set(unusable)
        self.cooldown = cooldown
        self._clock = clock
        self._events = events or EventHub()

        self._excluded: set[str] = set()
        self._last_exclusion: float | None = None
        self._lock = threading.Lock()

    @property
    def backends(self) -> list[Backend]:
        """All configured backends in order."""
        return list(self._backends)

    def get(self, backend_id: str) -> Backend | None:
        return self._by_id.get(backend_id)

    def is_usable(self, backend: Backend) -> bool:
        """Check if a backend may take part in rotation at all."""
        return backend.enabled and backend.id not in self._unusable

    def rotation_ring(self) -> list[Backend]:
        """Backends that rotate when nothing is excluded, in order."""
        return [b for b in self._backends if self.is_usable(b)]

    def eligible_backends(self) -> list[Backend]:
        """Enabled, usable and not excluded backends, in configuration order."""
        with self._lock:
            excluded = set(self._excluded)
        return [b for b in self._backends if self.is_usable(b) and b.id not in excluded]

    def excluded_ids(self) -> set[str]:
        with self._lock:
            return set(self._excluded)

    def is_excluded(self, backend_id: str) -> bool:
        with self._lock:
            return backend_id in self._excluded

    @property
    def last_exclusion(self) -> float | None:
        return self._last_exclusion

    def exclude(self, backend_id: str, at_time: float | None = None, reason: str = "") -> None:
        """
        Take a backend out of rotation.

        Excluding an already excluded backend only refreshes the timestamp.

        Args:
            backend_id: Backend to exclude
            at_time: Exclusion time on the registry clock (defaults to now)
            reason: Failure description for logs and events

        Raises:
            KeyError: If the backend is not registered
        """
        if backend_id not in self._by_id:
            raise KeyError(f"Backend '{backend_id}' not found")

        now = self._clock() if at_time is None else at_time
        with self._lock:
            already = backend_id in self._excluded
            self._excluded.add(backend_id)
            self._last_exclusion = now
            excluded_count = len(self._excluded)

        if not already:
            logger.warning(
                f"Backend {backend_id} excluded from rotation for {self.cooldown:.0f}s: {reason}"
            )
        self._events.emit(
            RouterEventType.BACKEND_EXCLUDED,
            backend_id=backend_id,
            reason=reason,
            excluded_count=excluded_count,
            cooldown=self.cooldown,
        )

    def maybe_recover(self, now: float | None = None) -> bool:
        """
        Readmit every excluded backend once the cooldown has elapsed.

        Args:
            now: Current time on the registry clock (defaults to now)

        Returns:
            True if excluded backends were readmitted
        """
        now = self._clock() if now is None else now
        with self._lock:
            if self._last_exclusion is None or now - self._last_exclusion <= self.cooldown:
                return False
            recovered = sorted(self._excluded)
            self._excluded.clear()
            self._last_exclusion = None

        if recovered:
            logger.info(f"Cooldown elapsed, readmitting backends: {', '.join(recovered)}")
            self._events.emit(RouterEventType.BACKENDS_RECOVERED, backend_ids=recovered)
        return bool(recovered)

    def cooldown_remaining(self, now: float | None = None) -> float | None:
        """Seconds until excluded backends are readmitted, or None."""
        now = self._clock() if now is None else now
        with self._lock:
            if self._last_exclusion is None:
                return None
            return max(0.0, self.cooldown - (now - self._last_exclusion))

    def reset(self) -> None:
        """Readmit all backends immediately, bypassing the cooldown."""
        with self._lock:
            cleared = sorted(self._excluded)
            self._excluded.clear()
            self._last_exclusion = None

        logger.info(f"Exclusions reset ({len(cleared)} backends readmitted)")
        self._events.emit(RouterEventType.EXCLUSIONS_RESET, backend_ids=cleared)

    def backend_state(self, backend: Backend) -> str:
        """Describe why a backend is or is not in rotation."""
        if not backend.enabled:
            return "disabled"
        if backend.id in self._unusable:
            return "unconfigured"
        if self.is_excluded(backend.id):
            return "excluded"
        return "eligible"

    def to_dict(self) -> dict[str, Any]:
        """
        Get registry state as dictionary.

        Returns:
            Dictionary with per-backend state and cooldown information
        """
        return {
            "backends": [
                {**b.to_dict(), "state": self.backend_state(b)} for b in self._backends
            ],
            "total": len(self._backends),
            "eligible": len(self.eligible_backends()),
            "excluded": sorted(self.excluded_ids()),
            "cooldown": self.cooldown,
            "cooldown_remaining": self.cooldown_remaining(),
        }
