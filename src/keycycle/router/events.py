"""
Rotation events for observability.

The registry and dispatcher publish an event for every exclusion, recovery,
reset, scheduled retry and exhaustion. Listeners are plain callables; a
failing listener is logged and never affects routing.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class RouterEventType(str, Enum):
    """Router event types."""

    BACKEND_EXCLUDED = "backend.excluded"
    BACKENDS_RECOVERED = "backends.recovered"
    EXCLUSIONS_RESET = "exclusions.reset"
    RETRY_SCHEDULED = "retry.scheduled"
    ATTEMPTS_EXHAUSTED = "attempts.exhausted"
    NO_BACKEND = "backend.none"


@dataclass
class RouterEvent:
    """A single router state change."""

    type: RouterEventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


EventListener = Callable[[RouterEvent], None]


class EventHub:
    """Fan-out of router events to registered listeners."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def add_listener(self, listener: EventListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event_type: RouterEventType, **data: Any) -> RouterEvent:
        """
        Publish an event to every listener.

        Args:
            event_type: Kind of event
            **data: Event payload

        Returns:
            The published event
        """
        event = RouterEvent(type=event_type, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Router event listener failed on {event_type.value}: {e}")
        return event
