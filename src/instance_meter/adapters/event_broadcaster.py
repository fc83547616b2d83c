"""In-process event broadcaster for UI notifications."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from instance_meter.services.sessions import SessionNotifier

_logger = logging.getLogger(__name__)

EventListener = Callable[[str, dict[str, object]], None]


@dataclass
class EventBroadcaster(SessionNotifier):
    """Fan out named events to subscribed listeners."""

    listeners: list[EventListener] = field(default_factory=list)

    def subscribe(self, listener: EventListener) -> None:
        """Register a listener for every event."""
        self.listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        """Remove a previously registered listener."""
        if listener in self.listeners:
            self.listeners.remove(listener)

    def emit(self, event: str, payload: dict[str, object]) -> None:
        """Publish an event; a failing listener does not stop the others."""
        for listener in list(self.listeners):
            try:
                listener(event, payload)
            except Exception:
                _logger.exception("Event listener failed for %s", event)
