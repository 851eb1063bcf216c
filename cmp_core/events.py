"""
Event bus for the CMP core
Notifies external collaborators (logging, UI) of state transitions
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class Event:
    """A single notification delivered to subscribers"""
    name: str
    detail: Dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Event], None]


class EventBus:
    """Synchronous publish/subscribe.

    Handlers run in subscription order on the emitting thread. A failing
    handler is logged and does not stop delivery to the others.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self.history: List[Event] = []
        self.keep_history = False

    def subscribe(self, name: str, handler: Handler) -> None:
        if handler not in self._handlers[name]:
            self._handlers[name].append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> bool:
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def emit(self, name: str, **detail: Any) -> Event:
        event = Event(name=name, detail=detail)
        if self.keep_history:
            self.history.append(event)

        for handler in list(self._handlers.get(name, [])):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed", event=name)

        return event
