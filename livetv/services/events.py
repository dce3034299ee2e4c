"""
Change notifications for catalog and guide refreshes.
"""
import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

CATALOG_UPDATED = "catalog_updated"
CATALOG_ERROR = "catalog_error"
GUIDE_UPDATED = "guide_updated"
GUIDE_SOURCE_ERROR = "guide_source_error"

Subscriber = Callable[[Any], None]


class EventBus:
    """Explicit subscriber list keyed by event name."""

    def __init__(self):
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def subscribe(self, event: str, callback: Subscriber) -> None:
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Subscriber) -> None:
        try:
            self._subscribers[event].remove(callback)
        except ValueError:
            pass

    def publish(self, event: str, payload: Any = None) -> None:
        """Notify subscribers in registration order. A failing subscriber is logged and skipped."""
        for callback in list(self._subscribers.get(event, ())):
            try:
                callback(payload)
            except Exception as e:
                logger.error(f"Subscriber for '{event}' failed: {e}", exc_info=True)
