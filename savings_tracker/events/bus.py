"""Fire-and-forget refresh signals for goals and assets."""
import inspect
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

GOAL_UPDATED = "goal_updated"
ASSET_UPDATED = "asset_updated"


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], Any]]] = {}

    def subscribe(self, topic: str, handler: Callable[[Any], Any]) -> None:
        self._subscribers.setdefault(topic, []).append(handler)

    def unsubscribe(self, topic: str, handler: Callable[[Any], Any]) -> None:
        handlers = self._subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, topic: str, event: Any) -> None:
        # Subscriber errors are logged, never raised to the publisher
        for handler in list(self._subscribers.get(topic, [])):
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    handler(event)
            except Exception:
                logger.exception(f"Subscriber for '{topic}' failed")

    def count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))
