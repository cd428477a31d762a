"""
In-process publication of domain events.

Services publish after a mutation has committed; subscribers (the WebSocket
notifier) fan the event out to connected clients. Topics:

    game:{game_id}   events for everyone in a game's room
    user:{user_id}   personal notifications
    broadcast        events for every connected client
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[[str, str, Dict[str, Any]], Awaitable[None]]

BROADCAST_TOPIC = "broadcast"


def game_topic(game_id: str) -> str:
    return f"game:{game_id}"


def user_topic(user_id: str) -> str:
    return f"user:{user_id}"


class EventBus:
    """Fan-out of (topic, event, payload) to async subscribers."""

    def __init__(self):
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, topic: str, event: str, payload: Dict[str, Any]) -> None:
        """
        Deliver an event to every subscriber.

        The mutation being announced has already committed, so a failing
        subscriber is logged and does not fail the publisher.
        """
        logger.debug(f"Publishing {event} on {topic}")
        for handler in list(self._handlers):
            try:
                await handler(topic, event, payload)
            except Exception as e:
                logger.error(f"Event handler failed for {event} on {topic}: {e}", exc_info=True)


# Global event bus instance
_event_bus = EventBus()


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    return _event_bus
