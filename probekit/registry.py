"""
Subscription Registry - the set of probes that emissions broadcast to.

The registry is an explicit object so tests can own an isolated one; the
process-wide default is created lazily by the first probe and never torn
down. Probes remove themselves on disposal.
"""

import logging
from collections.abc import Callable

from probekit.events import ScopedEvent

logger = logging.getLogger(__name__)

# Type for delivery callbacks
Subscriber = Callable[[ScopedEvent], None]


class SubscriptionRegistry:
    """
    Ordered set of delivery callbacks.

    All mutation happens on the event loop thread, so no locking is needed:
    a broadcast iterates a snapshot taken when it starts, and callbacks that
    subscribe or unsubscribe mid-broadcast only affect later broadcasts.

    Example:
        registry = SubscriptionRegistry()
        registry.subscribe(on_event)
        registry.broadcast(ScopedEvent(ProbeEvent("saved", 42), scope))
        registry.unsubscribe(on_event)
    """

    def __init__(self) -> None:
        # dict keys keep insertion order, unlike set
        self._subscribers: dict[Subscriber, None] = {}

    def __len__(self) -> int:
        return len(self._subscribers)

    def __bool__(self) -> bool:
        return bool(self._subscribers)

    def __contains__(self, subscriber: object) -> bool:
        return subscriber in self._subscribers

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        """Register a delivery callback. Registering twice is a no-op."""
        self._subscribers[subscriber] = None
        logger.debug(f"Subscriber registered ({len(self._subscribers)} active)")
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> bool:
        """
        Remove a delivery callback.

        Returns:
            True if the callback was registered
        """
        if subscriber in self._subscribers:
            del self._subscribers[subscriber]
            logger.debug(f"Subscriber removed ({len(self._subscribers)} active)")
            return True
        return False

    def broadcast(self, event: ScopedEvent) -> int:
        """
        Deliver ``event`` to every current subscriber.

        A failing callback is isolated: its exception is discarded so the
        producer and the remaining subscribers are unaffected.

        Returns:
            Number of callbacks that completed without raising
        """
        delivered = 0
        for subscriber in tuple(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                logger.debug(f"Subscriber error for {event.event.label!r}: {e}")
                continue
            delivered += 1
        return delivered


_default_registry: SubscriptionRegistry | None = None


def peek_default_registry() -> SubscriptionRegistry | None:
    """Return the process-wide registry without creating it."""
    return _default_registry


def get_default_registry() -> SubscriptionRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = SubscriptionRegistry()
    return _default_registry
