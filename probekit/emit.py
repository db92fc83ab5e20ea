"""Emission entry point called by instrumented application code."""

from typing import Any

from probekit import registry as _registry
from probekit.events import ProbeEvent, ScopedEvent
from probekit.registry import SubscriptionRegistry
from probekit.scope import current_scope


def probe_emit(label: str, value: Any = None, *, registry: SubscriptionRegistry | None = None) -> None:
    """
    Publish an observation to every active probe.

    Cheap when nobody listens: returns before touching the context or
    allocating an event. Never raises and never suspends.

    Args:
        label: Kind of observation
        value: Payload, passed by reference
        registry: Registry to broadcast on (default: the process-wide one)
    """
    target = registry if registry is not None else _registry.peek_default_registry()
    if not target:
        return
    target.broadcast(ScopedEvent(ProbeEvent(label, value), current_scope()))
