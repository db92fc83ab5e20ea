"""
Probe - a per-test observer of scoped probe events.

Each probe owns a fresh ScopeTag and subscribes one delivery callback to a
SubscriptionRegistry. Emissions reach every probe; a probe keeps only the
events tagged with its own scope (and accepted by its optional filter), then
either hands them to the oldest pending ``next()`` call or buffers them.

Backpressure:
    The buffer is bounded by ``buffer_size``. When a consumer falls behind,
    the oldest buffered events are dropped so the most recent activity is
    always retrievable.

Usage:
    probe = get_probe(timeout=0.5)
    await probe.run(service.handle, request)
    event = await probe.next()
    assert event.label == "handled"
    probe.dispose()
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from probekit.config import ProbeConfig
from probekit.errors import ProbeDisposedError, ProbeTimeoutError
from probekit.events import ProbeEvent, ScopedEvent
from probekit.registry import SubscriptionRegistry, get_default_registry
from probekit.scope import ScopeTag, run_in_scope
from probekit.scope import scoped as activate_scope

logger = logging.getLogger(__name__)

# Type for user predicates applied after scope matching
EventFilter = Callable[[ProbeEvent], bool]


class ProbeOptions(BaseModel):
    """Validated per-probe settings."""

    timeout: float = Field(ge=0, description="Default next() timeout in seconds")
    buffer_size: int = Field(ge=1, description="Buffered events kept before dropping the oldest")
    filter: EventFilter | None = None

    model_config = {"frozen": True}


@dataclass(eq=False)
class _Waiter:
    """An outstanding next() call."""

    future: asyncio.Future
    timeout: float
    started: float
    timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()


class Probe:
    """
    Scoped, buffered, pull-based event observer.

    A probe is also an infinite async iterator (each step is ``next()`` with
    the default timeout) and a context manager that disposes on exit.
    """

    def __init__(self, options: ProbeOptions, registry: SubscriptionRegistry):
        self._options = options
        self._registry = registry
        self._scope = ScopeTag()
        self._buffer: deque[ProbeEvent] = deque(maxlen=options.buffer_size)
        self._waiters: deque[_Waiter] = deque()
        self._disposed = False

        # Keep one bound method so unsubscribe() finds the same object
        self._subscriber = self._deliver
        registry.subscribe(self._subscriber)
        logger.debug(f"Probe {self._scope.name} created (buffer_size={options.buffer_size})")

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"buffered={len(self._buffer)} pending={self.pending}"
        return f"<Probe {self._scope.name} {state}>"

    @property
    def scope(self) -> ScopeTag:
        return self._scope

    @property
    def options(self) -> ProbeOptions:
        return self._options

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def buffered(self) -> int:
        """Number of events waiting to be consumed."""
        return len(self._buffer)

    @property
    def pending(self) -> int:
        """Number of next() calls still waiting for an event."""
        return sum(1 for w in self._waiters if not w.future.done())

    # === DELIVERY ===

    def _deliver(self, scoped_event: ScopedEvent) -> None:
        # A broadcast snapshot may still reach us after dispose()
        if self._disposed or scoped_event.scope is not self._scope:
            return

        event = scoped_event.event
        predicate = self._options.filter
        if predicate is not None and not predicate(event):
            return

        while self._waiters:
            waiter = self._waiters.popleft()
            waiter.cancel_timer()
            if not waiter.future.done():
                waiter.future.set_result(event)
                return

        if len(self._buffer) == self._buffer.maxlen:
            logger.debug(f"Probe {self._scope.name} buffer full, dropping {self._buffer[0].label!r}")
        self._buffer.append(event)

    def _expire(self, waiter: _Waiter) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            return
        if not waiter.future.done():
            elapsed = waiter.future.get_loop().time() - waiter.started
            waiter.future.set_exception(ProbeTimeoutError(waiter.timeout, elapsed))

    def _discard(self, waiter: _Waiter) -> None:
        waiter.cancel_timer()
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    # === CONSUMPTION ===

    async def next(self, timeout: float | None = None) -> ProbeEvent:
        """
        Return the next matching event.

        Buffered events are returned without suspending. Otherwise the call
        waits until an event is delivered, the timeout expires, or the probe
        is disposed. Concurrent calls are served in the order they were made.

        Args:
            timeout: Seconds to wait (default: the probe's timeout)

        Returns:
            The oldest undelivered ProbeEvent

        Raises:
            ProbeTimeoutError: nothing arrived within ``timeout``
            ProbeDisposedError: the probe is, or became, disposed
        """
        if self._disposed:
            raise ProbeDisposedError()
        if self._buffer:
            return self._buffer.popleft()

        wait = self._options.timeout if timeout is None else timeout
        if wait < 0:
            raise ValueError(f"timeout must be non-negative, got {wait}")

        loop = asyncio.get_running_loop()
        waiter = _Waiter(future=loop.create_future(), timeout=wait, started=loop.time())
        waiter.timer = loop.call_later(wait, self._expire, waiter)
        self._waiters.append(waiter)

        try:
            return await waiter.future
        except asyncio.CancelledError:
            self._discard(waiter)
            future = waiter.future
            # Delivered just before the cancel landed: requeue at the head
            if not self._disposed and future.done() and not future.cancelled() and future.exception() is None:
                if len(self._buffer) < self._options.buffer_size:
                    self._buffer.appendleft(future.result())
            raise

    def __aiter__(self) -> "Probe":
        return self

    async def __anext__(self) -> ProbeEvent:
        return await self.next()

    # === SCOPING ===

    def run(self, fn: Callable[..., Any] | Awaitable[Any], *args, **kwargs) -> Any:
        """
        Run ``fn`` under this probe's scope.

        Returns whatever ``fn`` returns; for coroutine functions and other
        awaitables, returns a coroutine to await. Tasks created inside the
        scope inherit it. If another probe's ``run`` is nested inside, only
        the innermost probe receives events from that region.
        """
        return run_in_scope(self._scope, fn, *args, **kwargs)

    @contextmanager
    def scoped(self) -> Iterator["Probe"]:
        """Activate this probe's scope for a ``with`` block."""
        with activate_scope(self._scope):
            yield self

    # === LIFECYCLE ===

    def dispose(self) -> None:
        """Unsubscribe, fail pending next() calls, and drop buffered events."""
        if self._disposed:
            return
        self._disposed = True
        self._registry.unsubscribe(self._subscriber)

        waiters, self._waiters = self._waiters, deque()
        for waiter in waiters:
            waiter.cancel_timer()
            if not waiter.future.done():
                waiter.future.set_exception(ProbeDisposedError())
        self._buffer.clear()
        logger.debug(f"Probe {self._scope.name} disposed ({len(waiters)} waiters rejected)")

    def __enter__(self) -> "Probe":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    async def __aenter__(self) -> "Probe":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.dispose()


def get_probe(
    *,
    timeout: float | None = None,
    filter: EventFilter | None = None,
    buffer_size: int | None = None,
    registry: SubscriptionRegistry | None = None,
) -> Probe:
    """
    Create a probe subscribed to ``registry``.

    Args:
        timeout: Default next() timeout in seconds (default 1.0); 0 means
            "only what is already buffered"
        filter: Predicate over ProbeEvent, applied after scope matching
        buffer_size: Maximum buffered events, oldest dropped (default 100)
        registry: Registry to subscribe to (default: the process-wide one)

    Raises:
        pydantic.ValidationError: if timeout or buffer_size is out of range
    """
    config = ProbeConfig()
    options = ProbeOptions(
        timeout=config.timeout if timeout is None else timeout,
        buffer_size=config.buffer_size if buffer_size is None else buffer_size,
        filter=filter,
    )
    return Probe(options, registry if registry is not None else get_default_registry())
