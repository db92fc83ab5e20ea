"""
Scope tags and the execution context carrier.

A ``ScopeTag`` marks which logical execution produced an event. The active
tag lives in a ContextVar, so it follows every await inside the execution and
every task created from it (asyncio copies the context on task creation),
while sibling tasks never see each other's tag.
"""

import inspect
import itertools
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_counter = itertools.count(1)


class ScopeTag:
    """Opaque routing token, compared by identity only.

    The ``name`` is for repr and log output; two tags with the same name
    are still different scopes.
    """

    __slots__ = ("name",)

    def __init__(self, prefix: str = "probe"):
        self.name = f"{prefix}-{next(_counter)}"

    def __repr__(self) -> str:
        return f"<ScopeTag {self.name}>"


# Innermost active scope for the current task; None outside any run().
_current_scope: ContextVar[ScopeTag | None] = ContextVar("probekit_scope", default=None)


def current_scope() -> ScopeTag | None:
    """Return the innermost active scope, or None."""
    return _current_scope.get()


@contextmanager
def scoped(scope: ScopeTag) -> Iterator[ScopeTag]:
    """Activate ``scope`` for the duration of a ``with`` block."""
    token = _current_scope.set(scope)
    try:
        yield scope
    finally:
        _current_scope.reset(token)


async def _await_in_scope(scope: ScopeTag, awaitable: Awaitable[Any]) -> Any:
    with scoped(scope):
        return await awaitable


def run_in_scope(scope: ScopeTag, fn: Callable[..., Any] | Awaitable[Any], *args, **kwargs) -> Any:
    """
    Run ``fn`` with ``scope`` active and return its result.

    Synchronous callables run immediately. If ``fn`` is (or returns) an
    awaitable, a coroutine is returned instead; the scope is re-established
    around the await so that everything the awaitable does is covered,
    however many suspensions it goes through.

    Args:
        scope: Tag to activate.
        fn: Callable, coroutine function, or awaitable.
        *args: Positional arguments for ``fn``.
        **kwargs: Keyword arguments for ``fn``.

    Returns:
        The value of ``fn``, or a coroutine resolving to it.
    """
    if inspect.isawaitable(fn):
        if args or kwargs:
            raise TypeError("arguments cannot be passed with an awaitable")
        return _await_in_scope(scope, fn)

    with scoped(scope):
        result = fn(*args, **kwargs)

    if inspect.isawaitable(result):
        return _await_in_scope(scope, result)
    return result
