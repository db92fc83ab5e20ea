"""
No-op variants exported by ``probekit`` outside test mode.

``probe_emit`` keeps the engine's signature but does nothing: no registry,
no context lookup, no allocation. ``get_probe`` fails loudly, since asking
for a probe in production is a programming error.
"""

from typing import Any

from probekit.errors import ProbeUnavailableError


def probe_emit(label: str, value: Any = None, *, registry: Any = None) -> None:
    """Do nothing. Instrumentation is inert outside test mode."""


def get_probe(**options: Any):
    """Raise ProbeUnavailableError; probes only exist in test mode."""
    raise ProbeUnavailableError()
