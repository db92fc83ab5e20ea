"""
Probe events - the payload units flowing from emitters to probes.

``ProbeEvent`` is the public shape handed to tests. ``ScopedEvent`` is the
routing envelope the registry broadcasts; its scope never reaches consumers.
"""

from dataclasses import dataclass
from typing import Any

from probekit.scope import ScopeTag


@dataclass(frozen=True, slots=True)
class ProbeEvent:
    """A single observation emitted by instrumented code.

    Attributes:
        label: Identifies the kind of observation.
        value: Application-defined payload, passed through untouched.
    """

    label: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for assertions and serialization."""
        return {"label": self.label, "value": self.value}


@dataclass(frozen=True, slots=True)
class ScopedEvent:
    """A ProbeEvent tagged with the scope that produced it."""

    event: ProbeEvent
    scope: ScopeTag | None = None
