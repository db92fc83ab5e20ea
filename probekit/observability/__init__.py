"""
Observability helpers for probekit.

Log records written inside ``probe.run(...)`` carry the active probe scope
automatically, so interleaved output from concurrent tests can be told apart.
"""

from probekit.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    configure_logging,
    get_scope_context,
)

__all__ = [
    "HumanReadableFormatter",
    "StructuredFormatter",
    "configure_logging",
    "get_scope_context",
]
