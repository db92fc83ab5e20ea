"""
probekit - scoped probe events for testing concurrent code.

Application code calls ``probe_emit(label, value)``; tests create a probe,
run the code under its scope, and pull back only the events that execution
produced:

    probe = get_probe()
    await probe.run(handler, request)
    event = await probe.next()

Whether the real engine or the inert stub is exported is decided once, at
import time, by ``probekit.config.is_test_mode()``.
"""

from probekit.config import is_test_mode
from probekit.errors import (
    ProbeDisposedError,
    ProbeError,
    ProbeTimeoutError,
    ProbeUnavailableError,
)
from probekit.events import ProbeEvent

TEST_MODE = is_test_mode()

if TEST_MODE:
    from probekit.emit import probe_emit
    from probekit.probe import get_probe
else:
    from probekit.stub import get_probe, probe_emit

__all__ = [
    "TEST_MODE",
    "ProbeDisposedError",
    "ProbeError",
    "ProbeEvent",
    "ProbeTimeoutError",
    "ProbeUnavailableError",
    "get_probe",
    "probe_emit",
]
