"""Shared probekit configuration utilities.

Centralises reading of the ``PROBEKIT_*`` environment variables so that the
engine, the stub and the pytest plugin share one implementation.
"""

import logging
import os
import sys
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1.0
DEFAULT_BUFFER_SIZE = 100

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}

# ---------------------------------------------------------------------------
# Low-level environment access
# ---------------------------------------------------------------------------


def _env_flag(name: str) -> bool | None:
    raw = os.environ.get(name, "").strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return None


def _env_number(name: str, cast, default):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.debug(f"Ignoring malformed {name}={raw!r}")
        return default
    if value <= 0:
        logger.debug(f"Ignoring non-positive {name}={raw!r}")
        return default
    return value


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def is_test_mode() -> bool:
    """Return True when the real probe engine should be active.

    ``PROBEKIT_TEST_MODE`` wins when set to a recognised boolean. Otherwise
    the engine is active whenever pytest has been imported in this process.
    """
    flag = _env_flag("PROBEKIT_TEST_MODE")
    if flag is not None:
        return flag
    return "pytest" in sys.modules


def get_default_timeout() -> float:
    """Return the default per-item ``next()`` timeout in seconds."""
    return _env_number("PROBEKIT_TIMEOUT", float, DEFAULT_TIMEOUT)


def get_default_buffer_size() -> int:
    """Return the default number of events a probe buffers before dropping."""
    return _env_number("PROBEKIT_BUFFER_SIZE", int, DEFAULT_BUFFER_SIZE)


# ---------------------------------------------------------------------------
# ProbeConfig – defaults applied by get_probe()
# ---------------------------------------------------------------------------


@dataclass
class ProbeConfig:
    """Probe defaults loaded from the environment."""

    timeout: float = field(default_factory=get_default_timeout)
    buffer_size: int = field(default_factory=get_default_buffer_size)
