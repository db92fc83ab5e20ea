"""Shared fixtures for probekit tests."""

import pytest

from probekit.registry import SubscriptionRegistry


@pytest.fixture
def registry() -> SubscriptionRegistry:
    """An isolated registry so tests never see each other's probes."""
    return SubscriptionRegistry()


@pytest.fixture(autouse=True)
def _clean_probe_env(monkeypatch: pytest.MonkeyPatch):
    for name in ("PROBEKIT_TIMEOUT", "PROBEKIT_BUFFER_SIZE"):
        monkeypatch.delenv(name, raising=False)
