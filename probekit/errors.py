"""Exceptions raised by the probe protocol."""


class ProbeError(Exception):
    """Base class for all probekit errors."""

    pass


class ProbeTimeoutError(ProbeError, TimeoutError):
    """No matching event arrived before a ``next()`` call expired.

    Attributes:
        timeout: The configured wait, in seconds.
        elapsed: How long the caller actually waited, in seconds.
    """

    def __init__(self, timeout: float, elapsed: float):
        super().__init__(f"Probe timeout after {timeout}s")
        self.timeout = timeout
        self.elapsed = elapsed


class ProbeDisposedError(ProbeError):
    """The probe was disposed while (or before) a ``next()`` call waited."""

    def __init__(self, message: str = "Probe disposed"):
        super().__init__(message)


class ProbeUnavailableError(ProbeError, RuntimeError):
    """Raised when probes are requested outside test mode."""

    def __init__(
        self,
        message: str = "get_probe() used outside tests: probes are only available in test mode",
    ):
        super().__init__(message)
