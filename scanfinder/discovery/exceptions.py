"""
Custom exceptions for the discovery engine.

Transport errors are recovered by restarting the mDNS client; startup
and invariant errors propagate to the caller.
"""


class DiscoveryError(Exception):
    """Base exception for all discovery errors."""

    pass


class TransportError(DiscoveryError):
    """Raised when the mDNS transport cannot start an operation."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        msg = f"mDNS transport operation '{operation}' failed"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)


class DiscoveryStartupError(DiscoveryError):
    """Raised when the discovery engine cannot allocate its transport client."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Failed to start mDNS discovery: {cause}")


class DiscoveryInvariantError(DiscoveryError):
    """Raised when an internal invariant is violated. Indicates a bug."""

    pass
