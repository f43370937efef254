# hostpulse/internal/errors.py

"""
Exception types shared by the collector, aggregator, storage adapters
and the API layer.
"""


class HostpulseError(Exception):
    """Base class for every error raised by hostpulse."""


class TransientCollectionError(HostpulseError):
    """
    One target's sample failed during a collection tick.
    Isolated to that target and not retried until the next tick.
    """

    def __init__(self, target: str, reason: str):
        super().__init__(f"Sample for {target} failed: {reason}")
        self.target = target
        self.reason = reason


class StorageError(HostpulseError):
    """A read or write against the durable store failed."""


class ConfigurationError(HostpulseError):
    """Invalid configuration or a malformed threshold list."""


class DiscoveryError(HostpulseError):
    """The target list could not be obtained."""


class UnknownTargetError(TransientCollectionError):
    """No provider is registered for the requested target."""

    def __init__(self, target: str):
        super().__init__(target, "no metrics provider registered")
