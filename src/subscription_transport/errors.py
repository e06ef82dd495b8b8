"""Exception hierarchy for subscription transports."""


class TransportError(Exception):
    """Base class for all errors raised by subscription transports."""


class ConfigurationError(TransportError, ValueError):
    """
    Raised when a subscription or the process configuration is malformed.

    These indicate a defect in the calling configuration rather than a problem
    with the data source, and are never retried.
    """


class MissingHeaderError(ConfigurationError, KeyError):
    """Raised when a transport requires a header the subscription does not carry."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Required subscription header '{self.key}' is missing"


class UnsupportedResolutionError(ConfigurationError):
    """Raised when a transport cannot serve the requested resolution."""


class UnsupportedTransportError(ConfigurationError):
    """Raised when a subscription declares a transport medium with no reader."""


class EmptyReaderError(TransportError):
    """Reported when a transport produced a stream with no records in it."""
