"""Subscription descriptors and the notifications raised about them."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from subscription_transport.errors import ConfigurationError


class TransportMedium(str, Enum):
    """Kind of backing store a subscription's data is read from."""

    LOCAL_FILE = "local_file"
    REMOTE_FILE = "remote_file"
    REST = "rest"
    MONGODB = "mongodb"

    @classmethod
    def parse(cls, value: "str | TransportMedium") -> "TransportMedium":
        """
        Resolve a medium from its name or value, ignoring case.

        Args:
            value: Member, member name (``"MONGODB"``) or value (``"mongodb"``).

        Returns:
            TransportMedium: The matching member.

        Raises:
            ConfigurationError: If no member matches.
        """
        if isinstance(value, TransportMedium):
            return value

        normalized = value.strip().lower()
        for member in cls:
            if normalized in (member.value, member.name.lower()):
                return member

        raise ConfigurationError(f"Unknown transport medium: {value!r}")


class Resolution(str, Enum):
    """Time granularity of a data series."""

    TICK = "Tick"
    SECOND = "Second"
    MINUTE = "Minute"
    HOUR = "Hour"
    DAILY = "Daily"

    @classmethod
    def parse(cls, value: str) -> "Resolution":
        """Resolve a resolution from its name, ignoring case."""
        normalized = value.strip().lower()
        for member in cls:
            if normalized == member.value.lower():
                return member

        raise ConfigurationError(f"Unknown resolution: {value!r}")


@dataclass(frozen=True)
class SubscriptionDataSource:
    """
    Immutable description of where and how to fetch one data series.

    Attributes:
        source: Locator of the data (file path, URL, or a label for database sources).
        transport_medium: Backing store the data is read from.
        headers: Ordered transport-specific key/value pairs.
    """

    source: str
    transport_medium: TransportMedium
    headers: tuple[tuple[str, str], ...] = field(default=())

    def __post_init__(self) -> None:
        # Accept any iterable of pairs or a mapping, store an immutable tuple.
        headers: Iterable[tuple[str, str]] = (
            self.headers.items() if isinstance(self.headers, Mapping) else self.headers
        )
        object.__setattr__(self, "headers", tuple((str(k), str(v)) for k, v in headers))
        object.__setattr__(self, "transport_medium", TransportMedium.parse(self.transport_medium))

    def header_dict(self) -> dict[str, str]:
        """Return the headers as a dictionary; later duplicates win."""
        return dict(self.headers)


@dataclass(frozen=True)
class InvalidSourceEvent:
    """Notification that a subscription's source could not produce usable data."""

    source: SubscriptionDataSource
    error: BaseException | None = None
