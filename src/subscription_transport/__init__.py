"""subscription-transport: uniform line streams over files, REST endpoints and MongoDB."""

from subscription_transport.config import TransportSettings
from subscription_transport.reader import SubscriptionDataSourceReader
from subscription_transport.subscription import (
    InvalidSourceEvent,
    Resolution,
    SubscriptionDataSource,
    TransportMedium,
)

__all__ = [
    "InvalidSourceEvent",
    "Resolution",
    "SubscriptionDataSource",
    "SubscriptionDataSourceReader",
    "TransportMedium",
    "TransportSettings",
]
