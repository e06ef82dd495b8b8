"""MongoDB document store stream reader."""

import atexit
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
import logging
import threading
from typing import Any

from typing_extensions import override

from subscription_transport.errors import (
    ConfigurationError,
    MissingHeaderError,
    UnsupportedResolutionError,
)
from subscription_transport.subscription import Resolution, TransportMedium
from subscription_transport.transport.base import LookaheadStreamReader

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "quant"

# Prices are stored as floats and emitted in the fixed-point form the bar parser expects.
SCALE_FACTOR = 10000.0

REQUIRED_HEADERS = (
    "resolution",
    "ticker",
    "market",
    "ticktype",
    "date",
    "PeriodStart",
    "PeriodFinish",
)

_ASCENDING = 1

Headers = Mapping[str, str] | Iterable[tuple[str, str]]


class MongoConnection:
    """
    Lazily create one MongoDB client and share it between readers.

    The client is created on first use under a lock, verified with a ``ping``
    and then kept until ``close`` is called. Readers never close it.
    """

    def __init__(
        self,
        client_factory: Callable[..., Any] | None = None,
        server_selection_timeout_ms: int = 5000,
    ) -> None:
        """
        Initialize MongoConnection.

        Args:
            client_factory: Callable creating the client from host and port.
                If None, ``pymongo.MongoClient`` is used.
            server_selection_timeout_ms: How long the first ping waits for a server.
        """
        self._client_factory = client_factory
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._client: Any = None
        self._lock = threading.Lock()

    def _create_client(self, host: str, port: int) -> Any:
        factory = self._client_factory
        if factory is None:
            try:
                from pymongo import MongoClient
            except ImportError as e:
                raise ImportError(
                    "pymongo is required for MongoDB subscriptions. "
                    "Install with: pip install subscription-transport[mongo]"
                ) from e
            factory = MongoClient

        client = factory(
            host,
            port,
            serverSelectionTimeoutMS=self._server_selection_timeout_ms,
        )
        try:
            client.admin.command("ping")
        except Exception:
            client.close()
            raise
        return client

    def get_client(self, host: str, port: int) -> Any:
        """Return the shared client, connecting to ``host:port`` on first use."""
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = self._create_client(host, port)
                    logger.info("Connected to MongoDB at %s:%d", host, port)
        return self._client

    def get_database(self, host: str, port: int, name: str = DEFAULT_DATABASE) -> Any:
        """Return database ``name`` on the shared client."""
        return self.get_client(host, port)[name]

    def close(self) -> None:
        """Close the shared client. Only meant for process shutdown."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None


shared_connection = MongoConnection()
atexit.register(shared_connection.close)


def _parse_period(key: str, value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y%m%d")
    except ValueError as e:
        raise ConfigurationError(f"Header '{key}' must be a yyyyMMdd date, got {value!r}") from e


@dataclass(frozen=True)
class QueryWindow:
    """
    Query parameters derived from a subscription's headers.

    Attributes:
        code: Upper-cased symbol code, e.g. ``000001.SZ``.
        period_start: First trade date included.
        period_finish: Last trade date included.
        resolution: Bar resolution; only ``DAILY`` is served.
        collection: Name of the collection holding the bars.
        current_date: Value of the ``date`` header.
    """

    code: str
    period_start: datetime
    period_finish: datetime
    resolution: Resolution
    collection: str
    current_date: str

    @classmethod
    def from_headers(cls, headers: Headers) -> "QueryWindow":
        """
        Parse the query window out of subscription headers.

        Raises:
            MissingHeaderError: If a required header is absent.
            UnsupportedResolutionError: If the resolution is not daily.
            ConfigurationError: If a header value cannot be parsed.
        """
        values = dict(headers.items() if isinstance(headers, Mapping) else headers)
        for key in REQUIRED_HEADERS:
            if key not in values:
                raise MissingHeaderError(key)

        resolution = Resolution.parse(values["resolution"])
        if resolution is not Resolution.DAILY:
            raise UnsupportedResolutionError(f"resolution: '{values['resolution']}' not supported")

        market = values["market"]
        ticker = values["ticker"].split(" ")[0]
        return cls(
            code=f"{ticker}.{market}".upper(),
            period_start=_parse_period("PeriodStart", values["PeriodStart"]),
            period_finish=_parse_period("PeriodFinish", values["PeriodFinish"]),
            resolution=resolution,
            collection=f"{market}_{values['ticktype']}BAR_{values['resolution']}".upper(),
            current_date=values["date"],
        )

    def to_filter(self) -> dict[str, Any]:
        """Return the MongoDB filter selecting the window's documents."""
        return {
            "code": self.code,
            "trade_date": {"$gte": self.period_start, "$lte": self.period_finish},
        }


def _format_number(value: Any) -> str:
    # Integral floats print without a fractional part, e.g. 93800 rather than 93800.0.
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _trade_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def render_daily_bar(document: Mapping[str, Any]) -> str:
    """
    Render a daily bar document as a bar line.

    Prices are multiplied by ``SCALE_FACTOR``; volume is written as stored.

    Returns:
        str: ``"yyyyMMdd 00:00,open,high,low,close,volume"``.
    """
    prices = [
        _format_number(float(document[field]) * SCALE_FACTOR)
        for field in ("open", "high", "low", "close")
    ]
    day = _trade_date(document["trade_date"]).strftime("%Y%m%d")
    return f"{day} 00:00,{','.join(prices)},{_format_number(document['volume'])}"


class MongoStreamReader(LookaheadStreamReader):
    """
    Stream bar lines from a MongoDB collection.

    Runs one filtered query sorted by trade date and renders each document
    as it is pulled, keeping one rendered line buffered ahead.
    """

    def __init__(self, database: Any, window: QueryWindow) -> None:
        """
        Initialize MongoStreamReader. No query runs until ``fetch_data``.

        Args:
            database: pymongo ``Database`` holding the bar collections.
            window: Query parameters parsed from the subscription headers.
        """
        super().__init__()
        self.window = window
        self._collection = database[window.collection]

    @classmethod
    def create(
        cls,
        host: str,
        port: int,
        headers: Headers,
        connection: MongoConnection | None = None,
        database_name: str = DEFAULT_DATABASE,
    ) -> "MongoStreamReader":
        """
        Connect through the shared connection, run the query and buffer the first line.

        Args:
            host: MongoDB host.
            port: MongoDB port.
            headers: Subscription headers describing the series and period.
            connection: Connection to use (default: the process-wide one).
            database_name: Database holding the bar collections.

        Returns:
            MongoStreamReader: Reader positioned on the first line.

        Raises:
            ConfigurationError: If the headers are missing keys or ask for an
                unsupported resolution.
            Exception: Whatever the MongoDB client raised if the connection failed.
        """
        window = QueryWindow.from_headers(headers)
        connection = connection or shared_connection

        try:
            database = connection.get_database(host, port, database_name)
        except Exception:
            logger.exception("Connect mongodb failed: host=%s, port=%s", host, port)
            raise

        reader = cls(database, window)
        reader.fetch_data()
        return reader

    def fetch_data(self) -> None:
        """Execute the query and buffer its first line."""
        cursor = self._collection.find(self.window.to_filter()).sort("trade_date", _ASCENDING)
        self._start(self._render(cursor))

        logger.info(
            "MongoStreamReader query on %s for %s [%s, %s] (empty=%s)",
            self.window.collection,
            self.window.code,
            self.window.period_start.date(),
            self.window.period_finish.date(),
            self.end_of_stream,
        )

    @staticmethod
    def _render(documents: Iterable[Mapping[str, Any]]) -> Iterator[str]:
        for document in documents:
            yield render_daily_bar(document)

    @property
    @override
    def transport_medium(self) -> TransportMedium:
        return TransportMedium.MONGODB
