"""Unified entry point for reading subscription data from any transport."""

from collections.abc import Callable, Iterator
import logging

from subscription_transport.config import TransportSettings
from subscription_transport.errors import EmptyReaderError, UnsupportedTransportError
from subscription_transport.subscription import (
    InvalidSourceEvent,
    SubscriptionDataSource,
    TransportMedium,
)
from subscription_transport.transport.base import StreamReader
from subscription_transport.transport.local import LocalFileStreamReader
from subscription_transport.transport.mongo import MongoConnection, MongoStreamReader
from subscription_transport.transport.remote import RemoteFileCache, RemoteFileStreamReader
from subscription_transport.transport.rest import RestStreamReader

logger = logging.getLogger(__name__)

InvalidSourceHandler = Callable[[InvalidSourceEvent], None]


class SubscriptionDataSourceReader:
    """
    Create stream readers for subscription data sources.

    Selects the reader matching a source's transport medium and validates that
    it produced data. Failures are reported to the registered invalid-source
    handlers instead of being raised, so one bad source does not abort the
    caller's subscription loop.
    """

    def __init__(
        self,
        settings: TransportSettings | None = None,
        is_live_mode: bool = False,
        remote_cache: RemoteFileCache | None = None,
        mongo_connection: MongoConnection | None = None,
    ) -> None:
        """
        Initialize the reader.

        Args:
            settings: Connection and cache settings (default: read from the environment).
            is_live_mode: True in live trading, False for backtesting.
            remote_cache: Download cache for remote files (default: built from settings).
            mongo_connection: MongoDB connection (default: the process-wide one).
        """
        self.settings = settings or TransportSettings.from_env()
        self.is_live_mode = is_live_mode
        self.remote_cache = remote_cache or RemoteFileCache(
            self.settings.cache_directory,
            max_age=self.settings.cache_max_age,
            timeout=self.settings.request_timeout,
        )
        self.mongo_connection = mongo_connection
        self._invalid_source_handlers: list[InvalidSourceHandler] = []

    def add_invalid_source_handler(self, handler: InvalidSourceHandler) -> None:
        """Register a callable notified whenever a source is found invalid."""
        self._invalid_source_handlers.append(handler)

    def remove_invalid_source_handler(self, handler: InvalidSourceHandler) -> None:
        """Unregister a handler added with ``add_invalid_source_handler``."""
        self._invalid_source_handlers.remove(handler)

    def create_stream_reader(self, source: SubscriptionDataSource) -> StreamReader | None:
        """
        Create a stream reader for ``source``.

        Args:
            source: The subscription data source to read.

        Returns:
            StreamReader | None: A reader with at least one line available, or
            None if the source is invalid. Invalid sources are reported to the
            invalid-source handlers.

        Unknown media are rejected when ``SubscriptionDataSource`` is
        constructed, so the error below only signals a ``TransportMedium``
        member this dispatcher has no reader for.

        Raises:
            UnsupportedTransportError: If no reader exists for the transport medium.
        """
        factory = self._reader_factory(source.transport_medium)

        try:
            reader = factory(source)
        except Exception as e:
            self._on_invalid_source(source, e)
            return None

        if reader is None or reader.end_of_stream:
            if reader is not None:
                reader.close()
            self._on_invalid_source(
                source, EmptyReaderError(f"The reader was empty for source: {source.source}")
            )
            return None

        return reader

    def read_lines(self, source: SubscriptionDataSource) -> Iterator[str]:
        """
        Yield every line of ``source``, closing its reader afterwards.

        Yields nothing if the source is invalid.
        """
        reader = self.create_stream_reader(source)
        if reader is None:
            return

        with reader:
            yield from reader

    def _reader_factory(
        self, medium: TransportMedium
    ) -> Callable[[SubscriptionDataSource], StreamReader | None]:
        if medium is TransportMedium.LOCAL_FILE:
            return lambda source: LocalFileStreamReader(source.source)
        elif medium is TransportMedium.REMOTE_FILE:
            return self._handle_remote_source_file
        elif medium is TransportMedium.REST:
            return lambda source: RestStreamReader(
                source.source,
                headers=source.header_dict(),
                is_live_mode=self.is_live_mode,
                timeout=self.settings.request_timeout,
            )
        elif medium is TransportMedium.MONGODB:
            return lambda source: MongoStreamReader.create(
                self.settings.mongo_host,
                self.settings.mongo_port,
                source.headers,
                connection=self.mongo_connection,
                database_name=self.settings.mongo_database,
            )

        raise UnsupportedTransportError(f"Unexpected transport medium specified: {medium!r}")

    def _handle_remote_source_file(self, source: SubscriptionDataSource) -> StreamReader:
        # Download failures propagate so the invalid-source event keeps their cause.
        self.remote_cache.check()
        return RemoteFileStreamReader(self.remote_cache, source.source, source.header_dict())

    def _on_invalid_source(
        self, source: SubscriptionDataSource, error: BaseException | None
    ) -> None:
        logger.warning(
            "Invalid %s source %s: %s",
            source.transport_medium.value,
            source.source,
            error,
        )

        event = InvalidSourceEvent(source=source, error=error)
        for handler in list(self._invalid_source_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.exception("Invalid source handler %r failed: %s", handler, e)
