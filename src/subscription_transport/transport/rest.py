"""REST endpoint stream reader."""

import logging

from typing_extensions import override

from subscription_transport.subscription import TransportMedium
from subscription_transport.transport.base import StreamReader

logger = logging.getLogger(__name__)


class RestStreamReader(StreamReader):
    """
    Read the body of a REST endpoint as a single record.

    Every ``read_line`` performs one GET request. In backtesting the stream
    ends after the first delivery; in live mode the endpoint is polled
    indefinitely and callers are expected to rate limit.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        is_live_mode: bool = False,
        timeout: int = 30,
    ) -> None:
        """
        Initialize RestStreamReader.

        Args:
            url: HTTP/HTTPS URL of the endpoint.
            headers: HTTP headers sent with every request, e.g. for authentication.
            is_live_mode: Whether the endpoint is polled for live data.
            timeout: Request timeout in seconds (default: 30).

        Raises:
            ImportError: If httpx is not installed.
            ValueError: If URL is invalid.
        """
        try:
            import httpx
        except ImportError as e:
            raise ImportError(
                "httpx is required for RestStreamReader. "
                "Install with: pip install subscription-transport[http]"
            ) from e

        if not url or not url.startswith(("http://", "https://")):
            raise ValueError("url must be a valid HTTP/HTTPS URL")

        self.url = url
        self.headers = headers or {}
        self.is_live_mode = is_live_mode
        self.timeout = timeout
        self._delivered = False
        self._client = httpx.Client(
            headers=self.headers,
            timeout=timeout,
            follow_redirects=True,
        )

        logger.info("RestStreamReader initialized for %s (live=%s)", url, is_live_mode)

    @property
    @override
    def transport_medium(self) -> TransportMedium:
        return TransportMedium.REST

    @property
    @override
    def end_of_stream(self) -> bool:
        return self._delivered and not self.is_live_mode

    @property
    @override
    def should_be_rate_limited(self) -> bool:
        return self.is_live_mode

    @override
    def read_line(self) -> str:
        """
        Request the endpoint and return the response body.

        Raises:
            EOFError: If the single backtest delivery was already made.
            IOError: If the HTTP request fails.
        """
        if self.end_of_stream:
            raise EOFError("read_line called past the end of the stream")

        try:
            response = self._client.get(self.url)
            response.raise_for_status()
        except Exception as e:
            logger.exception("Error reading from %s: %s", self.url, e)
            raise OSError(f"Failed to read from {self.url}: {e}") from e
        finally:
            self._delivered = True

        return response.text

    @override
    def close(self) -> None:
        self._client.close()
