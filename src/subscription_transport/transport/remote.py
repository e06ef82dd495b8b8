"""Remote file stream reader backed by a local download cache."""

from datetime import timedelta
import hashlib
import logging
from pathlib import Path
import tempfile
import threading
import time
from typing import Any
from urllib.parse import urlparse

from typing_extensions import override

from subscription_transport.subscription import TransportMedium
from subscription_transport.transport.local import LocalFileStreamReader, split_locator

logger = logging.getLogger(__name__)

# Last cleanup time per cache directory, shared by every cache in the process.
_last_checked: dict[Path, float] = {}
_check_lock = threading.Lock()


class RemoteFileCache:
    """
    Download remote files into a local directory and expire them by age.

    HTTP/HTTPS URLs are fetched with httpx, ``s3://bucket/key`` URLs with boto3.
    """

    def __init__(
        self,
        directory: str | Path,
        max_age: timedelta = timedelta(days=1),
        timeout: int = 30,
        s3_client: Any = None,
        chunk_size: int = 1048576,
    ) -> None:
        """
        Initialize RemoteFileCache.

        Args:
            directory: Directory downloaded files are stored in.
            max_age: Age after which a cached file is stale.
            timeout: HTTP request timeout in seconds.
            s3_client: Boto3 S3 client instance. If None, one is created on first S3 download.
            chunk_size: Size of chunks to write (default: 1MB).
        """
        self.directory = Path(directory)
        self.max_age = max_age
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._s3_client = s3_client

    def check(self) -> None:
        """
        Delete stale files from the cache directory.

        Runs at most once per ``max_age`` for a given directory in this process.
        """
        max_age = self.max_age.total_seconds()
        now = time.time()
        with _check_lock:
            last = _last_checked.get(self.directory)
            if last is not None and now - last < max_age:
                return
            _last_checked[self.directory] = now

            if not self.directory.is_dir():
                return

            removed = 0
            for path in self.directory.iterdir():
                if path.is_file() and now - path.stat().st_mtime >= max_age:
                    path.unlink(missing_ok=True)
                    removed += 1

        logger.info(
            "Remote file cache checked: %s (%d stale files removed)", self.directory, removed
        )

    def path_for(self, url: str) -> Path:
        """Return the cache path a URL is downloaded to."""
        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}{Path(urlparse(url).path).suffix}"

    def fetch(self, url: str, headers: dict[str, str] | None = None) -> Path:
        """
        Return a local copy of ``url``, downloading it unless a fresh copy is cached.

        Args:
            url: HTTP/HTTPS or S3 URL of the file.
            headers: Optional HTTP headers sent with the download.

        Returns:
            Path: Location of the cached file.

        Raises:
            ValueError: If the URL scheme is not supported.
            OSError: If the download fails.
        """
        target = self.path_for(url)
        if target.is_file() and time.time() - target.stat().st_mtime < self.max_age.total_seconds():
            logger.debug("Remote file cache hit for %s", url)
            return target

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https", "s3"):
            raise ValueError(f"Unsupported remote file URL: {url}")

        self.directory.mkdir(parents=True, exist_ok=True)
        # One partial file per download, concurrent fetches of a URL must not share it
        partial: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                dir=self.directory, prefix=target.name + ".", suffix=".part", delete=False
            ) as f:
                partial = Path(f.name)
                if parsed.scheme == "s3":
                    self._download_s3(parsed.netloc, parsed.path.lstrip("/"), f)
                else:
                    self._download_http(url, headers or {}, f)
            partial.replace(target)
        except Exception as e:
            if partial is not None:
                partial.unlink(missing_ok=True)
            logger.exception("Error downloading %s: %s", url, e)
            raise OSError(f"Failed to download {url}: {e}") from e

        logger.info("Downloaded %s to %s", url, target)
        return target

    def _download_http(self, url: str, headers: dict[str, str], f: Any) -> None:
        try:
            import httpx
        except ImportError as e:
            raise ImportError(
                "httpx is required for HTTP remote files. "
                "Install with: pip install subscription-transport[http]"
            ) from e

        with httpx.stream(
            "GET",
            url,
            headers=headers,
            timeout=self.timeout,
            follow_redirects=True,
        ) as response:
            response.raise_for_status()
            for chunk in response.iter_bytes(chunk_size=self.chunk_size):
                if chunk:
                    f.write(chunk)

    def _download_s3(self, bucket: str, key: str, f: Any) -> None:
        if not bucket or not key:
            raise ValueError(f"Invalid S3 URI: s3://{bucket}/{key}. Expected: s3://bucket/key")

        if self._s3_client is None:
            try:
                import boto3
            except ImportError as e:
                raise ImportError(
                    "boto3 is required for S3 remote files. "
                    "Install with: pip install subscription-transport[s3]"
                ) from e
            self._s3_client = boto3.client("s3")

        body = self._s3_client.get_object(Bucket=bucket, Key=key)["Body"]
        while True:
            chunk = body.read(self.chunk_size)
            if not chunk:
                break
            f.write(chunk)


class RemoteFileStreamReader(LocalFileStreamReader):
    """
    Stream text lines from a remote file.

    The file is downloaded into the cache on construction and then read like a
    local file. A ``#entry`` suffix selects the entry of a remote zip archive.
    """

    def __init__(
        self,
        cache: RemoteFileCache,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize RemoteFileStreamReader.

        Args:
            cache: Cache the file is downloaded into.
            url: Remote locator, optionally suffixed with ``#entry``.
            headers: Optional HTTP headers sent with the download.

        Raises:
            OSError: If the download fails.
        """
        remote, entry = split_locator(url)
        self.url = url
        local = cache.fetch(remote, headers)
        super().__init__(f"{local}#{entry}" if entry else str(local))

    @property
    @override
    def transport_medium(self) -> TransportMedium:
        return TransportMedium.REMOTE_FILE
