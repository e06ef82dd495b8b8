"""Local file system stream reader."""

from collections.abc import Iterable, Iterator
import codecs
import io
import logging
from pathlib import Path

from stream_unzip import stream_unzip
from typing_extensions import override

from subscription_transport.subscription import TransportMedium
from subscription_transport.transport.base import LookaheadStreamReader

logger = logging.getLogger(__name__)

# Local file header, or the end record of an archive with no entries
_ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06")


def split_locator(locator: str) -> tuple[str, str | None]:
    """
    Split ``archive.zip#entry.csv`` into the file path and the archive entry.

    Returns:
        tuple[str, str | None]: File path and entry name (None if absent).
    """
    path, sep, entry = locator.partition("#")
    return path, (entry or None) if sep else None


class LocalFileStreamReader(LookaheadStreamReader):
    """
    Stream text lines from a file on the local file system.

    Plain files are read in chunks. Zip archives are streamed through
    ``stream_unzip`` and read from the entry named after ``#`` in the locator,
    or from their first entry.
    """

    def __init__(self, file_path: str, chunk_size: int = 1048576, encoding: str = "utf-8") -> None:
        """
        Initialize LocalFileStreamReader and buffer the first line.

        Args:
            file_path: Path to the file, optionally suffixed with ``#entry`` for zip archives.
            chunk_size: Size of chunks to read (default: 1MB).
            encoding: Text encoding of the file.

        Raises:
            FileNotFoundError: If the file, or the requested archive entry, does not exist.
            ValueError: If the path is not a file.
            OSError: If the file cannot be read.
        """
        super().__init__()
        path, self.entry = split_locator(file_path)
        self.file_path = Path(path)
        self.chunk_size = chunk_size
        self.encoding = encoding

        if not self.file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        if not self.file_path.is_file():
            raise ValueError(f"Path is not a file: {path}")

        self._handles: list[io.IOBase] = []
        handle = self.file_path.open("rb")
        self._handles.append(handle)
        try:
            is_zip = handle.read(4) in _ZIP_SIGNATURES
            handle.seek(0)
        except Exception:
            self.close()
            raise

        chunks = self._file_chunks(handle)
        if is_zip:
            chunks = self._entry_chunks(chunks)
        self._start(self._read_lines(chunks))

        logger.info("LocalFileStreamReader initialized for: %s", self.file_path)

    def _file_chunks(self, handle: io.IOBase) -> Iterator[bytes]:
        while True:
            chunk = handle.read(self.chunk_size)
            if not chunk:
                break
            yield chunk

    def _entry_chunks(self, zip_chunks: Iterable[bytes]) -> Iterator[bytes]:
        """Yield the uncompressed bytes of the selected archive entry."""
        for file_name, _, chunks in stream_unzip(zip_chunks):
            name = file_name.decode("utf-8")
            if not name.endswith("/") and (self.entry is None or name == self.entry):
                yield from chunks
                return
            # Entries must be drained before the next one can be read
            for _ in chunks:
                pass

        if self.entry is not None:
            raise FileNotFoundError(f"Entry '{self.entry}' not found in {self.file_path}")
        raise FileNotFoundError(f"Zip archive has no entries: {self.file_path}")

    def _read_lines(self, chunks: Iterable[bytes]) -> Iterator[str]:
        decoder = codecs.getincrementaldecoder(self.encoding)()
        pending = ""
        try:
            for chunk in chunks:
                pending += decoder.decode(chunk)
                *lines, pending = pending.split("\n")
                for line in lines:
                    line = line.rstrip("\r")
                    if line:
                        yield line
            pending = (pending + decoder.decode(b"", final=True)).rstrip("\r")
            if pending:
                yield pending
        except FileNotFoundError:
            raise
        except Exception as e:
            logger.exception("Error reading file %s: %s", self.file_path, e)
            raise OSError(f"Failed to read file {self.file_path}: {e}") from e
        finally:
            self.close()

    @property
    @override
    def transport_medium(self) -> TransportMedium:
        return TransportMedium.LOCAL_FILE

    @override
    def close(self) -> None:
        while self._handles:
            self._handles.pop().close()
