"""Abstract base classes for subscription stream readers."""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from types import TracebackType

from typing_extensions import Self, override

from subscription_transport.subscription import TransportMedium


class StreamReader(ABC):
    """
    Abstract base class for subscription stream readers.

    Provides a unified, line-oriented interface over every transport medium so
    callers need no transport-specific branching once a reader is constructed.
    """

    @property
    @abstractmethod
    def transport_medium(self) -> TransportMedium:
        """Transport medium this reader was built for."""
        ...

    @property
    @abstractmethod
    def end_of_stream(self) -> bool:
        """
        Whether the stream has no further lines.

        Must be cheap and free of side effects so it can be queried repeatedly.
        """
        ...

    @abstractmethod
    def read_line(self) -> str:
        """
        Return the next line of the stream.

        Only valid while ``end_of_stream`` is False.

        Returns:
            str: The next record line, without its line terminator.
        """
        ...

    @property
    def should_be_rate_limited(self) -> bool:
        """Whether consumers should throttle calls to ``read_line``."""
        return False

    def close(self) -> None:  # noqa: B027
        """Release resources held by the reader."""

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __iter__(self) -> Iterator[str]:
        while not self.end_of_stream:
            yield self.read_line()


class LookaheadStreamReader(StreamReader):
    """
    Stream reader over a lazy sequence of lines with a one-line lookahead.

    The next line is pulled one step ahead so ``end_of_stream`` can be
    answered without consuming anything. Subclasses call ``_start`` once
    their line iterator is ready.
    """

    def __init__(self) -> None:
        self._lines: Iterator[str] | None = None
        self._next = ""
        self._end_of_stream = True

    def _start(self, lines: Iterator[str]) -> None:
        """Attach the line iterator and pre-fetch its first line."""
        self._lines = lines
        self._advance()

    def _advance(self) -> None:
        if self._lines is None:
            return
        try:
            self._next = next(self._lines)
            self._end_of_stream = False
        except StopIteration:
            self._next = ""
            self._end_of_stream = True

    @property
    @override
    def end_of_stream(self) -> bool:
        return self._lines is None or self._end_of_stream

    @override
    def read_line(self) -> str:
        if self.end_of_stream:
            raise EOFError("read_line called past the end of the stream")

        current = self._next
        self._advance()
        return current
