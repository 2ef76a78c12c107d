"""Assembly of resolved block streams into one sequential stream."""

from __future__ import annotations

import io
from collections.abc import Iterable, Iterator
from typing import BinaryIO


class AssembledStream(io.RawIOBase):
    """Read-once concatenation of block streams, in the order given.

    Each input is read to exhaustion and closed before the next one is
    pulled from the iterable, so a lazily produced sequence of streams is
    opened one block at a time.

    ``md5`` is the checksum reported by the server, if any. It is advisory
    and plays no part in what this stream returns.
    """

    def __init__(
        self,
        streams: Iterable[BinaryIO],
        md5: str | None = None,
        block_count: int | None = None,
    ):
        self._streams: Iterator[BinaryIO] = iter(streams)
        self._current: BinaryIO | None = None
        self._exhausted = False
        self.md5 = md5
        self.block_count = block_count

    def readable(self) -> bool:
        return True

    def _advance(self) -> BinaryIO | None:
        if self._current is not None:
            self._current.close()
            self._current = None
        if self._exhausted:
            return None
        try:
            self._current = next(self._streams)
        except StopIteration:
            self._exhausted = True
        return self._current

    def readinto(self, buffer) -> int:  # noqa: ANN001
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        view = memoryview(buffer).cast("B")
        if not len(view):
            return 0

        stream = self._current or self._advance()
        while stream is not None:
            chunk = stream.read(len(view))
            if chunk:
                size = len(chunk)
                view[:size] = chunk
                return size
            stream = self._advance()
        return 0

    def close(self) -> None:
        if not self.closed:
            try:
                if self._current is not None:
                    self._current.close()
                    self._current = None
                # Close buffered inputs that were never reached. Lazy inputs are
                # not opened just to be closed.
                if isinstance(self._streams, _EagerStreams):
                    for stream in self._streams:
                        stream.close()
                self._exhausted = True
            finally:
                super().close()


class _EagerStreams(Iterator[BinaryIO]):
    """Iterator over streams that were all opened up front."""

    def __init__(self, streams: Iterable[BinaryIO]):
        self._inner = iter(list(streams))

    def __next__(self) -> BinaryIO:
        return next(self._inner)


def concat(
    streams: Iterable[BinaryIO],
    md5: str | None = None,
    block_count: int | None = None,
) -> AssembledStream:
    """Concatenate streams into one logical stream, preserving their order.

    A list or tuple is treated as already-opened streams; any other iterable
    is consumed lazily. An empty sequence yields an empty stream.
    """
    if isinstance(streams, (list, tuple)):
        if block_count is None:
            block_count = len(streams)
        streams = _EagerStreams(streams)
    return AssembledStream(streams, md5=md5, block_count=block_count)
