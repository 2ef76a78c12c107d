"""Ticket blocks: data embedded in the ticket, or data behind a second URL.

Both variants expose ``open(client)``, returning a readable binary stream,
and ``fetch(client)``, returning the whole block already downloaded. The
shared ``httpx.Client`` is passed in so that remote blocks reuse the
connection pool of the ticket request.
"""

from __future__ import annotations

import io
import logging
import shutil
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import BinaryIO, Protocol, Union

import httpx

from .constants import SPOOL_MAX_MEMORY, STREAM_CHUNK_SIZE
from .errors import TransportError

logger = logging.getLogger(__name__)


class ResponseStream(io.RawIOBase):
    """Raw binary stream over the body of a streamed httpx response.

    The response is closed when the body is exhausted or the stream is closed.
    Transport failures while reading surface as :class:`TransportError`
    tagged with the owning block's index.
    """

    def __init__(self, response: httpx.Response, block_index: int):
        self._response = response
        self._block_index = block_index
        self._chunks: Iterator[bytes] = response.iter_bytes(STREAM_CHUNK_SIZE)
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # noqa: ANN001
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                self._response.close()
                return 0
            except httpx.HTTPError as e:
                self._response.close()
                raise TransportError(
                    f"Error while reading block data: {e}", self._block_index
                ) from e

        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        if not self.closed:
            self._response.close()
        super().close()


@dataclass(frozen=True)
class InlineBlock:
    """A block whose bytes are embedded directly in the ticket."""

    data: bytes
    index: int = 0
    data_class: str | None = None

    def open(self, client: httpx.Client | None = None) -> BinaryIO:
        """Return a fresh in-memory view of the block's bytes; no I/O."""
        return io.BytesIO(self.data)

    def fetch(self, client: httpx.Client | None = None, spool_dir: str | None = None) -> BinaryIO:
        return self.open(client)


@dataclass(frozen=True)
class RemoteBlock:
    """A block that must be fetched from its own URL.

    ``headers`` are sent with the block request only; they typically carry
    authorization delegated by the server, distinct from the ticket request.
    """

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    index: int = 0
    data_class: str | None = None

    def open(self, client: httpx.Client) -> BinaryIO:
        """Issue the block GET and return its body as a stream.

        The status is checked before returning, so an error response fails
        here rather than on the first read. Redirects are followed. Nothing is
        retried.

        Raises:
            TransportError: On connection failure, a malformed URL or a
                non-success status.
        """
        logger.debug("Opening block %d: %s", self.index, self.url)
        try:
            request = client.build_request("GET", self.url, headers=self.headers)
            response = client.send(request, stream=True, follow_redirects=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"Error while downloading block: {e}", self.index) from e

        if not response.is_success:
            response.close()
            raise TransportError(
                f"Block request to {self.url} failed with status {response.status_code}",
                self.index,
            )

        return io.BufferedReader(ResponseStream(response, self.index))

    def fetch(self, client: httpx.Client, spool_dir: str | None = None) -> BinaryIO:
        """Download the whole block and return it rewound to the start.

        Bodies up to ``SPOOL_MAX_MEMORY`` bytes stay in memory; larger ones
        spill to a temporary file in ``spool_dir``.

        Raises:
            TransportError: If the request fails or the body is cut short.
        """
        spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY, dir=spool_dir)
        try:
            with self.open(client) as stream:
                shutil.copyfileobj(stream, spool, STREAM_CHUNK_SIZE)
        except BaseException:
            spool.close()
            raise
        logger.debug("Fetched block %d (%d bytes)", self.index, spool.tell())
        spool.seek(0)
        return spool  # type: ignore[return-value]


class Block(Protocol):
    """Anything that can produce the bytes of one ticket block."""

    @property
    def index(self) -> int: ...

    def open(self, client: httpx.Client) -> BinaryIO: ...

    def fetch(self, client: httpx.Client, spool_dir: str | None = None) -> BinaryIO: ...


AnyBlock = Union[InlineBlock, RemoteBlock]
