"""Resolution of ticket blocks into readable streams.

Blocks are fetched either on the calling thread, one at a time, or by
submitting every block to a worker pool borrowed from the caller. Either way
every block is downloaded before any stream is handed back, in manifest
order. A failing block fails the whole resolution.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import CancelledError, Future
from typing import Any, BinaryIO, Protocol

import httpx

from .blocks import Block
from .errors import TransportError

logger = logging.getLogger(__name__)


class TaskSubmitter(Protocol):
    """The one capability borrowed from a worker pool.

    Any ``concurrent.futures.Executor`` satisfies it. The pool's lifecycle
    (creation, sizing, shutdown) belongs to whoever passed it in.
    """

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future: ...


class BlockFetcher:
    """Resolves ticket blocks serially or through a borrowed worker pool."""

    def __init__(self, submitter: TaskSubmitter | None = None, spool_dir: str | None = None):
        self._submitter = submitter
        self._spool_dir = spool_dir

    @property
    def parallel(self) -> bool:
        return self._submitter is not None

    def resolve_all(self, blocks: Sequence[Block], client: httpx.Client) -> list[BinaryIO]:
        """Fetch every block, returning rewound streams in manifest order.

        Nothing is returned until every block has been downloaded. On failure
        the streams already fetched are closed and no partial result is
        produced.

        Raises:
            TransportError: For the first failing block in manifest order.
        """
        if self._submitter is None:
            return self._resolve_serial(blocks, client)
        return self._resolve_parallel(self._submitter, blocks, client)

    def _resolve_serial(self, blocks: Sequence[Block], client: httpx.Client) -> list[BinaryIO]:
        streams: list[BinaryIO] = []
        for block in blocks:
            try:
                streams.append(block.fetch(client, self._spool_dir))
            except Exception:
                _abandon([], streams)
                raise
        return streams

    def _resolve_parallel(
        self, submitter: TaskSubmitter, blocks: Sequence[Block], client: httpx.Client
    ) -> list[BinaryIO]:
        # Submit everything before waiting on anything
        futures: list[Future] = []
        for block in blocks:
            try:
                futures.append(submitter.submit(block.fetch, client, self._spool_dir))
            except RuntimeError as e:
                _abandon(futures, [])
                raise TransportError(f"Could not schedule block download: {e}", block.index) from e

        logger.debug("Submitted %d blocks to worker pool", len(futures))

        streams: list[BinaryIO] = []
        for block, future in zip(blocks, futures):
            try:
                streams.append(future.result())
            except CancelledError as e:
                _abandon(futures, streams)
                raise TransportError(
                    "Block download was cancelled while waiting for it", block.index
                ) from e
            except Exception:
                _abandon(futures, streams)
                raise
        return streams


def _close_result(future: Future) -> None:
    if not future.cancelled() and future.exception() is None:
        future.result().close()


def _abandon(futures: list[Future], streams: list[BinaryIO]) -> None:
    """Drop work after a failure.

    Queued tasks are cancelled. Tasks already running are left to finish and
    their streams are closed as they complete. Streams already fetched are
    closed.
    """
    cancelled = 0
    for future in futures:
        if future.cancel():
            cancelled += 1
        else:
            future.add_done_callback(_close_result)
    if cancelled:
        logger.debug("Cancelled %d queued block downloads", cancelled)
    for stream in streams:
        stream.close()
