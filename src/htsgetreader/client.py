"""htsget ticket client.

``HtsgetClient.execute`` performs the whole two-phase exchange: one GET for
the ticket, then one GET per remote block, returning a single stream over
the blocks' bytes in ticket order.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass, field

import httpx

from .config import HtsgetConfig
from .constants import DEFAULT_CHARSET, DEFAULT_MAX_CONNECTIONS
from .errors import ClientRequestError, ConfigurationError, ProtocolError, TransportError
from .fetcher import BlockFetcher, TaskSubmitter
from .request import RequestDescription, build_request_url
from .stream import AssembledStream, concat
from .ticket import Manifest, parse_error_body, parse_ticket

logger = logging.getLogger(__name__)


def create_http_client(
    config: HtsgetConfig, max_connections: int = DEFAULT_MAX_CONNECTIONS
) -> httpx.Client:
    """Create the shared transport used for the ticket and every block."""
    return httpx.Client(
        timeout=config.timeout,
        follow_redirects=False,
        headers={"User-Agent": config.user_agent},
        limits=httpx.Limits(max_connections=max(max_connections, DEFAULT_MAX_CONNECTIONS)),
    )


def _decode_body(response: httpx.Response) -> str:
    """Decode the body with the declared charset, defaulting to UTF-8."""
    charset = response.charset_encoding or DEFAULT_CHARSET
    try:
        codecs.lookup(charset)
    except LookupError as e:
        raise ProtocolError(
            f"Unsupported response charset '{charset}'", response.status_code
        ) from e
    try:
        return response.content.decode(charset)
    except UnicodeDecodeError as e:
        raise ProtocolError(
            f"Response body could not be decoded as {charset}", response.status_code
        ) from e


@dataclass
class HtsgetClient:
    """Client for htsget ticket requests.

    Features:
    - Serial block download, or parallel download through a borrowed pool
    - Shared connection pool for the ticket and all block requests
    - Structured server errors preserved verbatim

    ``submitter`` is any ``concurrent.futures.Executor`` (or object with a
    compatible ``submit``); when None, blocks are fetched serially. The pool
    and any ``http_client`` passed in are borrowed and never shut down here.
    """

    config: HtsgetConfig = field(default_factory=HtsgetConfig)
    submitter: TaskSubmitter | None = None
    http_client: httpx.Client | None = None
    _owns_client: bool = field(default=False, init=False, repr=False)
    _http: httpx.Client = field(default=None, init=False, repr=False)  # type: ignore[assignment]
    _fetcher: BlockFetcher = field(default=None, init=False, repr=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.http_client is None:
            self._http = create_http_client(self.config, self.config.reader_threads)
            self._owns_client = True
        else:
            self._http = self.http_client
        self._fetcher = BlockFetcher(self.submitter, spool_dir=self.config.temp_dir)

    def __enter__(self) -> HtsgetClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP transport if this client created it."""
        if self._owns_client:
            self._http.close()

    def fetch_ticket(self, request: RequestDescription) -> Manifest:
        """
        Request a ticket and parse it, without fetching any block.

        Args:
            request: Validated request description.

        Returns:
            The parsed Manifest.

        Raises:
            ConfigurationError: The request URL could not be parsed.
            ClientRequestError: The server answered 4xx with an error document.
            ProtocolError: Unexpected status, or a body that could not be decoded.
            TransportError: The request could not be completed.
        """
        url = build_request_url(request)
        logger.info("Requesting htsget ticket: %s", url)

        try:
            response = self._http.get(url)
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"Invalid htsget request URL '{url}': {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Error during htsget ticket request: {e}") from e

        status = response.status_code
        if status != 200 and not 400 <= status < 500:
            raise ProtocolError(f"Unrecognized status code: {status}", status)

        body = _decode_body(response)
        if status != 200:
            err = parse_error_body(body, status)
            raise ClientRequestError(status, err.error, err.message)

        manifest = parse_ticket(body)
        if manifest.md5 is None:
            logger.info("No md5 checksum received")
        else:
            logger.info("Received md5 checksum: %s", manifest.md5)
        return manifest

    def resolve(self, manifest: Manifest) -> AssembledStream:
        """Resolve a manifest's blocks and concatenate them in ticket order."""
        streams = self._fetcher.resolve_all(manifest.blocks, self._http)
        return concat(streams, md5=manifest.md5, block_count=len(manifest.blocks))

    def execute(self, request: RequestDescription) -> AssembledStream:
        """Execute an htsget request and return a stream over its contents.

        Every block has been fetched when this returns, in either mode; a
        failing block raises TransportError here and nothing is returned.
        """
        manifest = self.fetch_ticket(request)
        logger.debug(
            "Resolving %d blocks (%s)",
            len(manifest.blocks),
            "parallel" if self._fetcher.parallel else "serial",
        )
        return self.resolve(manifest)
