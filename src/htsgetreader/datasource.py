"""Alignment reads served over htsget, opened with pysam.

Each htsget resource is downloaded through :class:`HtsgetClient` into a
temporary local file, which pysam then reads like any other BAM/CRAM file.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from urllib.parse import urlparse

import pysam

from .client import HtsgetClient
from .config import HtsgetConfig
from .constants import DEFAULT_READS_SUFFIX, TEMP_FILE_PREFIX
from .errors import ConfigurationError
from .request import RequestDescription

logger = logging.getLogger(__name__)

HTSGET_URI_SCHEME = "htsget"


def parse_htsget_uri(uri: str) -> tuple[str, str]:
    """Split an ``htsget://host/path/id`` URI into an endpoint and an id.

    The host becomes an https endpoint and the full path is the id,
    e.g. ``htsget://example.org/reads/NA12878`` ->
    ``("https://example.org", "reads/NA12878")``.

    Raises:
        ConfigurationError: If the URI is not an htsget URI with host and path.
    """
    parsed = urlparse(uri)
    if parsed.scheme.lower() != HTSGET_URI_SCHEME:
        raise ConfigurationError(f"Not an htsget URI: '{uri}'")
    if not parsed.netloc:
        raise ConfigurationError(f"htsget URI has no host: '{uri}'")
    path = parsed.path.lstrip("/")
    if not path:
        raise ConfigurationError(f"htsget URI has no resource id: '{uri}'")
    return f"https://{parsed.netloc}", path


def download_to_path(client: HtsgetClient, request: RequestDescription, path: str) -> int:
    """Execute a request and copy the assembled stream to ``path``.

    Returns:
        Number of bytes written.
    """
    with client.execute(request) as stream, open(path, "wb") as out:
        shutil.copyfileobj(stream, out)
        written = out.tell()
    logger.info("Wrote %d bytes to %s", written, path)
    return written


class HtsgetReadsSource:
    """Reads from one or more htsget resources, backed by local temp files.

    Usage:
        with HtsgetReadsSource("https://htsget.example.org/reads", ["NA12878"]) as source:
            for read in source.fetch("chr1", 10_000, 20_000):
                ...

    Sources are iterated in the order given. ``fetch`` needs an index; one
    is built for coordinate-sorted BAM downloads.
    """

    def __init__(
        self,
        endpoint: str,
        ids: list[str],
        client: HtsgetClient | None = None,
        suffix: str = DEFAULT_READS_SUFFIX,
        temp_dir: str | None = None,
    ):
        if not ids:
            raise ConfigurationError("At least one htsget id is required")

        self._owns_client = client is None
        self._client = client or HtsgetClient(config=HtsgetConfig.from_env())
        self._paths: list[str] = []
        self._readers: list[pysam.AlignmentFile] = []
        if temp_dir is None:
            temp_dir = self._client.config.temp_dir

        try:
            for resource_id in ids:
                request = RequestDescription(endpoint=endpoint, id=resource_id)
                path = self._download(request, suffix, temp_dir)
                self._readers.append(self._open(path))
        except BaseException:
            self.close()
            raise

    @classmethod
    def from_uris(cls, uris: list[str], **kwargs) -> HtsgetReadsSource:  # noqa: ANN003
        """Build a source from ``htsget://`` URIs that share one endpoint."""
        parsed = [parse_htsget_uri(u) for u in uris]
        endpoints = {endpoint for endpoint, _ in parsed}
        if len(endpoints) != 1:
            raise ConfigurationError("All htsget URIs must share the same host")
        return cls(endpoints.pop(), [resource_id for _, resource_id in parsed], **kwargs)

    def _download(self, request: RequestDescription, suffix: str, temp_dir: str | None) -> str:
        fd, path = tempfile.mkstemp(prefix=TEMP_FILE_PREFIX, suffix=suffix, dir=temp_dir)
        os.close(fd)
        self._paths.append(path)
        download_to_path(self._client, request, path)
        return path

    def _open(self, path: str) -> pysam.AlignmentFile:
        reader = pysam.AlignmentFile(path, "r")
        sort_order = reader.header.to_dict().get("HD", {}).get("SO")
        if reader.is_bam and sort_order == "coordinate":
            reader.close()
            pysam.index(path)
            self._paths.append(path + ".bai")
            reader = pysam.AlignmentFile(path, "rb")
        return reader

    @property
    def header(self) -> pysam.AlignmentHeader:
        """Header of the first source."""
        return self._readers[0].header

    @property
    def paths(self) -> list[str]:
        """Local paths of the downloaded files."""
        return [p for p in self._paths if not p.endswith(".bai")]

    def is_queryable_by_interval(self) -> bool:
        return all(r.has_index() for r in self._readers)

    def __iter__(self) -> Iterator[pysam.AlignedSegment]:
        for reader in self._readers:
            yield from reader.fetch(until_eof=True)

    def fetch(
        self, contig: str, start: int | None = None, end: int | None = None
    ) -> Iterator[pysam.AlignedSegment]:
        """Yield reads overlapping ``contig:start-end`` (0-based, half-open)."""
        if not self.is_queryable_by_interval():
            raise ConfigurationError("Interval queries need an index for every source")
        for reader in self._readers:
            yield from reader.fetch(contig, start, end)

    def query_unmapped(self) -> Iterator[pysam.AlignedSegment]:
        """Yield the unplaced unmapped reads (reference ``*``) of every source."""
        for reader in self._readers:
            for read in reader.fetch(until_eof=True):
                if read.reference_id < 0:
                    yield read

    def close(self) -> None:
        """Close all readers and remove downloaded files."""
        for reader in self._readers:
            reader.close()
        self._readers = []
        for path in self._paths:
            with contextlib.suppress(FileNotFoundError):
                os.remove(path)
        self._paths = []
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HtsgetReadsSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
