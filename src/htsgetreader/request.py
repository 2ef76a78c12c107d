"""htsget request descriptions and URI construction.

A :class:`RequestDescription` is validated when it is constructed, so a
malformed request fails with :class:`ConfigurationError` before any network
call is attempted. :func:`build_request_url` is a pure transformation of a
description into the ticket URI.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import quote, urlencode

from .constants import (
    PARAM_CLASS,
    PARAM_END,
    PARAM_FIELD,
    PARAM_FORMAT,
    PARAM_NOTAG,
    PARAM_REFERENCE_NAME,
    PARAM_START,
    PARAM_TAG,
    UNMAPPED_REFERENCE_NAME,
)
from .errors import ConfigurationError

REMOTE_ENDPOINT_SCHEMES = ("http://", "https://")

# contig[:start[-end|+]] with 1-based closed coordinates, commas allowed
_COORDS_PATTERN = re.compile(r"^(?P<start>[\d,]+)(?:(?P<open>\+)|-(?P<end>[\d,]+))?$")


class HtsgetFormat(str, Enum):
    """Data formats an htsget server may be asked to return."""

    BAM = "BAM"
    CRAM = "CRAM"
    VCF = "VCF"
    BCF = "BCF"


class HtsgetClass(str, Enum):
    """Classes of data: the header only, or header plus body."""

    HEADER = "header"
    BODY = "body"


class HtsgetField(str, Enum):
    """SAM record fields that can be selected in a reads request."""

    QNAME = "QNAME"
    FLAG = "FLAG"
    RNAME = "RNAME"
    POS = "POS"
    MAPQ = "MAPQ"
    CIGAR = "CIGAR"
    RNEXT = "RNEXT"
    PNEXT = "PNEXT"
    TLEN = "TLEN"
    SEQ = "SEQ"
    QUAL = "QUAL"


def _tag_value(value: str | Enum | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


@dataclass(frozen=True)
class Interval:
    """A genomic interval in htsget coordinates.

    ``start`` is 0-based inclusive and ``end`` is 0-based exclusive; either may
    be omitted to leave that side of the reference unbounded.
    """

    reference_name: str
    start: int | None = None
    end: int | None = None

    def __post_init__(self) -> None:
        if not self.reference_name:
            raise ConfigurationError("Interval reference name must not be empty")
        if self.reference_name == UNMAPPED_REFERENCE_NAME and (
            self.start is not None or self.end is not None
        ):
            raise ConfigurationError(
                "start and end must not be set when requesting unplaced unmapped reads"
            )
        if self.start is not None and self.start < 0:
            raise ConfigurationError(f"Interval start must be non-negative, got {self.start}")
        if self.end is not None and self.end < 0:
            raise ConfigurationError(f"Interval end must be non-negative, got {self.end}")
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ConfigurationError(
                f"Interval end ({self.end}) must not precede start ({self.start})"
            )

    @classmethod
    def parse(cls, region: str) -> Interval:
        """
        Parse a samtools-style region string.

        Supports formats:
            - chr1
            - chr1:1000 (the single base 1000)
            - chr1:1000+ (from 1000 to the end of the reference)
            - chr1:1000-2000
            - chr1:1,000-2,000

        Coordinates are 1-based and closed, as typed on a command line; they
        are converted to htsget's 0-based half-open coordinates.

        Raises:
            ConfigurationError: If the region string is malformed.
        """
        region = region.strip()
        if not region:
            raise ConfigurationError("Region string must not be empty")

        contig, sep, coords = region.rpartition(":")
        match = _COORDS_PATTERN.match(coords) if sep else None
        if match is None:
            # No coordinates, or the colon belongs to the contig name
            return cls(reference_name=region)

        start = int(match.group("start").replace(",", ""))
        if start < 1:
            raise ConfigurationError(f"Region start must be at least 1, got {start}")
        if match.group("end"):
            end: int | None = int(match.group("end").replace(",", ""))
        elif match.group("open"):
            end = None
        else:
            end = start
        return cls(reference_name=contig, start=start - 1, end=end)

    def __str__(self) -> str:
        if self.start is None and self.end is None:
            return self.reference_name
        start = 1 if self.start is None else self.start + 1
        if self.end is None:
            return f"{self.reference_name}:{start}+"
        return f"{self.reference_name}:{start}-{self.end}"


@dataclass(frozen=True)
class RequestDescription:
    """Immutable description of a single htsget request.

    ``fields``, ``tags`` and ``notags`` are ordered; an empty sequence means
    "server default", never "select none".
    """

    endpoint: str
    id: str
    format: HtsgetFormat | str | None = None
    data_class: HtsgetClass | str | None = None
    interval: Interval | None = None
    fields: tuple[HtsgetField | str, ...] = field(default_factory=tuple)
    tags: tuple[str, ...] = field(default_factory=tuple)
    notags: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any iterable for the repeatable selectors, store as tuples
        object.__setattr__(self, "fields", tuple(self.fields or ()))
        object.__setattr__(self, "tags", tuple(self.tags or ()))
        object.__setattr__(self, "notags", tuple(self.notags or ()))

        if not self.endpoint:
            raise ConfigurationError("htsget endpoint must not be empty")
        if not self.endpoint.lower().startswith(REMOTE_ENDPOINT_SCHEMES):
            raise ConfigurationError(
                f"htsget endpoint must be an http(s) URL, got '{self.endpoint}'"
            )
        if not self.id:
            raise ConfigurationError("htsget request id must not be empty")

        for name, values in (("field", self.fields), ("tag", self.tags), ("notag", self.notags)):
            if any(not _tag_value(v) for v in values):
                raise ConfigurationError(f"Empty {name} value in request")

    def query_params(self) -> list[tuple[str, str]]:
        """Return the ordered query parameters for this request."""
        params: list[tuple[str, str]] = []

        format_value = _tag_value(self.format)
        if format_value:
            params.append((PARAM_FORMAT, format_value))

        class_value = _tag_value(self.data_class)
        if class_value:
            params.append((PARAM_CLASS, class_value))

        if self.interval is not None:
            params.append((PARAM_REFERENCE_NAME, self.interval.reference_name))
            if self.interval.start is not None:
                params.append((PARAM_START, str(self.interval.start)))
            if self.interval.end is not None:
                params.append((PARAM_END, str(self.interval.end)))

        params.extend((PARAM_FIELD, _tag_value(f) or "") for f in self.fields)
        params.extend((PARAM_TAG, t) for t in self.tags)
        params.extend((PARAM_NOTAG, t) for t in self.notags)
        return params

    def to_url(self) -> str:
        """Build the ticket request URI."""
        return build_request_url(self)


def build_request_url(request: RequestDescription) -> str:
    """Turn a request description into a protocol-conformant ticket URI.

    The URI is ``<endpoint>/<id>`` with the request's query parameters;
    the id is percent-encoded as a path, keeping ``/`` separators.
    """
    base = request.endpoint.rstrip("/")
    path = quote(request.id.lstrip("/"), safe="/")
    url = f"{base}/{path}"

    params = request.query_params()
    if params:
        url = f"{url}?{urlencode(params)}"
    return url
