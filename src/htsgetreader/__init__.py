"""htsgetreader - client for the htsget ticket-based retrieval protocol."""

from .blocks import Block, InlineBlock, RemoteBlock
from .client import HtsgetClient
from .config import HtsgetConfig
from .errors import (
    ClientRequestError,
    ConfigurationError,
    HtsgetError,
    ProtocolError,
    TransportError,
)
from .fetcher import BlockFetcher, TaskSubmitter
from .request import (
    HtsgetClass,
    HtsgetField,
    HtsgetFormat,
    Interval,
    RequestDescription,
    build_request_url,
)
from .stream import AssembledStream, concat
from .ticket import ErrorBody, Manifest, parse_error_body, parse_ticket

__version__ = "0.1.0"

__all__ = [
    "AssembledStream",
    "Block",
    "BlockFetcher",
    "ClientRequestError",
    "ConfigurationError",
    "ErrorBody",
    "HtsgetClass",
    "HtsgetClient",
    "HtsgetConfig",
    "HtsgetError",
    "HtsgetField",
    "HtsgetFormat",
    "InlineBlock",
    "Interval",
    "Manifest",
    "ProtocolError",
    "RemoteBlock",
    "RequestDescription",
    "TaskSubmitter",
    "TransportError",
    "__version__",
    "build_request_url",
    "concat",
    "parse_error_body",
    "parse_ticket",
]
