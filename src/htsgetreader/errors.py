"""Exception hierarchy for htsget retrieval.

Every failure raised by the client derives from :class:`HtsgetError`, so
callers can catch the whole family at the boundary where a download is
treated as a single terminal operation.
"""

from __future__ import annotations


class HtsgetError(Exception):
    """Base class for all htsget client failures."""


class ConfigurationError(HtsgetError, ValueError):
    """Malformed request description or configuration, detected before any I/O."""


class TransportError(HtsgetError):
    """Connection or I/O failure, including a failed block fetch.

    ``block_index`` is the manifest position of the block being fetched,
    or None when the failure happened on the ticket request itself.
    """

    def __init__(self, message: str, block_index: int | None = None):
        self.block_index = block_index
        if block_index is not None:
            message = f"block {block_index}: {message}"
        super().__init__(message)


class ProtocolError(HtsgetError):
    """Unexpected status code or a response body that could not be decoded."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ClientRequestError(HtsgetError):
    """Error document returned by the server with a 4xx status."""

    def __init__(self, status_code: int, error_type: str, message: str):
        self.status_code = status_code
        self.error_type = error_type
        self.message = message
        super().__init__(
            f"Invalid request, received error code: {status_code}, "
            f"error type: {error_type}, message: {message}"
        )
