"""Parsing of htsget ticket and error documents.

Ticket bodies are wrapped under a single ``htsget`` root key and field names
are matched without regard to letter case, so ``{"HTSGET": {"URLs": [...]}}``
parses the same as the canonical lower-case form.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote_to_bytes

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .blocks import AnyBlock, InlineBlock, RemoteBlock
from .constants import DATA_URI_SCHEME, TICKET_BLOCK_KEYS, TICKET_ROOT_KEY
from .errors import ProtocolError

logger = logging.getLogger(__name__)


def _casefold_keys(data: Any) -> Any:
    """Lower-case the keys of a JSON object, leaving nested values alone."""
    if isinstance(data, dict):
        return {str(k).lower(): v for k, v in data.items()}
    return data


class _BlockModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    url: str | None = None
    data: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    data_class: str | None = Field(default=None, alias="class")

    @model_validator(mode="before")
    @classmethod
    def _normalize_keys(cls, data: Any) -> Any:
        return _casefold_keys(data)

    @model_validator(mode="after")
    def _check_source(self) -> _BlockModel:
        if (self.url is None) == (self.data is None):
            raise ValueError("block must have exactly one of 'url' or 'data'")
        return self


class _TicketModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    format: str | None = None
    urls: list[_BlockModel] | None = None
    blocks: list[_BlockModel] | None = None
    md5: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_keys(cls, data: Any) -> Any:
        return _casefold_keys(data)

    @model_validator(mode="after")
    def _check_blocks(self) -> _TicketModel:
        if self.urls is None and self.blocks is None:
            raise ValueError(f"ticket must contain one of {TICKET_BLOCK_KEYS}")
        return self


class _ErrorModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: str
    message: str = ""

    @model_validator(mode="before")
    @classmethod
    def _normalize_keys(cls, data: Any) -> Any:
        return _casefold_keys(data)


@dataclass(frozen=True)
class Manifest:
    """Ordered ticket blocks plus the server's advisory checksum."""

    blocks: tuple[AnyBlock, ...]
    md5: str | None = None
    format: str | None = None


@dataclass(frozen=True)
class ErrorBody:
    """Structured failure reported by the server."""

    error: str
    message: str


def _load_json_object(text: str, status_code: int | None) -> dict:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Response body is not valid JSON: {e}", status_code) from e
    if not isinstance(document, dict):
        raise ProtocolError("Response body is not a JSON object", status_code)
    return document


def _unwrap_root(document: dict) -> Any:
    """Return the value under the root key, or None when it is absent."""
    for key, value in document.items():
        if key.lower() == TICKET_ROOT_KEY:
            return value
    return None


def decode_data_uri(uri: str) -> bytes:
    """
    Decode a ``data:`` URI into bytes.

    Supports both ``data:<type>;base64,<payload>`` and percent-encoded
    payloads.

    Raises:
        ProtocolError: If the URI is malformed or the payload is not valid base64.
    """
    header, sep, payload = uri.partition(",")
    if not sep or not header.lower().startswith(f"{DATA_URI_SCHEME}:"):
        raise ProtocolError(f"Malformed data URI: {uri[:64]}")

    if header.lower().endswith(";base64"):
        return decode_base64(payload)
    return unquote_to_bytes(payload)


def decode_base64(payload: str) -> bytes:
    """Decode a base64 payload, raising ProtocolError on invalid input."""
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolError(f"Inline block data is not valid base64: {e}") from e


def _is_data_uri(url: str) -> bool:
    return url[: len(DATA_URI_SCHEME) + 1].lower() == f"{DATA_URI_SCHEME}:"


def _to_block(model: _BlockModel, index: int) -> AnyBlock:
    if model.data is not None:
        return InlineBlock(data=decode_base64(model.data), index=index, data_class=model.data_class)

    url = model.url or ""
    if _is_data_uri(url):
        return InlineBlock(data=decode_data_uri(url), index=index, data_class=model.data_class)

    return RemoteBlock(
        url=url,
        headers=dict(model.headers),
        index=index,
        data_class=model.data_class,
    )


def parse_ticket(text: str) -> Manifest:
    """Parse a successful ticket body into a Manifest.

    Raises:
        ProtocolError: If the body is not JSON, lacks the root key, or does
            not describe a valid block list.
    """
    document = _load_json_object(text, 200)
    payload = _unwrap_root(document)
    if payload is None:
        raise ProtocolError(f"Ticket is missing the '{TICKET_ROOT_KEY}' root key", 200)

    try:
        ticket = _TicketModel.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(f"Invalid htsget ticket: {e}", 200) from e

    block_models = ticket.urls if ticket.urls is not None else ticket.blocks or []
    blocks = tuple(_to_block(model, i) for i, model in enumerate(block_models))

    logger.debug("Parsed ticket with %d blocks", len(blocks))
    return Manifest(blocks=blocks, md5=ticket.md5, format=ticket.format)


def parse_error_body(text: str, status_code: int) -> ErrorBody:
    """Parse a 4xx error document.

    The document may be wrapped under the ``htsget`` root key or sit at the
    document root.

    Raises:
        ProtocolError: If the body is not a valid error document.
    """
    document = _load_json_object(text, status_code)
    payload = _unwrap_root(document)
    if payload is None:
        payload = document

    try:
        error = _ErrorModel.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(
            f"Server returned status {status_code} with an invalid error body: {e}",
            status_code,
        ) from e
    return ErrorBody(error=error.error, message=error.message)
