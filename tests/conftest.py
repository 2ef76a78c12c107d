"""Shared test fixtures for htsgetreader tests."""

import base64
import re
import time

import httpx
import pytest

from htsgetreader.client import HtsgetClient
from htsgetreader.request import RequestDescription

ENDPOINT = "https://htsget.test/reads"
TICKET_URL = re.compile(r"https://htsget\.test/reads/[^/?]+(\?.*)?$")


def inline_block(data: bytes, **extra) -> dict:
    """Ticket block carrying its bytes as a base64 data URI."""
    encoded = base64.b64encode(data).decode("ascii")
    return {"url": f"data:application/vnd.ga4gh.bam;base64,{encoded}", **extra}


def remote_block(url: str, headers: dict | None = None, **extra) -> dict:
    block = {"url": url, **extra}
    if headers is not None:
        block["headers"] = headers
    return block


def ticket_body(blocks: list[dict], md5: str | None = None, fmt: str = "BAM") -> dict:
    """A successful ticket document, wrapped under the htsget root key."""
    payload: dict = {"format": fmt, "urls": blocks}
    if md5 is not None:
        payload["md5"] = md5
    return {"htsget": payload}


def routing_transport(routes: dict, delay_for=None) -> httpx.MockTransport:
    """MockTransport answering by URL path.

    ``routes`` maps a path to either a response or a callable returning one.
    ``delay_for(path)`` may return seconds to sleep before answering.
    """

    def _handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if delay_for is not None:
            delay = delay_for(path)
            if delay:
                time.sleep(delay)
        route = routes.get(path)
        if route is None:
            return httpx.Response(404, json={"error": "NotFound", "message": path})
        if callable(route):
            return route(request)
        return route

    return httpx.MockTransport(_handler)


@pytest.fixture
def endpoint():
    return ENDPOINT


@pytest.fixture
def request_description():
    return RequestDescription(endpoint=ENDPOINT, id="NA12878")


@pytest.fixture
def client():
    """Serial client using the default transport (patched by httpx_mock)."""
    with HtsgetClient() as c:
        yield c


def respond(status_code: int = 200, **kwargs):
    """Route factory returning a fresh response on every request."""
    return lambda request: httpx.Response(status_code, **kwargs)
