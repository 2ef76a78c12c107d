"""Unit tests for htsgetreader.client module."""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from htsgetreader.client import HtsgetClient
from htsgetreader.config import HtsgetConfig
from htsgetreader.errors import (
    ClientRequestError,
    ConfigurationError,
    HtsgetError,
    ProtocolError,
    TransportError,
)
from htsgetreader.request import Interval, RequestDescription
from htsgetreader.stream import AssembledStream
from tests.conftest import (
    ENDPOINT,
    TICKET_URL,
    inline_block,
    remote_block,
    respond,
    routing_transport,
    ticket_body,
)

PAYLOADS = [b"header-bytes|", b"first-body|", b"second-body|", b"eof"]


def _inline_ticket(md5: str | None = None) -> dict:
    return ticket_body([inline_block(p) for p in PAYLOADS], md5=md5)


class TestExecuteSuccess:
    """Tests for a 200 ticket response."""

    @pytest.mark.unit
    def test_inline_blocks_concatenated(self, httpx_mock, client, request_description):
        httpx_mock.add_response(url=TICKET_URL, json=_inline_ticket())

        stream = client.execute(request_description)

        assert isinstance(stream, AssembledStream)
        assert stream.read() == b"".join(PAYLOADS)
        assert stream.block_count == len(PAYLOADS)

    @pytest.mark.unit
    def test_mixed_inline_and_remote_blocks(self, httpx_mock, client, request_description):
        blocks = [
            inline_block(b"HDR"),
            remote_block("https://data.test/body/1", headers={"Authorization": "Bearer b1"}),
            remote_block("https://data.test/body/2"),
            inline_block(b"EOF"),
        ]
        httpx_mock.add_response(url=TICKET_URL, json=ticket_body(blocks))
        httpx_mock.add_response(url="https://data.test/body/1", content=b"-one-")
        httpx_mock.add_response(url="https://data.test/body/2", content=b"-two-")

        assert client.execute(request_description).read() == b"HDR-one--two-EOF"

        block_request = httpx_mock.get_request(url="https://data.test/body/1")
        assert block_request.headers["Authorization"] == "Bearer b1"

    @pytest.mark.unit
    def test_ticket_request_does_not_carry_block_headers(
        self, httpx_mock, client, request_description
    ):
        blocks = [remote_block("https://data.test/body/1", headers={"Authorization": "Bearer b1"})]
        httpx_mock.add_response(url=TICKET_URL, json=ticket_body(blocks))
        httpx_mock.add_response(url="https://data.test/body/1", content=b"x")

        client.execute(request_description).read()

        ticket_request = httpx_mock.get_requests()[0]
        assert "Authorization" not in ticket_request.headers

    @pytest.mark.unit
    def test_request_url_carries_parameters(self, httpx_mock, client):
        httpx_mock.add_response(url=TICKET_URL, json=ticket_body([]))
        request = RequestDescription(
            endpoint=ENDPOINT,
            id="NA12878",
            format="BAM",
            interval=Interval("chr1", start=0, end=100),
            tags=["NM", "MD"],
        )

        client.execute(request).read()

        sent = httpx_mock.get_requests()[0]
        assert sent.method == "GET"
        assert sent.url.path == "/reads/NA12878"
        assert sent.url.params.get_list("tag") == ["NM", "MD"]
        assert sent.url.params["referenceName"] == "chr1"
        assert sent.url.params["end"] == "100"

    @pytest.mark.unit
    def test_empty_block_list_yields_empty_stream(self, httpx_mock, client, request_description):
        httpx_mock.add_response(url=TICKET_URL, json=ticket_body([]))
        assert client.execute(request_description).read() == b""

    @pytest.mark.unit
    def test_md5_does_not_alter_output(self, httpx_mock, client, request_description):
        httpx_mock.add_response(url=TICKET_URL, json=_inline_ticket())
        httpx_mock.add_response(url=TICKET_URL, json=_inline_ticket(md5="0" * 32))

        without_md5 = client.execute(request_description)
        with_md5 = client.execute(request_description)

        assert without_md5.read() == with_md5.read() == b"".join(PAYLOADS)
        assert without_md5.md5 is None
        assert with_md5.md5 == "0" * 32

    @pytest.mark.unit
    def test_md5_logged(self, httpx_mock, client, request_description, caplog):
        httpx_mock.add_response(url=TICKET_URL, json=_inline_ticket(md5="abc123"))
        with caplog.at_level(logging.INFO, logger="htsgetreader.client"):
            client.execute(request_description)
        assert "Received md5 checksum: abc123" in caplog.text

    @pytest.mark.unit
    def test_missing_md5_logged(self, httpx_mock, client, request_description, caplog):
        httpx_mock.add_response(url=TICKET_URL, json=_inline_ticket())
        with caplog.at_level(logging.INFO, logger="htsgetreader.client"):
            client.execute(request_description)
        assert "No md5 checksum received" in caplog.text

    @pytest.mark.unit
    def test_declared_charset_used(self, httpx_mock, client, request_description):
        text = json.dumps({"htsget": {"urls": [], "md5": "café"}}, ensure_ascii=False)
        httpx_mock.add_response(
            url=TICKET_URL,
            content=text.encode("latin-1"),
            headers={"Content-Type": "application/json; charset=latin-1"},
        )
        manifest = client.fetch_ticket(request_description)
        assert manifest.md5 == "café"

    @pytest.mark.unit
    def test_utf8_default(self, httpx_mock, client, request_description):
        text = json.dumps({"htsget": {"urls": [], "md5": "café"}}, ensure_ascii=False)
        httpx_mock.add_response(
            url=TICKET_URL,
            content=text.encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        assert client.fetch_ticket(request_description).md5 == "café"

    @pytest.mark.unit
    def test_fetch_ticket_does_not_fetch_blocks(self, httpx_mock, client, request_description):
        httpx_mock.add_response(
            url=TICKET_URL, json=ticket_body([remote_block("https://data.test/body/1")])
        )
        manifest = client.fetch_ticket(request_description)
        assert len(manifest.blocks) == 1
        assert len(httpx_mock.get_requests()) == 1


class TestExecuteErrors:
    """Tests for failure classification."""

    @pytest.mark.unit
    def test_404_error_body(self, httpx_mock, client, request_description):
        httpx_mock.add_response(
            url=TICKET_URL,
            status_code=404,
            json={"error": "NotFound", "message": "no such id"},
        )
        with pytest.raises(ClientRequestError) as exc_info:
            client.execute(request_description)

        err = exc_info.value
        assert err.status_code == 404
        assert err.error_type == "NotFound"
        assert err.message == "no such id"
        assert str(err) == (
            "Invalid request, received error code: 404, error type: NotFound, message: no such id"
        )

    @pytest.mark.unit
    def test_wrapped_400_error_body(self, httpx_mock, client, request_description):
        httpx_mock.add_response(
            url=TICKET_URL,
            status_code=400,
            json={"htsget": {"error": "InvalidInput", "message": "bad field"}},
        )
        with pytest.raises(ClientRequestError) as exc_info:
            client.execute(request_description)
        assert exc_info.value.error_type == "InvalidInput"

    @pytest.mark.unit
    def test_4xx_without_error_body(self, httpx_mock, client, request_description):
        httpx_mock.add_response(url=TICKET_URL, status_code=401, text="Unauthorized")
        with pytest.raises(ProtocolError) as exc_info:
            client.execute(request_description)
        assert exc_info.value.status_code == 401

    @pytest.mark.unit
    @pytest.mark.parametrize("status", [301, 302, 204, 500, 503])
    def test_unrecognized_status(self, httpx_mock, client, request_description, status):
        httpx_mock.add_response(
            url=TICKET_URL,
            status_code=status,
            headers={"Location": "https://elsewhere.test/"},
        )
        with pytest.raises(ProtocolError) as exc_info:
            client.execute(request_description)
        assert exc_info.value.status_code == status
        assert str(status) in str(exc_info.value)
        # No retry, no redirect
        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.unit
    def test_invalid_json_body(self, httpx_mock, client, request_description):
        httpx_mock.add_response(url=TICKET_URL, text="{not json")
        with pytest.raises(ProtocolError):
            client.execute(request_description)

    @pytest.mark.unit
    def test_undecodable_body(self, httpx_mock, client, request_description):
        httpx_mock.add_response(
            url=TICKET_URL,
            content=b"\xff\xfe\xfa",
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        with pytest.raises(ProtocolError):
            client.execute(request_description)

    @pytest.mark.unit
    def test_transport_failure(self, httpx_mock, client, request_description):
        httpx_mock.add_exception(httpx.ConnectTimeout("timed out"), url=TICKET_URL)
        with pytest.raises(TransportError) as exc_info:
            client.execute(request_description)
        assert exc_info.value.block_index is None

    @pytest.mark.unit
    def test_errors_share_base_class(self, httpx_mock, client, request_description):
        httpx_mock.add_response(url=TICKET_URL, status_code=500)
        with pytest.raises(HtsgetError):
            client.execute(request_description)

    @pytest.mark.unit
    def test_invalid_interval_fails_before_network(self, httpx_mock):
        with pytest.raises(ConfigurationError):
            RequestDescription(
                endpoint=ENDPOINT, id="NA12878", interval=Interval("chr1", start=500, end=100)
            )
        assert httpx_mock.get_requests() == []

    @pytest.mark.unit
    def test_serial_block_failure_fails_execute(self, httpx_mock, client, request_description):
        blocks = [inline_block(b"ok"), remote_block("https://data.test/body/1")]
        httpx_mock.add_response(url=TICKET_URL, json=ticket_body(blocks))
        httpx_mock.add_response(url="https://data.test/body/1", status_code=500)

        with pytest.raises(TransportError) as exc_info:
            client.execute(request_description)
        assert exc_info.value.block_index == 1

    @pytest.mark.unit
    def test_serial_read_error_fails_execute(
        self, httpx_mock, client, request_description
    ):
        blocks = [remote_block("https://data.test/body/0")]
        httpx_mock.add_response(url=TICKET_URL, json=ticket_body(blocks))
        httpx_mock.add_exception(
            httpx.ReadError("connection reset"), url="https://data.test/body/0"
        )

        with pytest.raises(TransportError) as exc_info:
            client.execute(request_description)
        assert exc_info.value.block_index == 0

    @pytest.mark.unit
    def test_malformed_endpoint_is_configuration_error(self, httpx_mock):
        request = RequestDescription(endpoint="http://[::1", id="NA12878")
        with HtsgetClient() as client, pytest.raises(ConfigurationError):
            client.fetch_ticket(request)
        assert httpx_mock.get_requests() == []


def _remote_ticket_routes(n: int, fail: int | None = None) -> dict:
    blocks = [remote_block(f"https://htsget.test/data/{i}") for i in range(n)]
    routes: dict = {"/reads/NA12878": respond(json=ticket_body(blocks))}
    for i in range(n):
        routes[f"/data/{i}"] = respond(content=f"[{i}]".encode())
    if fail is not None:
        routes[f"/data/{fail}"] = respond(500)
    return routes


class TestExecuteParallel:
    """Tests for execute with a worker pool."""

    @pytest.mark.unit
    def test_inline_blocks_parallel(self, httpx_mock, request_description):
        httpx_mock.add_response(url=TICKET_URL, json=_inline_ticket())
        with ThreadPoolExecutor(max_workers=4) as pool:
            with HtsgetClient(submitter=pool) as client:
                assert client.execute(request_description).read() == b"".join(PAYLOADS)

    @pytest.mark.unit
    def test_remote_blocks_parallel_match_serial(self, request_description):
        transport = routing_transport(_remote_ticket_routes(6))
        with httpx.Client(transport=transport) as http:
            serial = HtsgetClient(http_client=http).execute(request_description).read()
            with ThreadPoolExecutor(max_workers=3) as pool:
                parallel = (
                    HtsgetClient(submitter=pool, http_client=http)
                    .execute(request_description)
                    .read()
                )
        assert serial == parallel == b"".join(f"[{i}]".encode() for i in range(6))

    @pytest.mark.unit
    def test_block_two_of_four_fails(self, request_description):
        transport = routing_transport(_remote_ticket_routes(4, fail=1))
        with httpx.Client(transport=transport) as http, ThreadPoolExecutor(4) as pool:
            client = HtsgetClient(submitter=pool, http_client=http)
            with pytest.raises(TransportError) as exc_info:
                client.execute(request_description)
        assert exc_info.value.block_index == 1

    @pytest.mark.unit
    def test_parallel_latency(self, request_description):
        n, latency = 4, 0.25

        def _delay(path: str) -> float:
            return latency if path.startswith("/data/") else 0

        transport = routing_transport(_remote_ticket_routes(n), delay_for=_delay)
        with httpx.Client(transport=transport) as http:
            start = time.monotonic()
            HtsgetClient(http_client=http).execute(request_description).read()
            serial_elapsed = time.monotonic() - start

            with ThreadPoolExecutor(max_workers=n) as pool:
                start = time.monotonic()
                HtsgetClient(submitter=pool, http_client=http).execute(request_description).read()
                parallel_elapsed = time.monotonic() - start

        assert serial_elapsed >= n * latency
        assert parallel_elapsed < (n * latency) / 2


class TestClientLifecycle:
    """Tests for transport ownership."""

    @pytest.mark.unit
    def test_borrowed_http_client_not_closed(self):
        http = httpx.Client()
        with HtsgetClient(http_client=http):
            pass
        assert not http.is_closed
        http.close()

    @pytest.mark.unit
    def test_owned_http_client_closed(self):
        client = HtsgetClient(config=HtsgetConfig(timeout=5.0))
        client.close()
        assert client._http.is_closed

    @pytest.mark.unit
    def test_config_applied_to_transport(self):
        with HtsgetClient(config=HtsgetConfig(timeout=7.5, user_agent="test-agent/1")) as client:
            assert client._http.timeout.read == 7.5
            assert client._http.headers["User-Agent"] == "test-agent/1"
            assert client._http.follow_redirects is False
