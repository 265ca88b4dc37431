"""Tests for the aiohttp ACS transport."""

import asyncio
import base64
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from cpelink.simulator import codec
from cpelink.simulator.transport import (
    CONTENT_TYPE_XML,
    HTTPStatusError,
    HTTPTransport,
    TransportTimeoutError,
)

INFORM_RESPONSE = (
    '<soap-env:Envelope xmlns:soap-env="http://schemas.xmlsoap.org/soap/envelope/"'
    ' xmlns:cwmp="urn:dslforum-org:cwmp-1-0">'
    "<soap-env:Header><cwmp:ID>1</cwmp:ID></soap-env:Header>"
    "<soap-env:Body><cwmp:InformResponse><MaxEnvelopes>1</MaxEnvelopes>"
    "</cwmp:InformResponse></soap-env:Body></soap-env:Envelope>"
)


class FakeAcs:
    """Minimal ACS endpoint recording what it receives."""

    def __init__(self, status=200, body="", set_cookie=None, delay=0.0):
        self.status = status
        self.body = body
        self.set_cookie = set_cookie
        self.delay = delay
        self.requests = []

    async def handle(self, request):
        self.requests.append((dict(request.headers), await request.read()))
        if self.delay:
            await asyncio.sleep(self.delay)
        headers = {"Set-Cookie": self.set_cookie} if self.set_cookie else None
        return web.Response(status=self.status, text=self.body, headers=headers)


@asynccontextmanager
async def acs_server(**kwargs):
    """Run a FakeAcs on a local port and yield (acs, url)."""
    acs = FakeAcs(**kwargs)
    app = web.Application()
    app.router.add_post("/", acs.handle)
    server = TestServer(app)
    await server.start_server()
    try:
        yield acs, str(server.make_url("/"))
    finally:
        await server.close()


class TestHeaders:
    """Tests for header construction and cookie capture."""

    def test_build_headers(self):
        """Test Content-Type, Content-Length and Basic authorization."""
        transport = HTTPTransport("http://acs.test/", "cpe", "secret")
        headers = transport.build_headers(b"<x/>")

        assert headers["Content-Type"] == CONTENT_TYPE_XML
        assert headers["Content-Length"] == "4"
        assert headers["Authorization"] == "Basic " + base64.b64encode(b"cpe:secret").decode()
        assert "Cookie" not in headers

    def test_cookie_replayed(self):
        """Test a captured cookie is sent on later exchanges."""
        transport = HTTPTransport("http://acs.test/")
        transport.capture_cookie(["sid=abc; Path=/; HttpOnly", "lb=2"])

        assert transport.cookie == "sid=abc; lb=2"
        assert transport.build_headers(b"")["Cookie"] == "sid=abc; lb=2"

    def test_cookie_kept_without_set_cookie(self):
        """Test a response without Set-Cookie leaves the cookie untouched."""
        transport = HTTPTransport("http://acs.test/")
        transport.capture_cookie(["sid=abc"])
        transport.capture_cookie([])

        assert transport.cookie == "sid=abc"



class TestSend:
    """Tests for HTTP exchanges against a local server."""

    @pytest.mark.asyncio
    async def test_send_decodes_response_and_sticks_cookie(self):
        """Test the response is parsed and the session cookie replayed."""
        async with acs_server(body=INFORM_RESPONSE, set_cookie="sid=42; Path=/") as (acs, url):
            transport = HTTPTransport(url, "cpe", "secret")
            try:
                envelope = await transport.send("<x/>")
                await transport.send(None)
            finally:
                await transport.close()

        _, body = codec.split_envelope(envelope)
        assert codec.local_name(codec.find_rpc_element(body)) == "InformResponse"
        first_headers, first_body = acs.requests[0]
        second_headers, second_body = acs.requests[1]
        assert first_body == b"<x/>"
        assert "Cookie" not in first_headers
        assert second_body == b""
        assert second_headers["Cookie"] == "sid=42"
        assert transport.exchange_count == 2

    @pytest.mark.asyncio
    async def test_empty_response_is_none(self):
        """Test an empty response body means the ACS has nothing more."""
        async with acs_server() as (_, url):
            transport = HTTPTransport(url)
            try:
                assert await transport.send(None) is None
            finally:
                await transport.close()

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        """Test a non-2xx status raises HTTPStatusError."""
        async with acs_server(status=401, body="denied") as (_, url):
            transport = HTTPTransport(url)
            try:
                with pytest.raises(HTTPStatusError) as exc_info:
                    await transport.send("<x/>")
            finally:
                await transport.close()

        assert exc_info.value.status_code == 401
        assert exc_info.value.body == b"denied"

    @pytest.mark.asyncio
    async def test_socket_timeout(self):
        """Test a slow ACS raises TransportTimeoutError."""
        async with acs_server(delay=1.0) as (_, url):
            transport = HTTPTransport(url, socket_timeout=0.1)
            try:
                with pytest.raises(TransportTimeoutError):
                    await transport.send("<x/>")
            finally:
                await transport.close()
