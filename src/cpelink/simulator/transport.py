"""ACS transport.

This module performs the HTTP exchanges between the simulated CPE and the
ACS. CWMP forbids the CPE from having more than one request outstanding
towards the ACS, so the transport owns a dedicated aiohttp session whose
connector holds a single keep-alive connection: a second send() waits for
the first to finish instead of opening a parallel connection.

Each exchange is one POST carrying:
- Content-Type: text/xml; charset="utf-8"
- Authorization: Basic <base64(user:pass)>
- Cookie: the session cookie captured from an earlier Set-Cookie
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import aiohttp
from lxml import etree

from . import codec

logger = logging.getLogger(__name__)

CONTENT_TYPE_XML = 'text/xml; charset="utf-8"'

# Fixed socket-level timeout for ACS exchanges (seconds)
DEFAULT_SOCKET_TIMEOUT = 30.0


# =============================================================================
# Exceptions
# =============================================================================


class TransportError(Exception):
    """Base exception for ACS transport errors."""

    pass


class HTTPStatusError(TransportError):
    """ACS answered with a non-2xx status code."""

    def __init__(self, status_code: int, reason: str, body: bytes = b""):
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"Unexpected response code {status_code} {reason}")


class TransportTimeoutError(TransportError):
    """Socket timed out before the exchange completed."""

    pass


# =============================================================================
# Transport
# =============================================================================


class Transport(ABC):
    """One-exchange-at-a-time channel to the ACS.

    Implementations send an encoded envelope (or an empty POST when given
    None) and return the decoded response envelope, or None when the ACS
    answered with an empty body.
    """

    @abstractmethod
    async def send(self, xml: Optional[str]) -> Optional[etree._Element]:
        """Perform one exchange with the ACS."""

    async def close(self) -> None:
        """Release any held connection."""


class HTTPTransport(Transport):
    """aiohttp based transport with a single persistent connection.

    Attributes:
        url: ACS URL.
        cookie: Sticky session cookie, None until the ACS sets one.

    Example:
        >>> transport = HTTPTransport("http://acs.example.com:7547/", "cpe", "secret")
        >>> response = await transport.send(envelope_xml)
        >>> await transport.close()
    """

    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        socket_timeout: float = DEFAULT_SOCKET_TIMEOUT,
    ):
        """Initialize transport.

        Args:
            url: ACS URL.
            username: Basic-auth username.
            password: Basic-auth password.
            socket_timeout: Socket connect/read timeout in seconds.
        """
        self.url = url
        self.socket_timeout = socket_timeout
        self.cookie: Optional[str] = None
        self._authorization = aiohttp.BasicAuth(username, password).encode()
        self._session: Optional[aiohttp.ClientSession] = None
        self._exchange_count = 0

    @property
    def exchange_count(self) -> int:
        """Get number of completed exchanges."""
        return self._exchange_count

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=1, limit_per_host=1)
            timeout = aiohttp.ClientTimeout(
                total=None,
                sock_connect=self.socket_timeout,
                sock_read=self.socket_timeout,
            )
            # Cookies are handled by hand so the raw ACS cookie is replayed as-is
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                cookie_jar=aiohttp.DummyCookieJar(),
            )
        return self._session

    def build_headers(self, body: bytes) -> Dict[str, str]:
        """Build request headers for an exchange.

        Args:
            body: Encoded request body.

        Returns:
            Header dictionary.
        """
        headers = {
            "Content-Length": str(len(body)),
            "Content-Type": CONTENT_TYPE_XML,
            "Authorization": self._authorization,
        }
        if self.cookie:
            headers["Cookie"] = self.cookie
        return headers

    def capture_cookie(self, set_cookie_headers: List[str]) -> None:
        """Update the sticky cookie from Set-Cookie response headers.

        Only the name=value part of each header is kept; attributes such as
        Path or Expires are dropped.
        """
        pairs = [h.split(";", 1)[0].strip() for h in set_cookie_headers]
        pairs = [p for p in pairs if p]
        if pairs:
            self.cookie = "; ".join(pairs)
            logger.debug(f"Session cookie updated: {self.cookie}")

    async def send(self, xml: Optional[str]) -> Optional[etree._Element]:
        """Send one POST and wait for the ACS response.

        Args:
            xml: Encoded envelope, or None for an empty POST.

        Returns:
            Decoded response envelope, or None for an empty response.

        Raises:
            HTTPStatusError: If the ACS answered with a non-2xx status.
            TransportTimeoutError: If the socket timed out.
            TransportError: On any other connection failure.
        """
        body = xml.encode("utf-8") if xml else b""
        session = self._get_session()

        try:
            async with session.post(
                self.url, data=body, headers=self.build_headers(body)
            ) as response:
                data = await response.read()

                if response.status // 100 != 2:
                    raise HTTPStatusError(response.status, response.reason or "", data)

                self.capture_cookie(response.headers.getall("Set-Cookie", []))

        except asyncio.TimeoutError as e:
            raise TransportTimeoutError("Socket timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"ACS exchange failed: {e}") from e

        self._exchange_count += 1
        logger.debug(f"ACS exchange: sent {len(body)} bytes, received {len(data)} bytes")
        return codec.parse(data)

    async def close(self) -> None:
        """Close the persistent connection."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
