"""Connection-request listener.

The ACS asks the CPE to open a session by sending any HTTP request to the
URL the CPE published in ``ConnectionRequestURL``. This module serves that
URL with aiohttp.web. The request carries no payload the CPE cares about:
it is answered with an empty 200 and turned into a callback.

The listening address is derived from the outbound route to the ACS: a
throwaway IPv4 connection to the ACS reveals the local interface address,
and the listener binds that address on the local port + 1.
"""

import asyncio
import logging
import socket
from typing import Callable, Optional, Tuple
from urllib.parse import urlsplit

from aiohttp import web

logger = logging.getLogger(__name__)


async def discover_local_endpoint(
    host: str, port: int, timeout: float = 10.0
) -> Tuple[str, int]:
    """Find the local IPv4 address and port used to reach the ACS.

    Args:
        host: ACS host name or address.
        port: ACS port.
        timeout: Connect timeout in seconds.

    Returns:
        (local_ip, local_port) of the throwaway connection.
    """
    _, writer = await asyncio.wait_for(
        asyncio.open_connection(host, port, family=socket.AF_INET), timeout
    )
    try:
        local_ip, local_port = writer.get_extra_info("sockname")[:2]
    finally:
        writer.close()
        await writer.wait_closed()
    return local_ip, local_port


def acs_address(acs_url: str) -> Tuple[str, int]:
    """Get (host, port) from the ACS URL, applying the scheme's default port."""
    parts = urlsplit(acs_url)
    default_port = 443 if parts.scheme == "https" else 80
    return parts.hostname or "127.0.0.1", parts.port or default_port


class ConnectionRequestListener:
    """HTTP endpoint that turns any incoming request into a session trigger.

    Example:
        >>> listener = ConnectionRequestListener("acs.local", 7547, engine.connection_request)
        >>> url = await listener.start()
        >>> model.update_value("InternetGatewayDevice.ManagementServer.ConnectionRequestURL", url)
    """

    def __init__(
        self,
        acs_host: str,
        acs_port: int,
        on_request: Callable[[], None],
    ):
        self.acs_host = acs_host
        self.acs_port = acs_port
        self.on_request = on_request
        self.url: Optional[str] = None
        self._runner: Optional[web.AppRunner] = None

    def create_app(self) -> web.Application:
        """Create the aiohttp application serving every method and path."""
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app

    async def start(self) -> str:
        """Bind the listener and return its URL.

        Raises:
            OSError: If the ACS is unreachable or the port cannot be bound.
        """
        local_ip, local_port = await discover_local_endpoint(self.acs_host, self.acs_port)
        listen_port = local_port + 1

        self._runner = web.AppRunner(self.create_app(), access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, local_ip, listen_port)
        await site.start()

        self.url = f"http://{local_ip}:{listen_port}/"
        logger.info(f"Listening for connection requests on {self.url}")
        return self.url

    async def handle(self, request: web.Request) -> web.Response:
        """Answer a connection request and notify the simulator."""
        logger.info(f"Connection request from {request.remote}: {request.method} {request.path}")
        self.on_request()
        return web.Response(status=200)

    async def stop(self) -> None:
        """Stop serving."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
