"""CPE simulator main client.

This module provides the CpeSimulator class that owns the device model,
the ACS transport, the session engine, the connection-request listener and
the bulk-data reporter for one simulated device.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

from cpelink.datamodel import DeviceModel, load_device_model

from .bulkdata import BulkDataReporter
from .config import SimulatorConfig
from .event_emitter import EventEmitter
from .listener import ConnectionRequestListener, acs_address
from .methods import MethodDispatcher
from .models import SimulatorStats
from .session import SessionEngine
from .transport import HTTPTransport, Transport

logger = logging.getLogger(__name__)

DEFAULT_DATA_MODEL = Path(__file__).resolve().parent.parent / "data" / "igd_default.yaml"

SERIAL_NUMBER_PATHS = (
    "DeviceID.SerialNumber",
    "Device.DeviceInfo.SerialNumber",
    "InternetGatewayDevice.DeviceInfo.SerialNumber",
)

CONNECTION_REQUEST_URL_PATHS = (
    "InternetGatewayDevice.ManagementServer.ConnectionRequestURL",
    "Device.ManagementServer.ConnectionRequestURL",
)


class SimulatorError(Exception):
    """Base exception for simulator errors."""

    pass


# =============================================================================
# Startup helpers
# =============================================================================


def apply_serial_number(model: DeviceModel, serial_number: str) -> int:
    """Write the serial number into every serial-number path the model has.

    Returns:
        Number of paths updated.
    """
    updated = 0
    for path in SERIAL_NUMBER_PATHS:
        if path in model:
            model.update_value(path, serial_number)
            updated += 1
    return updated


def read_credentials(model: DeviceModel) -> Tuple[str, str]:
    """Get the ACS username and password from the management server object.

    The ``Device.`` root is preferred; missing credentials give empty strings.
    """
    for root in ("Device", "InternetGatewayDevice"):
        username_path = f"{root}.ManagementServer.Username"
        if username_path in model:
            password = model.get_value(f"{root}.ManagementServer.Password", "")
            return model.get_value(username_path, ""), password
    return "", ""


def publish_connection_request_url(model: DeviceModel, url: str) -> Optional[str]:
    """Store the listener URL in the model's ConnectionRequestURL.

    Returns:
        The path written, or None if the model has no such parameter.
    """
    path = model.first_existing(*CONNECTION_REQUEST_URL_PATHS)
    if path is not None:
        model.update_value(path, url)
    return path


# =============================================================================
# Simulator
# =============================================================================


class CpeSimulator:
    """Simulates one TR-069 CPE talking to an ACS.

    Attributes:
        config: Simulator configuration.
        model: Device parameter store.
        engine: CWMP session engine.
        events: Event emitter for session and report events.

    Example:
        >>> config = SimulatorConfig(
        ...     acs_url="http://acs.example.com:7547/",
        ...     serial_number="ABC123456",
        ... )
        >>> simulator = CpeSimulator(config)
        >>> await simulator.run()  # returns only on a fatal error
    """

    def __init__(
        self,
        config: SimulatorConfig,
        model: Optional[DeviceModel] = None,
        dispatcher: Optional[MethodDispatcher] = None,
        transport: Optional[Transport] = None,
    ):
        """Initialize simulator.

        Args:
            config: Simulator configuration.
            model: Device model, loaded from config.data_model (or the
                packaged default) when omitted.
            dispatcher: RPC method table.
            transport: ACS transport, an HTTPTransport when omitted.
        """
        config.validate()
        self.config = config

        if model is None:
            model = load_device_model(config.data_model or DEFAULT_DATA_MODEL)
        self.model = model
        apply_serial_number(self.model, config.serial_number)

        self.dispatcher = dispatcher or MethodDispatcher()
        self.events = EventEmitter()
        self._stats = SimulatorStats()

        if transport is None:
            username, password = read_credentials(self.model)
            transport = HTTPTransport(config.acs_url, username, password, config.socket_timeout)
        self.transport = transport

        self.engine = SessionEngine(
            self.model,
            self.transport,
            self.dispatcher,
            default_interval=config.default_inform_interval,
            stats=self._stats,
            events=self.events,
        )

        self.listener: Optional[ConnectionRequestListener] = None
        if config.listen_for_connection_requests:
            host, port = acs_address(config.acs_url)
            self.listener = ConnectionRequestListener(host, port, self.engine.connection_request)

        self.reporter: Optional[BulkDataReporter] = None
        if config.bulk_data.enabled:
            self.reporter = BulkDataReporter(
                self.model, config.bulk_data, stats=self._stats, events=self.events
            )

        self._started = False

    @property
    def statistics(self) -> SimulatorStats:
        """Get simulator statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if the simulator has been started."""
        return self._started

    async def start(self) -> None:
        """Bring the device up and arm the first Inform.

        Raises:
            SimulatorError: If already started or the listener cannot bind.
        """
        if self._started:
            raise SimulatorError("Simulator already started")

        if self.listener is not None:
            try:
                url = await self.listener.start()
            except OSError as e:
                raise SimulatorError(f"Cannot start connection-request listener: {e}") from e
            publish_connection_request_url(self.model, url)

        # FactoryReset restores the model as it is now
        self.model.mark_factory_defaults()

        if self.reporter is not None:
            self.reporter.start()

        self.engine.start(0, self.config.first_event)
        self._started = True
        logger.info(f"Simulator {self.config.serial_number} started against {self.config.acs_url}")

    async def run(self) -> None:
        """Start and run until a session fails fatally.

        Raises:
            TransportError: When an ACS exchange fails.
            SimulatorError: If startup fails.
        """
        await self.start()
        try:
            await self.engine.wait_failed()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop all activities and release the ACS connection."""
        await self.engine.stop()
        if self.reporter is not None:
            await self.reporter.stop()
        if self.listener is not None:
            await self.listener.stop()
        await self.transport.close()
        if self._started:
            logger.info(f"Simulator {self.config.serial_number} stopped")
        self._started = False

    async def __aenter__(self) -> "CpeSimulator":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
