"""CPE Simulator package.

This package provides a TR-069 (CWMP) CPE simulator for exercising an ACS
without physical devices.

Main Classes:
    CpeSimulator: Main simulator class that owns model, transport and timers.
    SimulatorConfig: Configuration for simulator behavior.
    SessionEngine: CWMP session state machine.
    MethodDispatcher: Inform builder and ACS RPC handlers.

Example:
    >>> from cpelink.simulator import CpeSimulator, SimulatorConfig
    >>>
    >>> config = SimulatorConfig(
    ...     acs_url="http://127.0.0.1:7547/",
    ...     serial_number="CPE-SIM-0001",
    ... )
    >>>
    >>> simulator = CpeSimulator(config)
    >>> await simulator.run()
"""

from .client import CpeSimulator, SimulatorError
from .codec import CodecError, build_envelope, build_fault, parse
from .config import BulkDataConfig, SimulatorConfig
from .event_emitter import Event, EventEmitter
from .listener import ConnectionRequestListener
from .methods import CwmpFault, MethodDispatcher
from .models import PendingRequest, SessionResult, SessionState, SimulatorStats
from .session import SessionEngine
from .transport import (
    HTTPStatusError,
    HTTPTransport,
    Transport,
    TransportError,
    TransportTimeoutError,
)

__all__ = [
    # Main classes
    "CpeSimulator",
    "SimulatorConfig",
    "SessionEngine",
    "MethodDispatcher",
    # Configuration
    "BulkDataConfig",
    # Components
    "Transport",
    "HTTPTransport",
    "ConnectionRequestListener",
    "EventEmitter",
    "Event",
    # Codec
    "build_envelope",
    "build_fault",
    "parse",
    # Models
    "SessionState",
    "SessionResult",
    "SimulatorStats",
    "PendingRequest",
    # Exceptions
    "SimulatorError",
    "CwmpFault",
    "CodecError",
    "TransportError",
    "HTTPStatusError",
    "TransportTimeoutError",
]
