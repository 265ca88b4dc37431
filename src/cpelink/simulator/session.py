"""CWMP session engine.

This module drives the CPE side of a CWMP session as an explicit state
machine on top of an abstract Transport:

    IDLE --timer/connection request--> INFORM_SENT
    INFORM_SENT --InformResponse--> EXCHANGE_LOOP
    EXCHANGE_LOOP --ACS RPC--> EXCHANGE_LOOP
    EXCHANGE_LOOP --empty response--> SCHEDULED (next Inform timer armed)

Between sessions the next Inform is an asyncio timer handle. Once the
engine is started, a cleared handle means a session is running; the
connection-request listener relies on this to decide between latching a
fast Inform and cutting the idle period short.
"""

import asyncio
import logging
import time
import uuid
from typing import Optional

from lxml import etree

from cpelink.datamodel import DataModelError, DeviceModel
from cpelink.observability.logging import bind_session

from . import codec
from .event_emitter import (
    EVENT_CONNECTION_REQUEST,
    EVENT_FAULT_SENT,
    EVENT_SESSION_ENDED,
    EVENT_SESSION_STARTED,
    EventEmitter,
)
from .methods import (
    EVENT_CONNECTION_REQUEST as CONNECTION_REQUEST_EVENT_CODE,
    INTERNAL_ERROR,
    METHOD_NOT_SUPPORTED,
    CwmpFault,
    MethodDispatcher,
)
from .models import SessionResult, SessionState, SimulatorStats
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_INFORM_INTERVAL = 10.0

PERIODIC_INFORM_INTERVAL_PATHS = (
    "Device.ManagementServer.PeriodicInformInterval",
    "InternetGatewayDevice.ManagementServer.PeriodicInformInterval",
)


def new_request_id() -> str:
    """Generate a fresh request id for one exchange."""
    return uuid.uuid4().hex[:8]


def periodic_inform_interval(
    model: DeviceModel, default: float = DEFAULT_INFORM_INTERVAL
) -> float:
    """Get the configured periodic Inform interval in seconds.

    Checks the ``Device.`` path first, then the ``InternetGatewayDevice.``
    path. Missing, non-numeric or non-positive values give the default.
    """
    path = model.first_existing(*PERIODIC_INFORM_INTERVAL_PATHS)
    if path is None:
        return default
    try:
        interval = float(model.get_value(path, ""))
    except ValueError:
        logger.warning(f"Ignoring invalid {path}: {model.get_value(path)!r}")
        return default
    return interval if interval > 0 else default


class SessionEngine:
    """Runs CWMP sessions against the ACS.

    Attributes:
        model: Device model shared with RPC handlers and the reporter.
        transport: Channel to the ACS.
        dispatcher: RPC method table and Inform builder.

    Example:
        >>> engine = SessionEngine(model, transport, MethodDispatcher())
        >>> engine.start(event="1 BOOT")
        >>> await engine.wait_failed()  # returns only on a fatal transport fault
    """

    def __init__(
        self,
        model: DeviceModel,
        transport: Transport,
        dispatcher: MethodDispatcher,
        default_interval: float = DEFAULT_INFORM_INTERVAL,
        stats: Optional[SimulatorStats] = None,
        events: Optional[EventEmitter] = None,
    ):
        self.model = model
        self.transport = transport
        self.dispatcher = dispatcher
        self.default_interval = default_interval
        self.stats = stats or SimulatorStats()
        self.events = events or EventEmitter()

        self._state = SessionState.IDLE
        self._next_inform: Optional[asyncio.TimerHandle] = None
        self._fast_inform = False
        self._session_task: Optional[asyncio.Task] = None
        self._failure: Optional[asyncio.Future] = None
        self._result: Optional[SessionResult] = None
        self.last_result: Optional[SessionResult] = None

    @property
    def state(self) -> SessionState:
        """Get current session state."""
        return self._state

    @property
    def session_active(self) -> bool:
        """A session is running when the engine is started and no timer is armed."""
        return self._next_inform is None and self._state is not SessionState.IDLE

    @property
    def fast_inform_requested(self) -> bool:
        """Whether a connection request arrived during the current session."""
        return self._fast_inform

    def _set_state(self, new_state: SessionState) -> None:
        old_state = self._state
        self._state = new_state
        logger.debug(f"State transition: {old_state.value} -> {new_state.value}")

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def start(self, delay: float = 0.0, event: Optional[str] = None) -> None:
        """Arm the first Inform.

        Must be called from within the running event loop.
        """
        loop = asyncio.get_running_loop()
        if self._failure is None or self._failure.done():
            self._failure = loop.create_future()
        self.schedule(delay, event)

    def schedule(self, delay: float, event: Optional[str] = None) -> None:
        """Arm the next-Inform timer."""
        loop = asyncio.get_running_loop()
        self._next_inform = loop.call_later(delay, self._on_timer, event)
        self._set_state(SessionState.SCHEDULED)
        logger.debug(f"Next Inform in {delay:.1f}s")

    def _on_timer(self, event: Optional[str]) -> None:
        self._next_inform = None
        self._session_task = asyncio.ensure_future(self.run_session(event))
        self._session_task.add_done_callback(self._on_session_done)

    def _on_session_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(f"Session aborted: {error}")
        if self._failure is not None and not self._failure.done():
            self._failure.set_exception(error)

    async def wait_failed(self) -> None:
        """Wait until a session fails fatally and re-raise its error."""
        if self._failure is None:
            self._failure = asyncio.get_running_loop().create_future()
        await self._failure

    def connection_request(self) -> None:
        """React to a connection request from the ACS.

        During a session the request is latched so the next Inform follows
        immediately; while idle the pending timer is cancelled and a session
        is started right away. A stopped engine ignores the request.
        """
        self.stats.connection_requests += 1
        self.events.emit(EVENT_CONNECTION_REQUEST, {"session_active": self.session_active})

        if self.session_active:
            self._fast_inform = True
            logger.debug("Connection request during session, fast Inform latched")
            return
        if self._next_inform is None:
            logger.debug("Connection request ignored, engine is stopped")
            return

        self._next_inform.cancel()
        self.schedule(0, CONNECTION_REQUEST_EVENT_CODE)

    def next_inform_delay(self) -> float:
        """Compute the idle delay before the next Inform."""
        if self._fast_inform or self.dispatcher.boot_pending:
            return 0.0
        return periodic_inform_interval(self.model, self.default_interval)

    async def stop(self) -> None:
        """Cancel the idle timer and any running session."""
        if self._next_inform is not None:
            self._next_inform.cancel()
            self._next_inform = None
        if self._session_task is not None and not self._session_task.done():
            self._session_task.cancel()
            try:
                await self._session_task
            except asyncio.CancelledError:
                pass
        self._session_task = None
        self._set_state(SessionState.IDLE)

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def _send(self, xml: Optional[str]) -> Optional[etree._Element]:
        response = await self.transport.send(xml)
        self.stats.total_exchanges += 1
        if self._result is not None:
            self._result.exchange_count += 1
        return response

    async def run_session(self, event: Optional[str] = None) -> SessionResult:
        """Run one complete session and arm the next Inform.

        Args:
            event: Event code reported in the Inform.

        Returns:
            SessionResult for the completed session.

        Raises:
            TransportError: On any transport fault; the session is abandoned.
        """
        if self._next_inform is not None:
            self._next_inform.cancel()
            self._next_inform = None
        self._fast_inform = False

        session_start = time.monotonic()
        self._result = SessionResult(session_id=str(uuid.uuid4()), event=event)
        bind_session(self._result.session_id)

        # IDLE -> INFORM_SENT
        self._set_state(SessionState.INFORM_SENT)
        self.stats.sessions_started += 1
        self.events.emit(EVENT_SESSION_STARTED, {"session_id": self._result.session_id, "event": event})
        logger.info(f"Starting session ({event or 'periodic'})")
        body = self.dispatcher.inform(self.model, event)
        response = await self._send(codec.build_envelope(new_request_id(), body))
        self._log_acs_fault(response, "Inform")

        # INFORM_SENT -> EXCHANGE_LOOP
        self._set_state(SessionState.EXCHANGE_LOOP)
        envelope = await self._send_pending_requests()
        while envelope is not None:
            envelope = await self._handle_rpc(envelope)

        # EXCHANGE_LOOP -> SCHEDULED
        result = self._result
        self._result = None
        result.duration_seconds = time.monotonic() - session_start
        result.next_inform_delay = self.next_inform_delay()

        self.stats.sessions_completed += 1
        self.stats.record_session_duration(result.duration_seconds * 1000)
        self.last_result = result
        self.events.emit(EVENT_SESSION_ENDED, result.get_summary())
        logger.info(
            f"Session complete: {result.exchange_count} exchanges, "
            f"{result.duration_seconds:.2f}s, next Inform in {result.next_inform_delay:.0f}s"
        )

        bind_session(None)
        self.schedule(result.next_inform_delay)
        return result

    async def _send_pending_requests(self) -> Optional[etree._Element]:
        """Send queued CPE requests, then an empty POST.

        Returns:
            The ACS reply to the empty POST.
        """
        pending = self.dispatcher.get_pending()
        while pending is not None:
            logger.debug(f"Sending CPE request {pending.method}")
            reply = await self._send(codec.build_envelope(new_request_id(), pending.build()))
            self._log_acs_fault(reply, pending.method)
            if pending.on_response is not None:
                pending.on_response(reply)
            pending = self.dispatcher.get_pending()

        return await self._send(None)

    async def _handle_rpc(self, envelope: etree._Element) -> Optional[etree._Element]:
        """Answer one ACS RPC and return the ACS's next message."""
        header, body = codec.split_envelope(envelope)
        request_id = codec.get_request_id(header) or new_request_id()
        request = codec.find_rpc_element(body)

        if request is None:
            # Nothing to answer; treat like an empty response
            logger.warning("ACS message without an RPC element, ending session")
            return None

        name = codec.local_name(request)
        handler = self.dispatcher.get_handler(name)

        if handler is None:
            response_body = self._fault(METHOD_NOT_SUPPORTED, f"Method not supported-{name}", name)
        else:
            try:
                response_body = handler(self.model, request)
                self.stats.rpcs_handled += 1
                self._result.rpc_count += 1
                logger.debug(f"Handled {name}")
            except CwmpFault as e:
                response_body = self._fault(e.code, e.message, name)
            except DataModelError as e:
                response_body = self._fault(INTERNAL_ERROR, str(e), name)

        self._result.methods.append(name)
        return await self._send(codec.build_envelope(request_id, response_body))

    def _fault(self, code: int, message: str, method: str) -> etree._Element:
        logger.info(f"Answering {method} with fault {code}: {message}")
        self.stats.faults_sent += 1
        self._result.fault_count += 1
        self.events.emit(EVENT_FAULT_SENT, {"method": method, "code": code, "message": message})
        return codec.build_fault(code, message)

    @staticmethod
    def _log_acs_fault(envelope: Optional[etree._Element], method: str) -> None:
        if envelope is None:
            return
        _, body = codec.split_envelope(envelope)
        fault = codec.read_fault(body)
        if fault is not None:
            logger.warning(f"ACS rejected {method} with fault {fault[0]}: {fault[1]}")
