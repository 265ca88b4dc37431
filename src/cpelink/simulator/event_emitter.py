"""Simulator event notifications.

Session and bulk-data activity is published as named events so the CLI and
tests can follow what the device is doing without reaching into the engine.
Everything runs on one asyncio loop: listeners are called synchronously
from the code that emits, and must return quickly.

Event names:
    - session_started: Inform about to be sent
    - session_ended: ACS closed the session with an empty response
    - fault_sent: CWMP fault returned to the ACS
    - connection_request: Connection request received from the ACS
    - report_sent: Bulk-data report delivered to a collector
    - report_failed: Bulk-data report delivery failed

Example:
    >>> from cpelink.simulator.event_emitter import EventEmitter
    >>> events = EventEmitter()
    >>> token = events.subscribe("report_failed", lambda d: print(d["reason"]))
    >>> events.emit("report_failed", {"profile": 1, "reason": "timed out"})
"""

import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

EVENT_SESSION_STARTED = "session_started"
EVENT_SESSION_ENDED = "session_ended"
EVENT_FAULT_SENT = "fault_sent"
EVENT_CONNECTION_REQUEST = "connection_request"
EVENT_REPORT_SENT = "report_sent"
EVENT_REPORT_FAILED = "report_failed"

# Listeners registered under this name see every event
ANY_EVENT = "*"

Listener = Callable[[Dict[str, Any]], None]


@dataclass
class Event:
    """An emitted event as kept in the recent-events buffer.

    Attributes:
        event_type: Event name.
        data: Payload passed to emit().
        timestamp: Emission time (UTC).
    """

    event_type: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def payload(self) -> Dict[str, Any]:
        """Flat dictionary handed to listeners."""
        return {"event_type": self.event_type, "timestamp": self.timestamp.isoformat(), **self.data}


class EventEmitter:
    """Synchronous publish/subscribe hub.

    A listener that raises is logged and skipped so a broken observer can
    never abort a CWMP session or a report delivery.

    Example:
        >>> events = EventEmitter(history_size=100)
        >>> token = events.subscribe("*", print)
        >>> events.emit("session_started", {"event": "1 BOOT"})
        >>> events.unsubscribe(token)
    """

    def __init__(self, history_size: int = 0) -> None:
        """Initialize the emitter.

        Args:
            history_size: How many recent events to keep for recent(); 0 keeps none.
        """
        self._listeners: Dict[str, Dict[int, Listener]] = {}
        self._tokens = itertools.count(1)
        self.history: Deque[Event] = deque(maxlen=history_size or None)
        self.history_size = history_size

    def subscribe(self, event_type: str, listener: Listener) -> int:
        """Register a listener for one event name, or ``*`` for all.

        Returns:
            Token to pass to unsubscribe().
        """
        token = next(self._tokens)
        self._listeners.setdefault(event_type, {})[token] = listener
        logger.debug(f"Listener {token} subscribed to {event_type}")
        return token

    def unsubscribe(self, token: int) -> bool:
        """Remove a listener; False if the token is unknown."""
        for listeners in self._listeners.values():
            if listeners.pop(token, None) is not None:
                return True
        return False

    def listener_count(self, event_type: Optional[str] = None) -> int:
        """Count listeners for one event name, or all of them."""
        if event_type is not None:
            return len(self._listeners.get(event_type, {}))
        return sum(len(listeners) for listeners in self._listeners.values())

    def emit(self, event_type: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Publish an event to its listeners and the ``*`` listeners."""
        event = Event(event_type, dict(data or {}))
        if self.history_size:
            self.history.append(event)

        payload = event.payload()
        targets = list(self._listeners.get(event_type, {}).items())
        targets += list(self._listeners.get(ANY_EVENT, {}).items())
        for token, listener in targets:
            try:
                listener(payload)
            except Exception:
                logger.exception(f"Listener {token} failed on {event_type}")

    def recent(self, event_type: str) -> List[Event]:
        """Buffered events with the given name, oldest first."""
        return [e for e in self.history if e.event_type == event_type]
