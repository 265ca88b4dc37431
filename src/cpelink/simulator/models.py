"""Simulator models and data structures.

This module defines dataclasses and enums for the CPE simulator, including
session state tracking, session results and simulator statistics.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from lxml import etree


# =============================================================================
# Enums
# =============================================================================


class SessionState(Enum):
    """CWMP session states.

    States:
        IDLE: No session running and no timer armed yet.
        INFORM_SENT: Inform sent, waiting for InformResponse.
        EXCHANGE_LOOP: Session open, exchanging RPCs with the ACS.
        SCHEDULED: Session ended, next Inform timer armed.
    """

    IDLE = "idle"
    INFORM_SENT = "inform_sent"
    EXCHANGE_LOOP = "exchange_loop"
    SCHEDULED = "scheduled"


# =============================================================================
# Dataclasses
# =============================================================================


@dataclass
class PendingRequest:
    """A CPE-initiated request waiting to be sent during a session.

    Attributes:
        method: RPC name, for logging.
        build: Produces the RPC body element.
        on_response: Continuation receiving the decoded ACS reply (or None).

    Example:
        >>> request = PendingRequest(
        ...     method="TransferComplete",
        ...     build=lambda: transfer_complete_body(),
        ...     on_response=lambda envelope: None,
        ... )
    """

    method: str
    build: Callable[[], etree._Element]
    on_response: Optional[Callable[[Optional[etree._Element]], None]] = None


@dataclass
class SessionResult:
    """Result of a completed CWMP session.

    Attributes:
        session_id: Local session identifier.
        event: Event code the session was opened with.
        duration_seconds: Total session duration in seconds.
        exchange_count: Number of HTTP exchanges in the session.
        rpc_count: Number of ACS RPCs answered.
        fault_count: Number of CWMP faults sent.
        next_inform_delay: Delay armed for the next Inform in seconds.
    """

    session_id: str
    event: Optional[str] = None
    duration_seconds: float = 0.0
    exchange_count: int = 0
    rpc_count: int = 0
    fault_count: int = 0
    next_inform_delay: float = 0.0
    methods: List[str] = field(default_factory=list)

    def get_summary(self) -> Dict[str, Any]:
        """Get session summary for logging/reporting.

        Returns:
            Dictionary containing session summary information.
        """
        return {
            "session_id": self.session_id,
            "event": self.event,
            "duration_seconds": self.duration_seconds,
            "exchange_count": self.exchange_count,
            "rpc_count": self.rpc_count,
            "fault_count": self.fault_count,
            "next_inform_delay": self.next_inform_delay,
            "methods": list(self.methods),
        }


@dataclass
class SimulatorStats:
    """Simulator statistics.

    Attributes:
        sessions_started: Sessions opened with an Inform.
        sessions_completed: Sessions ended by an empty ACS response.
        total_exchanges: HTTP exchanges with the ACS.
        rpcs_handled: ACS RPCs answered by a handler.
        faults_sent: CWMP faults sent to the ACS.
        connection_requests: Connection requests received.
        reports_sent: Bulk-data reports delivered.
        reports_failed: Bulk-data reports that failed to deliver.
        avg_session_duration_ms: Average session duration.
        last_session_at: Time the last session ended.

    Example:
        >>> stats = SimulatorStats()
        >>> stats.record_session_duration(120.0)
    """

    # Session stats
    sessions_started: int = 0
    sessions_completed: int = 0
    total_exchanges: int = 0
    rpcs_handled: int = 0
    faults_sent: int = 0
    connection_requests: int = 0

    # Bulk data stats
    reports_sent: int = 0
    reports_failed: int = 0
    report_errors: Dict[str, int] = field(default_factory=dict)

    # Timing stats
    avg_session_duration_ms: float = 0.0
    last_session_at: Optional[datetime] = None

    # Running totals for the average
    _duration_total_ms: float = field(default=0.0, repr=False)
    _duration_count: int = field(default=0, repr=False)

    def record_session_duration(self, duration_ms: float) -> None:
        """Record a session duration for averaging.

        Args:
            duration_ms: Session duration in milliseconds.
        """
        self._duration_total_ms += duration_ms
        self._duration_count += 1
        self.avg_session_duration_ms = self._duration_total_ms / self._duration_count
        self.last_session_at = datetime.now(timezone.utc)

    def record_report_error(self, error_type: str) -> None:
        """Record a failed bulk-data delivery.

        Args:
            error_type: Type of error that occurred.
        """
        self.reports_failed += 1
        self.report_errors[error_type] = self.report_errors.get(error_type, 0) + 1
