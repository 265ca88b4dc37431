"""Log formatters carrying the CWMP session id.

The session engine binds the id of the session it is running to a context
variable; both formatters read it back so every record emitted during a
session, from any module, can be correlated with that session.

JSON output (one object per line)::

    {"timestamp": "2024-01-15T10:30:45.123456+00:00", "level": "INFO",
     "logger": "cpelink.simulator.session", "message": "Starting session (1 BOOT)",
     "session_id": "5f0c...", "serial_number": "CPE-SIM-0001"}

Text output::

    2024-01-15T10:30:45.123Z INFO     [cpelink.simulator.session] [session=5f0c1a2b] Session complete
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

current_session_id: ContextVar[Optional[str]] = ContextVar("current_session_id", default=None)

# Attributes every LogRecord has; anything else was passed via ``extra=``
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def bind_session(session_id: Optional[str]) -> None:
    """Attach a session id to log records of the current task."""
    current_session_id.set(session_id)


def _utc(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """Render records as single-line JSON objects.

    Static ``extra_fields`` (e.g. the serial number) are added to every
    entry, followed by any attributes passed through ``extra=`` on the
    logging call.
    """

    def __init__(
        self,
        include_session_context: bool = True,
        include_source_location: bool = False,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__()
        self.include_session_context = include_session_context
        self.include_source_location = include_source_location
        self.extra_fields: Dict[str, Any] = dict(extra_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _utc(record).isoformat(timespec="microseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = current_session_id.get() if self.include_session_context else None
        if session_id:
            entry["session_id"] = session_id

        if self.include_source_location:
            entry["source"] = {
                "file": record.filename,
                "function": record.funcName,
                "line": record.lineno,
            }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        entry.update(self.extra_fields)
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        )
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable single-line format with an optional session tag."""

    def __init__(
        self,
        include_session_context: bool = True,
        include_source_location: bool = False,
    ) -> None:
        super().__init__()
        self.include_session_context = include_session_context
        self.include_source_location = include_source_location

    def format(self, record: logging.LogRecord) -> str:
        stamp = _utc(record).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        line = f"{stamp} {record.levelname:<8} [{record.name}]"

        session_id = current_session_id.get() if self.include_session_context else None
        if session_id:
            line += f" [session={session_id[:8]}]"
        if self.include_source_location:
            line += f" [{record.filename}:{record.lineno}]"

        line += " " + record.getMessage()
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line
