"""Logger manager for the simulator's log output.

This module provides a LoggerManager class that installs one handler on the
``cpelink`` logger, rendering records with rich, as plain text or as
structured JSON.
"""

import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from cpelink.observability.logging.structured import StructuredFormatter, TextFormatter

LOG_FORMATS = ("rich", "text", "json")

ROOT_LOGGER_NAME = "cpelink"


@dataclass
class LoggingConfig:
    """Configuration for simulator logging."""

    level: str = "INFO"
    format: str = "rich"  # or "text", "json"
    session_correlation: bool = True
    output_file: Optional[str] = None

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.format not in LOG_FORMATS:
            raise ValueError(f"Invalid log format: {self.format}")
        if self.format == "rich" and self.output_file:
            raise ValueError("The rich log format writes to the console only")

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create configuration from environment variables."""
        return cls(
            level=os.getenv("CPELINK_LOG_LEVEL", "INFO").upper(),
            format=os.getenv("CPELINK_LOG_FORMAT", "rich").lower(),
            session_correlation=os.getenv("CPELINK_LOG_SESSION_CORRELATION", "true").lower()
            == "true",
            output_file=os.getenv("CPELINK_LOG_FILE"),
        )


class LoggerManager:
    """Installs and removes the simulator's log handler.

    Example:
        >>> manager = LoggerManager(LoggingConfig(level="DEBUG", format="json"))
        >>> manager.configure(extra_fields={"serial_number": "CPE-SIM-0001"})
        >>> ...
        >>> manager.shutdown()
    """

    def __init__(self, config: LoggingConfig, console: Optional[Console] = None) -> None:
        config.validate()
        self.config = config
        self.console = console
        self._handler: Optional[logging.Handler] = None
        self._formatter: Optional[logging.Formatter] = None

    @property
    def is_configured(self) -> bool:
        """Check if the handler is installed."""
        return self._handler is not None

    def configure(self, extra_fields: Optional[Dict[str, Any]] = None) -> logging.Handler:
        """Install the handler on the ``cpelink`` logger.

        Args:
            extra_fields: Static fields added to every JSON entry.

        Returns:
            The installed handler.
        """
        if self._handler is not None:
            return self._handler

        if self.config.format == "rich":
            handler: logging.Handler = RichHandler(
                console=self.console or Console(stderr=True), rich_tracebacks=True
            )
            self._formatter = logging.Formatter("%(message)s", datefmt="[%X]")
        else:
            if self.config.output_file:
                handler = logging.FileHandler(self.config.output_file)
            else:
                handler = logging.StreamHandler(sys.stderr)
            if self.config.format == "json":
                self._formatter = StructuredFormatter(
                    include_session_context=self.config.session_correlation,
                    extra_fields=extra_fields,
                )
            else:
                self._formatter = TextFormatter(
                    include_session_context=self.config.session_correlation,
                )

        handler.setFormatter(self._formatter)

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(getattr(logging, self.config.level.upper(), logging.INFO))
        root_logger.addHandler(handler)

        # Prevent propagation to Python's root logger
        root_logger.propagate = False

        self._handler = handler
        return handler

    def add_extra_field(self, key: str, value: Any) -> None:
        """Add a static field to all JSON log entries."""
        if isinstance(self._formatter, StructuredFormatter):
            self._formatter.extra_fields[key] = value

    def shutdown(self) -> None:
        """Remove and close the handler."""
        if self._handler is None:
            return
        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.removeHandler(self._handler)
        root_logger.propagate = True
        self._handler.close()
        self._handler = None
