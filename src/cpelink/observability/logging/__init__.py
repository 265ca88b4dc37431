"""Structured logging module for observability.

This module provides rich, text and structured JSON log output with CWMP
session correlation.
"""

from cpelink.observability.logging.manager import LOG_FORMATS, LoggerManager, LoggingConfig
from cpelink.observability.logging.structured import (
    StructuredFormatter,
    TextFormatter,
    bind_session,
    current_session_id,
)

__all__ = [
    "LoggerManager",
    "LoggingConfig",
    "LOG_FORMATS",
    "StructuredFormatter",
    "TextFormatter",
    "bind_session",
    "current_session_id",
]
