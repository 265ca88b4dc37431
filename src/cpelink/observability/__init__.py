"""Observability package for the CPE simulator.

Provides log output configuration with CWMP session correlation.

Example:
    >>> from cpelink.observability.logging import LoggerManager, LoggingConfig
    >>> LoggerManager(LoggingConfig(format="json")).configure()
"""
