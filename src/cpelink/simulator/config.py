"""Simulator configuration dataclasses.

This module defines configuration dataclasses for the CPE simulator,
including the ACS connection, device identity, session timing and
bulk-data reporting options.
"""

from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlsplit

from .transport import DEFAULT_SOCKET_TIMEOUT

DEFAULT_ACS_URL = "http://127.0.0.1:7547/"


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class BulkDataConfig:
    """Bulk-data reporter configuration.

    Attributes:
        enabled: Whether the reporter runs at all.
        interval: Seconds between reporter ticks.
        max_profiles: Highest profile instance scanned.
        max_parameters: Highest parameter instance scanned per profile.
        request_timeout: Timeout for one collector POST in seconds.

    Example:
        >>> config = BulkDataConfig(interval=30.0)
    """

    enabled: bool = True
    interval: float = 10.0
    max_profiles: int = 5
    max_parameters: int = 98
    request_timeout: float = 2.0

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.interval <= 0:
            raise ValueError(f"Invalid bulk_data interval: {self.interval}")

        if self.max_profiles < 1:
            raise ValueError(f"max_profiles must be >= 1: {self.max_profiles}")

        if self.max_parameters < 1:
            raise ValueError(f"max_parameters must be >= 1: {self.max_parameters}")

        if self.request_timeout <= 0:
            raise ValueError(f"Invalid request_timeout: {self.request_timeout}")


@dataclass
class SimulatorConfig:
    """CPE simulator configuration.

    Attributes:
        acs_url: ACS URL the CPE posts to.
        serial_number: Serial number written into the data model at startup.
        data_model: Path to a data-model file, None for the packaged default.
        socket_timeout: Socket timeout for ACS exchanges in seconds.
        default_inform_interval: Idle delay used when the model has no
            PeriodicInformInterval.
        first_event: Event code of the first Inform.
        listen_for_connection_requests: Whether to start the listener.
        bulk_data: Bulk-data reporter configuration.

    Example:
        >>> config = SimulatorConfig(
        ...     acs_url="http://acs.example.com:7547/",
        ...     serial_number="ABC123456",
        ... )
    """

    # ACS connection
    acs_url: str = DEFAULT_ACS_URL
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT

    # Device identity
    serial_number: str = "CPE-SIM-0001"
    data_model: Optional[str] = None

    # Session behavior
    default_inform_interval: float = 10.0
    first_event: str = "1 BOOT"
    listen_for_connection_requests: bool = True

    # Bulk data
    bulk_data: BulkDataConfig = field(default_factory=BulkDataConfig)

    @property
    def acs_host(self) -> str:
        """Get ACS host name."""
        return urlsplit(self.acs_url).hostname or ""

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If configuration is invalid.
        """
        parts = urlsplit(self.acs_url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Invalid acs_url: {self.acs_url}")

        if not self.serial_number:
            raise ValueError("serial_number cannot be empty")

        if self.socket_timeout <= 0:
            raise ValueError(f"Invalid socket_timeout: {self.socket_timeout}")

        if self.default_inform_interval <= 0:
            raise ValueError(f"Invalid default_inform_interval: {self.default_inform_interval}")

        if not self.first_event:
            raise ValueError("first_event cannot be empty")

        # Validate nested configs
        self.bulk_data.validate()

    @classmethod
    def from_dict(cls, data: dict) -> "SimulatorConfig":
        """Create configuration from dictionary.

        Args:
            data: Configuration dictionary (from YAML file).

        Returns:
            SimulatorConfig instance.

        Example:
            >>> data = {"acs": {"url": "http://acs:7547/"}, "device": {"serial_number": "X1"}}
            >>> config = SimulatorConfig.from_dict(data)
        """
        data = dict(data or {})

        # Extract nested configurations
        acs_data = data.pop("acs", None) or {}
        device_data = data.pop("device", None) or {}
        session_data = data.pop("session", None) or {}
        bulk_data = data.pop("bulk_data", None) or {}

        # Merge nested sections into main config
        if acs_data:
            data["acs_url"] = acs_data.get("url", data.get("acs_url"))
            data["socket_timeout"] = acs_data.get("socket_timeout", data.get("socket_timeout"))

        if device_data:
            data["serial_number"] = device_data.get("serial_number", data.get("serial_number"))
            data["data_model"] = device_data.get("data_model", data.get("data_model"))

        if session_data:
            data["default_inform_interval"] = session_data.get(
                "default_inform_interval", data.get("default_inform_interval")
            )
            data["first_event"] = session_data.get("first_event", data.get("first_event"))
            data["listen_for_connection_requests"] = session_data.get(
                "listen_for_connection_requests", data.get("listen_for_connection_requests")
            )

        bulk_config = BulkDataConfig(**bulk_data) if bulk_data else BulkDataConfig()

        # Build main config (filter out None values)
        filtered_data = {k: v for k, v in data.items() if v is not None}
        return cls(bulk_data=bulk_config, **filtered_data)
