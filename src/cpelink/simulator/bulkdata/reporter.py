"""Bulk-data reporter.

Periodically simulates KPI values for every enabled bulk-data profile and
POSTs a JSON report to the profile's collector, independently of the CWMP
session engine. Each profile is delivered by its own task so a slow or
failing collector never delays the others.

Report body::

    {"Report": [{"CollectionTime": 1700000000,
                 "DeviceID.ID": "<OUI>-<ProductClass>-<SerialNumber>",
                 "<kpi path>": "<value>", ...}]}
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Set
from urllib.parse import urlencode

import aiohttp

from cpelink.datamodel import DataModelError, DeviceModel

from ..config import BulkDataConfig
from ..event_emitter import EVENT_REPORT_FAILED, EVENT_REPORT_SENT, EventEmitter
from ..models import SimulatorStats
from .profiles import BulkDataProfile, scan_profiles
from .provisioning import provision_demo_hosts
from .value_functions import evaluate

logger = logging.getLogger(__name__)

DEVICE_INFO = "InternetGatewayDevice.DeviceInfo."


class BulkDataDeliveryError(Exception):
    """A report could not be delivered to its collector.

    Attributes:
        profile_index: Profile instance number.
        url: Collector URL the report was posted to.
    """

    def __init__(self, profile_index: int, url: str, reason: str):
        self.profile_index = profile_index
        self.url = url
        self.reason = reason
        super().__init__(f"Bulk data profile {profile_index} delivery to {url} failed: {reason}")


def device_identity(model: DeviceModel) -> Dict[str, str]:
    """Get OUI, product class and serial number from the IGD device info."""
    return {
        "oui": model.get_value(DEVICE_INFO + "ManufacturerOUI", ""),
        "pc": model.get_value(DEVICE_INFO + "ProductClass", ""),
        "sn": model.get_value(DEVICE_INFO + "SerialNumber", ""),
    }


def build_collector_url(url: str, model: DeviceModel) -> str:
    """Append the device identity query to a collector URL.

    Example:
        >>> build_collector_url("https://collector.example.com/bulk/", model)
        'https://collector.example.com/bulk?oui=00D09E&pc=IGD&sn=ABC123'
    """
    if url.endswith("/"):
        url = url[:-1]
    separator = "&" if "?" in url else "?"
    return url + separator + urlencode(device_identity(model))


class BulkDataReporter:
    """Periodic KPI simulator and collector client.

    Attributes:
        model: Device model shared with the session engine.
        config: Reporter configuration.

    Example:
        >>> reporter = BulkDataReporter(model, BulkDataConfig(interval=30.0))
        >>> reporter.start()
        >>> ...
        >>> await reporter.stop()
    """

    def __init__(
        self,
        model: DeviceModel,
        config: Optional[BulkDataConfig] = None,
        stats: Optional[SimulatorStats] = None,
        events: Optional[EventEmitter] = None,
    ):
        self.model = model
        self.config = config or BulkDataConfig()
        self.stats = stats or SimulatorStats()
        self.events = events or EventEmitter()

        self._task: Optional[asyncio.Task] = None
        self._deliveries: Set[asyncio.Task] = set()
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def is_running(self) -> bool:
        """Check if the periodic loop is running."""
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic loop in the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.ensure_future(self._run())
        logger.info(f"Bulk data reporter started (every {self.config.interval:.0f}s)")

    async def stop(self) -> None:
        """Stop the loop and cancel in-flight deliveries."""
        pending = [t for t in [self._task, *self._deliveries] if t is not None and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._task = None
        self._deliveries.clear()

        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.config.interval)
            try:
                self.tick()
            except DataModelError as e:
                logger.error(f"Bulk data tick failed: {e}")
            except Exception:
                logger.exception("Bulk data tick failed unexpectedly")

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Run one reporting round.

        Provisions the demo host if needed, then builds a report for every
        active profile and starts its delivery without waiting for it.

        Returns:
            Number of deliveries started.
        """
        provision_demo_hosts(self.model)

        started = 0
        for profile in scan_profiles(
            self.model, self.config.max_profiles, self.config.max_parameters
        ):
            report = self.build_report(profile)
            task = asyncio.ensure_future(self._deliver_and_record(profile, report))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)
            started += 1
        return started

    def build_report(self, profile: BulkDataProfile) -> Dict[str, Any]:
        """Simulate the next KPI values and build the report body.

        Each simulated value is written back to the model so the next round
        continues from it. KPIs whose path does not exist or whose value
        function is not recognised are left out.
        """
        identity = device_identity(self.model)
        entry: Dict[str, Any] = {
            "CollectionTime": int(time.time()),
            "DeviceID.ID": f"{identity['oui']}-{identity['pc']}-{identity['sn']}",
        }

        for kpi in profile.kpis:
            record = self.model.get(kpi.name)
            if record is None:
                logger.debug(f"Profile {profile.index}: KPI {kpi.name} not in model")
                continue
            value = evaluate(kpi.value_function, record.value)
            if value is None:
                continue
            self.model.update_value(kpi.name, value)
            entry[kpi.name] = value

        return {"Report": [entry]}

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def deliver(self, profile: BulkDataProfile, report: Dict[str, Any]) -> Any:
        """POST one report to the profile's collector.

        Returns:
            The decoded JSON response.

        Raises:
            BulkDataDeliveryError: On connection failure, timeout, non-2xx
                status or a response that is not JSON.
        """
        url = build_collector_url(profile.url, self.model)
        auth = aiohttp.BasicAuth(profile.username, profile.password)

        try:
            async with self._get_session().post(url, json=report, auth=auth) as response:
                if response.status // 100 != 2:
                    raise BulkDataDeliveryError(
                        profile.index, url, f"HTTP {response.status} {response.reason}"
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise BulkDataDeliveryError(profile.index, url, "timed out") from e
        except aiohttp.ClientError as e:
            raise BulkDataDeliveryError(profile.index, url, str(e)) from e
        except ValueError as e:
            raise BulkDataDeliveryError(profile.index, url, f"invalid JSON response: {e}") from e

    async def _deliver_and_record(self, profile: BulkDataProfile, report: Dict[str, Any]) -> None:
        try:
            await self.deliver(profile, report)
        except BulkDataDeliveryError as e:
            logger.warning(str(e))
            cause = e.__cause__
            self.stats.record_report_error(type(cause).__name__ if cause else "HTTPStatus")
            self.events.emit(
                EVENT_REPORT_FAILED,
                {"profile": profile.index, "url": e.url, "reason": e.reason},
            )
            return

        self.stats.reports_sent += 1
        self.events.emit(EVENT_REPORT_SENT, {"profile": profile.index})
        logger.debug(f"Bulk data profile {profile.index} delivered")
