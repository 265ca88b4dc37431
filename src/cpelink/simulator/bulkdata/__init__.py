"""Bulk-data reporting package.

Simulates KPI values for the device's BulkData profiles and delivers JSON
reports to the configured collectors.

Example:
    >>> from cpelink.simulator.bulkdata import BulkDataReporter
    >>> reporter = BulkDataReporter(model)
    >>> reporter.start()
"""

from .profiles import BulkDataProfile, KPIDescriptor, scan_profiles
from .provisioning import DEMO_HOST_VALUES, provision_demo_hosts
from .reporter import (
    BulkDataDeliveryError,
    BulkDataReporter,
    build_collector_url,
    device_identity,
)
from .value_functions import (
    VALUE_FUNCTIONS,
    evaluate,
    increasing_val,
    random_val,
    stable_val,
)

__all__ = [
    # Reporter
    "BulkDataReporter",
    "BulkDataDeliveryError",
    "build_collector_url",
    "device_identity",
    # Profiles
    "BulkDataProfile",
    "KPIDescriptor",
    "scan_profiles",
    # Provisioning
    "provision_demo_hosts",
    "DEMO_HOST_VALUES",
    # Value functions
    "VALUE_FUNCTIONS",
    "evaluate",
    "stable_val",
    "random_val",
    "increasing_val",
]
