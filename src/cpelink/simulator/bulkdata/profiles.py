"""Bulk-data profile scanning.

Reads the enabled ``InternetGatewayDevice.BulkData.Profile.{i}`` entries and
their KPI parameter lists from the device model.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from cpelink.datamodel import DeviceModel, enumerate_contiguous

logger = logging.getLogger(__name__)

PROFILE_ROOT = "InternetGatewayDevice.BulkData.Profile."
DEFAULT_VALUE_FUNCTION = "stableVal(15)"


@dataclass
class KPIDescriptor:
    """One reported parameter of a profile.

    Attributes:
        name: Data-model path of the KPI.
        value_function: Expression computing the next value.
    """

    name: str
    value_function: str = DEFAULT_VALUE_FUNCTION


@dataclass
class BulkDataProfile:
    """An enabled bulk-data profile ready to report.

    Attributes:
        index: Profile instance number.
        url: Collector URL.
        username: Basic-auth username.
        password: Basic-auth password.
        kpis: Parameters to report.
    """

    index: int
    url: str
    username: str = ""
    password: str = ""
    kpis: List[KPIDescriptor] = field(default_factory=list)


def _is_enabled(value: str) -> bool:
    return value.strip().lower() in ("true", "1")


def scan_kpis(model: DeviceModel, index: int, max_parameters: int = 98) -> List[KPIDescriptor]:
    """Collect KPI descriptors of one profile until the first missing Name."""
    prefix = f"{PROFILE_ROOT}{index}.Parameter."
    kpis = []
    for param_index, record in enumerate_contiguous(
        model, prefix + "{}.Name", 1, max_parameters
    ):
        value_function = model.get_value(
            f"{prefix}{param_index}.ValueFunction", DEFAULT_VALUE_FUNCTION
        )
        kpis.append(KPIDescriptor(name=record.value, value_function=value_function))
    return kpis


def scan_profiles(
    model: DeviceModel, max_profiles: int = 5, max_parameters: int = 98
) -> List[BulkDataProfile]:
    """Find the enabled profiles that have parameters to report.

    Scanning stops at the first profile without an ``Enable`` parameter.
    Disabled profiles, profiles whose first parameter name is missing or
    empty, and profiles without a collector URL are skipped.

    Args:
        model: Device model to read.
        max_profiles: Highest profile instance probed.
        max_parameters: Highest parameter instance probed per profile.

    Returns:
        Profiles in instance order.
    """
    profiles = []
    for index, enable in enumerate_contiguous(
        model, PROFILE_ROOT + "{}.Enable", 1, max_profiles
    ):
        if not _is_enabled(enable.value):
            continue

        prefix = f"{PROFILE_ROOT}{index}."
        if not model.get_value(prefix + "Parameter.1.Name"):
            continue

        url = model.get_value(prefix + "HTTP.URL", "")
        if not url:
            logger.warning(f"Bulk data profile {index} has no HTTP.URL, skipping")
            continue

        kpis = scan_kpis(model, index, max_parameters)
        if not kpis:
            continue

        profiles.append(
            BulkDataProfile(
                index=index,
                url=url,
                username=model.get_value(prefix + "HTTP.Username", ""),
                password=model.get_value(prefix + "HTTP.Password", ""),
                kpis=kpis,
            )
        )
    return profiles
