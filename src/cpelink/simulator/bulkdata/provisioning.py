"""Demo-mode host provisioning.

With ``InternetGatewayDevice.DeviceInfo.DemoMode`` set, the device pretends
a phone joined the LAN: a third host entry is added to the host table the
first time the reporter runs.
"""

import logging
from typing import Dict, Optional, Tuple

from cpelink.datamodel import DeviceModel, ParameterRecord, create_instance

logger = logging.getLogger(__name__)

DEMO_MODE_PATH = "InternetGatewayDevice.DeviceInfo.DemoMode"
HOST_TABLE = "InternetGatewayDevice.LANDevice.1.Hosts.Host."
DEMO_HOST_INSTANCE = 3
DEMO_HOST_MARKER = f"{HOST_TABLE}{DEMO_HOST_INSTANCE}.HostName"

# Leaf -> (value, type) written on the new host
DEMO_HOST_VALUES: Dict[str, Tuple[str, str]] = {
    "Active": ("true", "xsd:boolean"),
    "AddressSource": ("DHCP", "xsd:string"),
    "HostName": ("iphone-887bf88d22e66acc", "xsd:string"),
    "IPAddress": ("192.168.1.99", "xsd:string"),
    "Layer2Interface": ("InternetGatewayDevice.LANDevice.3.WLANConfiguration.1", "xsd:string"),
    "LeaseTimeRemaining": ("900922", "xsd:string"),
    "MACAddress": ("40:50:4A:8B:4A:40", "xsd:string"),
}


def provision_demo_hosts(model: DeviceModel) -> Optional[int]:
    """Add the demo host when demo mode is on and it is not there yet.

    The host always goes to instance 3, the instance the marker checks, so
    the table gains at most one entry whatever numbering it already has. It
    copies every leaf found under the existing hosts with type defaults,
    then receives the sample values.

    Returns:
        The new instance number, or None if nothing was provisioned.
    """
    if model.get_value(DEMO_MODE_PATH) != "true":
        return None
    if DEMO_HOST_MARKER in model:
        return None

    number = create_instance(model, HOST_TABLE, DEMO_HOST_INSTANCE)
    prefix = f"{HOST_TABLE}{number}."
    for leaf, (value, type_name) in DEMO_HOST_VALUES.items():
        model.put(prefix + leaf, ParameterRecord(writable=True, value=value, type=type_name))

    logger.info(f"Demo mode: provisioned host {prefix}")
    return number
