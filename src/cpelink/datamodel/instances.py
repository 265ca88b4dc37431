"""Multi-instance object creation.

A new instance of a table copies the structure of the existing instances,
not their content: every leaf found under any existing instance is created
under the new one with a default value chosen by its XSD type.
"""

import logging
from typing import Dict, Optional

from .store import DeviceModel, ParameterRecord

logger = logging.getLogger(__name__)

# Default value per XSD type for leaves of a freshly created instance
DEFAULT_VALUES: Dict[str, str] = {
    "xsd:boolean": "false",
    "xsd:int": "0",
    "xsd:unsignedInt": "0",
    "xsd:dateTime": "0001-01-01T00:00:00Z",
}


def default_value(type_name: Optional[str]) -> str:
    """Get the default value for an XSD type (empty string if unknown)."""
    return DEFAULT_VALUES.get(type_name or "", "")


def create_instance(model: DeviceModel, table: str, number: Optional[int] = None) -> int:
    """Create a new instance under a multi-instance table.

    Args:
        model: Device model to modify.
        table: Table path ending with a dot, e.g.
            ``InternetGatewayDevice.LANDevice.1.Hosts.Host.``.
        number: Instance number, defaults to highest existing + 1.

    Returns:
        The new instance number.

    Example:
        >>> create_instance(model, "InternetGatewayDevice.LANDevice.1.Hosts.Host.")
        3
    """
    existing = model.instances(table)
    if number is None:
        number = existing[-1] + 1 if existing else 1

    new_prefix = f"{table}{number}."
    model.put(new_prefix, ParameterRecord(writable=True))

    created = 0
    for path in model.paths(table):
        rest = path[len(table):]
        instance, dot, suffix = rest.partition(".")
        if not dot or not suffix or not instance.isdigit() or int(instance) == number:
            continue
        target = new_prefix + suffix
        if target in model:
            continue
        source = model[path]
        model.put(
            target,
            ParameterRecord(
                writable=source.writable,
                value="" if source.is_object else default_value(source.type),
                type=source.type,
            ),
        )
        created += 1

    logger.debug(f"Created {new_prefix} with {created} parameters")
    return number
