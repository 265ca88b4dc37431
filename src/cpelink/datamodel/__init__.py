"""Device data model package.

Provides the path-keyed parameter store used by the CPE simulator.

Example:
    >>> from cpelink.datamodel import load_device_model
    >>> model = load_device_model("igd_default.yaml")
    >>> model.get_value("InternetGatewayDevice.DeviceInfo.SerialNumber")
"""

from .enumeration import enumerate_contiguous
from .instances import DEFAULT_VALUES, create_instance, default_value
from .store import (
    DataModelError,
    DeviceModel,
    ParameterNotFoundError,
    ParameterNotWritableError,
    ParameterRecord,
    load_device_model,
)

__all__ = [
    "DeviceModel",
    "ParameterRecord",
    "load_device_model",
    "enumerate_contiguous",
    "create_instance",
    "default_value",
    "DEFAULT_VALUES",
    # Exceptions
    "DataModelError",
    "ParameterNotFoundError",
    "ParameterNotWritableError",
]
