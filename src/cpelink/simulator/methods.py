"""CWMP RPC method implementations.

This module provides the MethodDispatcher used by the session engine: it
builds the Inform that opens every session, answers ACS-initiated RPCs by
local name, and queues CPE-initiated requests to be sent before the CPE
signals that it is ready for server RPCs.

Handlers take ``(device_model, request_element)`` and return the response
body element. Protocol-level problems are raised as CwmpFault and turned
into a SOAP Fault by the session engine.

Supported RPCs:
    GetRPCMethods, GetParameterNames, GetParameterValues, SetParameterValues,
    AddObject, DeleteObject, Reboot, FactoryReset
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, List, Optional, Tuple

from lxml import etree

from cpelink.datamodel import (
    DeviceModel,
    ParameterNotFoundError,
    ParameterNotWritableError,
    create_instance,
)

from . import codec
from .models import PendingRequest

logger = logging.getLogger(__name__)


# =============================================================================
# CWMP Fault Codes
# =============================================================================

METHOD_NOT_SUPPORTED = 9000
REQUEST_DENIED = 9001
INTERNAL_ERROR = 9002
INVALID_ARGUMENTS = 9003
INVALID_PARAMETER_NAME = 9005
INVALID_PARAMETER_TYPE = 9006
INVALID_PARAMETER_VALUE = 9007
NON_WRITABLE_PARAMETER = 9008

# Event codes
EVENT_BOOTSTRAP = "0 BOOTSTRAP"
EVENT_BOOT = "1 BOOT"
EVENT_PERIODIC = "2 PERIODIC"
EVENT_CONNECTION_REQUEST = "6 CONNECTION REQUEST"
EVENT_M_REBOOT = "M Reboot"

# Parameters reported in every Inform, relative to the data-model root
INFORM_PARAMETERS = [
    "DeviceSummary",
    "DeviceInfo.SpecVersion",
    "DeviceInfo.HardwareVersion",
    "DeviceInfo.SoftwareVersion",
    "DeviceInfo.ProvisioningCode",
    "ManagementServer.ParameterKey",
    "ManagementServer.ConnectionRequestURL",
    "WANDevice.1.WANConnectionDevice.1.WANIPConnection.1.ExternalIPAddress",
]

# Bookkeeping roots that are not part of the TR-069 tree
HIDDEN_ROOTS = frozenset(
    ["DeviceID", "Downloads", "Tags", "Events", "Reboot", "FactoryReset", "VirtualParameters"]
)

# DeviceId field -> DeviceInfo parameter
DEVICE_ID_FIELDS = [
    ("Manufacturer", "Manufacturer"),
    ("OUI", "ManufacturerOUI"),
    ("ProductClass", "ProductClass"),
    ("SerialNumber", "SerialNumber"),
]


class CwmpFault(Exception):
    """CWMP protocol fault to be returned to the ACS.

    Attributes:
        code: CWMP fault code.
        message: Fault string.
    """

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"CWMP fault {code}: {message}")


Handler = Callable[[DeviceModel, etree._Element], etree._Element]


def data_model_root(model: DeviceModel) -> str:
    """Get the data-model root object name (``Device`` or ``InternetGatewayDevice``)."""
    if model.first_existing("Device.DeviceInfo.SerialNumber", "Device.ManagementServer.URL"):
        return "Device"
    return "InternetGatewayDevice"


def _array(parent: etree._Element, name: str, item_type: str, count: int) -> etree._Element:
    return codec.sub_element(
        parent, name, **{codec.qname("soap-enc", "arrayType"): f"{item_type}[{count}]"}
    )


def _parameter_value_list(
    parent: etree._Element, model: DeviceModel, paths: List[str]
) -> etree._Element:
    plist = _array(parent, "ParameterList", "cwmp:ParameterValueStruct", len(paths))
    for path in paths:
        record = model[path]
        struct = codec.sub_element(plist, "ParameterValueStruct")
        codec.sub_element(struct, "Name", path)
        codec.sub_element(
            struct,
            "Value",
            record.value,
            **{codec.qname("xsi", "type"): record.type or "xsd:string"},
        )
    return plist


def _is_true(text: str) -> bool:
    return text.strip().lower() in ("1", "true")


def visible_paths(model: DeviceModel, prefix: str = "") -> List[str]:
    """Sorted data-model paths under a prefix, without bookkeeping roots."""
    return [p for p in model.paths(prefix) if p.split(".", 1)[0] not in HIDDEN_ROOTS]


class MethodDispatcher:
    """Table of CWMP RPC handlers keyed by RPC name.

    Example:
        >>> dispatcher = MethodDispatcher()
        >>> body = dispatcher.inform(model, "1 BOOT")
        >>> handler = dispatcher.get_handler("GetParameterValues")
        >>> response = handler(model, request_element)
    """

    def __init__(self) -> None:
        self._pending: Deque[PendingRequest] = deque()
        self._queued_events: List[Tuple[str, str]] = []
        self.handlers: Dict[str, Handler] = {
            "GetRPCMethods": self.get_rpc_methods,
            "GetParameterNames": self.get_parameter_names,
            "GetParameterValues": self.get_parameter_values,
            "SetParameterValues": self.set_parameter_values,
            "AddObject": self.add_object,
            "DeleteObject": self.delete_object,
            "Reboot": self.reboot,
            "FactoryReset": self.factory_reset,
        }

    # -------------------------------------------------------------------------
    # Session engine contract
    # -------------------------------------------------------------------------

    def get_handler(self, name: str) -> Optional[Handler]:
        """Look up the handler for an RPC local name."""
        return self.handlers.get(name)

    def get_pending(self) -> Optional[PendingRequest]:
        """Pop the next CPE-initiated request, or None when there is none."""
        return self._pending.popleft() if self._pending else None

    def queue_request(self, request: PendingRequest) -> None:
        """Queue a CPE-initiated request for the current or next session."""
        self._pending.append(request)

    @property
    def boot_pending(self) -> bool:
        """Whether a simulated reboot is waiting to be reported."""
        return any(code == EVENT_BOOT for code, _ in self._queued_events)

    def inform(self, model: DeviceModel, event: Optional[str] = None) -> etree._Element:
        """Build the Inform RPC body.

        Args:
            model: Device model.
            event: Event code that triggered the session (default "2 PERIODIC").

        Returns:
            ``cwmp:Inform`` element.
        """
        root = data_model_root(model)

        events: List[Tuple[str, str]] = []
        for code, key in self._queued_events + [(event or EVENT_PERIODIC, "")]:
            if code not in (c for c, _ in events):
                events.append((code, key))
        self._queued_events = []

        inform = codec.cwmp_element("Inform")

        device_id = codec.sub_element(inform, "DeviceId")
        for field_name, parameter in DEVICE_ID_FIELDS:
            path = model.first_existing(
                f"DeviceID.{field_name}", f"{root}.DeviceInfo.{parameter}"
            )
            codec.sub_element(device_id, field_name, model.get_value(path, "") if path else "")

        event_list = _array(inform, "Event", "cwmp:EventStruct", len(events))
        for code, key in events:
            struct = codec.sub_element(event_list, "EventStruct")
            codec.sub_element(struct, "EventCode", code)
            codec.sub_element(struct, "CommandKey", key)

        codec.sub_element(inform, "MaxEnvelopes", "1")
        codec.sub_element(
            inform, "CurrentTime", datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        )
        codec.sub_element(inform, "RetryCount", "0")

        paths = [f"{root}.{p}" for p in INFORM_PARAMETERS if f"{root}.{p}" in model]
        _parameter_value_list(inform, model, paths)

        logger.debug(f"Inform events: {', '.join(c for c, _ in events)}")
        return inform

    # -------------------------------------------------------------------------
    # RPC handlers
    # -------------------------------------------------------------------------

    def get_rpc_methods(self, model: DeviceModel, request: etree._Element) -> etree._Element:
        """GetRPCMethods: list the supported RPC names."""
        response = codec.cwmp_element("GetRPCMethodsResponse")
        names = sorted(self.handlers)
        method_list = _array(response, "MethodList", "xsd:string", len(names))
        for name in names:
            codec.sub_element(method_list, "string", name)
        return response

    def get_parameter_names(self, model: DeviceModel, request: etree._Element) -> etree._Element:
        """GetParameterNames: list names below a path, optionally one level only."""
        path = codec.child_text(request, "ParameterPath")
        next_level = _is_true(codec.child_text(request, "NextLevel", "0"))

        if path and not path.endswith("."):
            if path not in model:
                raise CwmpFault(INVALID_PARAMETER_NAME, f"Invalid parameter name: {path}")
            if next_level:
                raise CwmpFault(INVALID_ARGUMENTS, "NextLevel is not allowed for a parameter")
            names = [path]
        else:
            names = visible_paths(model, path)
            if path and not names:
                raise CwmpFault(INVALID_PARAMETER_NAME, f"Invalid parameter name: {path}")
            if next_level:
                names = [p for p in names if self._is_next_level(path, p)]

        response = codec.cwmp_element("GetParameterNamesResponse")
        plist = _array(response, "ParameterList", "cwmp:ParameterInfoStruct", len(names))
        for name in names:
            struct = codec.sub_element(plist, "ParameterInfoStruct")
            codec.sub_element(struct, "Name", name)
            codec.sub_element(struct, "Writable", "1" if model[name].writable else "0")
        return response

    @staticmethod
    def _is_next_level(prefix: str, path: str) -> bool:
        rest = path[len(prefix):]
        return bool(rest) and "." not in rest.rstrip(".")

    def get_parameter_values(self, model: DeviceModel, request: etree._Element) -> etree._Element:
        """GetParameterValues: read leaves by exact name or by object prefix."""
        names_element = codec.find_child(request, "ParameterNames")
        requested = (
            [e.text or "" for e in codec.iter_children(names_element)]
            if names_element is not None
            else []
        )

        paths: List[str] = []
        for name in requested:
            if name == "" or name.endswith("."):
                leaves = [p for p in visible_paths(model, name) if not model[p].is_object]
                if name and not visible_paths(model, name):
                    raise CwmpFault(INVALID_PARAMETER_NAME, f"Invalid parameter name: {name}")
                paths.extend(leaves)
            else:
                record = model.get(name)
                if record is None or record.is_object:
                    raise CwmpFault(INVALID_PARAMETER_NAME, f"Invalid parameter name: {name}")
                paths.append(name)

        response = codec.cwmp_element("GetParameterValuesResponse")
        _parameter_value_list(response, model, paths)
        return response

    def set_parameter_values(self, model: DeviceModel, request: etree._Element) -> etree._Element:
        """SetParameterValues: write all values or none."""
        plist = codec.find_child(request, "ParameterList")
        updates: List[Tuple[str, str]] = []
        if plist is not None:
            for struct in codec.iter_children(plist, "ParameterValueStruct"):
                updates.append(
                    (codec.child_text(struct, "Name"), codec.child_text(struct, "Value"))
                )

        # Validate everything before applying anything
        for name, _ in updates:
            record = model.get(name)
            if record is None or record.is_object:
                raise CwmpFault(INVALID_PARAMETER_NAME, f"Invalid parameter name: {name}")
            if not record.writable:
                raise CwmpFault(NON_WRITABLE_PARAMETER, f"Parameter is not writable: {name}")

        for name, value in updates:
            try:
                model.set_value(name, value)
            except ParameterNotWritableError as e:
                raise CwmpFault(NON_WRITABLE_PARAMETER, str(e)) from e

        self._update_parameter_key(model, codec.child_text(request, "ParameterKey"))
        logger.info(f"SetParameterValues: {len(updates)} parameter(s) updated")

        response = codec.cwmp_element("SetParameterValuesResponse")
        codec.sub_element(response, "Status", "0")
        return response

    def add_object(self, model: DeviceModel, request: etree._Element) -> etree._Element:
        """AddObject: create a new instance under a multi-instance table."""
        table = codec.child_text(request, "ObjectName")
        if not table.endswith(".") or not model.paths(table):
            raise CwmpFault(INVALID_PARAMETER_NAME, f"Invalid object name: {table}")

        number = create_instance(model, table)
        self._update_parameter_key(model, codec.child_text(request, "ParameterKey"))
        logger.info(f"AddObject: created {table}{number}.")

        response = codec.cwmp_element("AddObjectResponse")
        codec.sub_element(response, "InstanceNumber", str(number))
        codec.sub_element(response, "Status", "0")
        return response

    def delete_object(self, model: DeviceModel, request: etree._Element) -> etree._Element:
        """DeleteObject: remove an instance and its subtree."""
        name = codec.child_text(request, "ObjectName")
        if not name.endswith("."):
            raise CwmpFault(INVALID_PARAMETER_NAME, f"Invalid object name: {name}")
        try:
            model.delete_object(name)
        except ParameterNotFoundError as e:
            raise CwmpFault(INVALID_PARAMETER_NAME, str(e)) from e

        self._update_parameter_key(model, codec.child_text(request, "ParameterKey"))
        logger.info(f"DeleteObject: removed {name}")

        response = codec.cwmp_element("DeleteObjectResponse")
        codec.sub_element(response, "Status", "0")
        return response

    def reboot(self, model: DeviceModel, request: etree._Element) -> etree._Element:
        """Reboot: report BOOT and M Reboot in the next Inform."""
        command_key = codec.child_text(request, "CommandKey")
        self._queued_events.extend([(EVENT_M_REBOOT, command_key), (EVENT_BOOT, "")])
        logger.info("Reboot requested by ACS")
        return codec.cwmp_element("RebootResponse")

    def factory_reset(self, model: DeviceModel, request: etree._Element) -> etree._Element:
        """FactoryReset: restore the start-up data model and re-bootstrap."""
        if not model.reset_to_factory():
            raise CwmpFault(REQUEST_DENIED, "No factory defaults available")
        self._queued_events.extend([(EVENT_BOOTSTRAP, ""), (EVENT_BOOT, "")])
        logger.info("Factory reset requested by ACS")
        return codec.cwmp_element("FactoryResetResponse")

    @staticmethod
    def _update_parameter_key(model: DeviceModel, key: str) -> None:
        path = model.first_existing(
            "Device.ManagementServer.ParameterKey",
            "InternetGatewayDevice.ManagementServer.ParameterKey",
        )
        if path:
            model.update_value(path, key)
