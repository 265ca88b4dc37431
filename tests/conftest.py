"""
Pytest configuration and fixtures for cpelink tests.

This module provides shared fixtures for testing cpelink components,
including a small IGD data model and an in-memory ACS transport.
"""

from typing import List, Optional, Union

import pytest
from lxml import etree

from cpelink.datamodel import DeviceModel
from cpelink.simulator import codec
from cpelink.simulator.transport import Transport


# ============================================================================
# Data Model
# ============================================================================

IGD_PARAMETERS = {
    "DeviceID.Manufacturer": [False, "cpelink", "xsd:string"],
    "DeviceID.OUI": [False, "00D09E", "xsd:string"],
    "DeviceID.ProductClass": [False, "IGD", "xsd:string"],
    "DeviceID.SerialNumber": [False, "SN0001", "xsd:string"],
    "InternetGatewayDevice.": [False],
    "InternetGatewayDevice.DeviceSummary": [False, "InternetGatewayDevice:1.4[]", "xsd:string"],
    "InternetGatewayDevice.DeviceInfo.": [False],
    "InternetGatewayDevice.DeviceInfo.Manufacturer": [False, "cpelink", "xsd:string"],
    "InternetGatewayDevice.DeviceInfo.ManufacturerOUI": [False, "00D09E", "xsd:string"],
    "InternetGatewayDevice.DeviceInfo.ProductClass": [False, "IGD", "xsd:string"],
    "InternetGatewayDevice.DeviceInfo.SerialNumber": [False, "SN0001", "xsd:string"],
    "InternetGatewayDevice.DeviceInfo.SoftwareVersion": [False, "2.4.1", "xsd:string"],
    "InternetGatewayDevice.DeviceInfo.DemoMode": [True, "false", "xsd:string"],
    "InternetGatewayDevice.ManagementServer.": [False],
    "InternetGatewayDevice.ManagementServer.URL": [True, "http://acs.test:7547/", "xsd:string"],
    "InternetGatewayDevice.ManagementServer.Username": [True, "cpe", "xsd:string"],
    "InternetGatewayDevice.ManagementServer.Password": [True, "secret", "xsd:string"],
    "InternetGatewayDevice.ManagementServer.ParameterKey": [False, "", "xsd:string"],
    "InternetGatewayDevice.ManagementServer.ConnectionRequestURL": [False, "", "xsd:string"],
    "InternetGatewayDevice.LANDevice.": [False],
    "InternetGatewayDevice.LANDevice.1.": [False],
    "InternetGatewayDevice.LANDevice.1.Hosts.": [False],
    "InternetGatewayDevice.LANDevice.1.Hosts.Host.": [False],
    "InternetGatewayDevice.LANDevice.1.Hosts.Host.1.": [False],
    "InternetGatewayDevice.LANDevice.1.Hosts.Host.1.Active": [False, "true", "xsd:boolean"],
    "InternetGatewayDevice.LANDevice.1.Hosts.Host.1.HostName": [False, "laptop", "xsd:string"],
    "InternetGatewayDevice.LANDevice.1.Hosts.Host.1.LeaseTimeRemaining": [False, "3600", "xsd:int"],
    "InternetGatewayDevice.LANDevice.1.Hosts.Host.2.": [False],
    "InternetGatewayDevice.LANDevice.1.Hosts.Host.2.Active": [False, "true", "xsd:boolean"],
    "InternetGatewayDevice.LANDevice.1.Hosts.Host.2.HostName": [False, "tv", "xsd:string"],
    "InternetGatewayDevice.LANDevice.1.Hosts.Host.2.MACAddress": [False, "00:11:22:33:44:66", "xsd:string"],
}


@pytest.fixture
def igd_model() -> DeviceModel:
    """Small InternetGatewayDevice model without a PeriodicInformInterval."""
    return DeviceModel(IGD_PARAMETERS)


# ============================================================================
# ACS Messages
# ============================================================================


def acs_request(request_id: str, rpc_xml: str) -> etree._Element:
    """Build a parsed ACS envelope carrying one RPC.

    Args:
        request_id: cwmp:ID header value.
        rpc_xml: RPC element using the ``cwmp`` prefix.
    """
    xml = (
        '<soap-env:Envelope'
        ' xmlns:soap-env="http://schemas.xmlsoap.org/soap/envelope/"'
        ' xmlns:soap-enc="http://schemas.xmlsoap.org/soap/encoding/"'
        ' xmlns:xsd="http://www.w3.org/2001/XMLSchema"'
        ' xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"'
        ' xmlns:cwmp="urn:dslforum-org:cwmp-1-0">'
        '<soap-env:Header>'
        f'<cwmp:ID soap-env:mustUnderstand="1">{request_id}</cwmp:ID>'
        '</soap-env:Header>'
        f'<soap-env:Body>{rpc_xml}</soap-env:Body>'
        '</soap-env:Envelope>'
    )
    return codec.parse(xml.encode("utf-8"))


def inform_response() -> etree._Element:
    """ACS reply to an Inform."""
    return acs_request("inform-1", "<cwmp:InformResponse><MaxEnvelopes>1</MaxEnvelopes></cwmp:InformResponse>")


def rpc_request(xml: str) -> etree._Element:
    """Parse a standalone RPC element for calling a handler directly."""
    wrapped = acs_request("rpc-1", xml)
    _, body = codec.split_envelope(wrapped)
    return codec.find_rpc_element(body)


# ============================================================================
# Transport
# ============================================================================


Reply = Union[None, etree._Element, Exception]


class FakeTransport(Transport):
    """In-memory ACS transport replaying scripted replies.

    Each send() records the outgoing XML (None for an empty POST) and returns
    the next scripted reply; an Exception reply is raised instead. Once the
    script is exhausted every send returns None (empty response).
    """

    def __init__(self, replies: Optional[List[Reply]] = None):
        self.replies: List[Reply] = list(replies or [])
        self.sent: List[Optional[str]] = []
        self.closed = False

    async def send(self, xml: Optional[str]) -> Optional[etree._Element]:
        self.sent.append(xml)
        if not self.replies:
            return None
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self) -> None:
        self.closed = True

    def sent_envelopes(self) -> List[Optional[etree._Element]]:
        """Parse everything sent so far."""
        return [codec.parse(x.encode("utf-8")) if x else None for x in self.sent]

    def sent_rpc_names(self) -> List[Optional[str]]:
        """Local names of the body elements sent so far (None for empty POSTs)."""
        names = []
        for envelope in self.sent_envelopes():
            if envelope is None:
                names.append(None)
                continue
            _, body = codec.split_envelope(envelope)
            child = next(codec.iter_children(body), None)
            names.append(codec.local_name(child) if child is not None else None)
        return names


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Transport that ends every session right after the Inform."""
    return FakeTransport()


@pytest.fixture
def make_transport():
    """Factory for a FakeTransport with scripted replies."""
    return FakeTransport


@pytest.fixture
def acs_envelope():
    """Factory building a parsed ACS envelope: acs_envelope(request_id, rpc_xml)."""
    return acs_request


@pytest.fixture
def inform_reply():
    """Factory for the ACS reply to an Inform."""
    return inform_response


@pytest.fixture
def rpc_element():
    """Factory parsing a standalone RPC element for direct handler calls."""
    return rpc_request
