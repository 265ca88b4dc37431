"""CWMP SOAP envelope codec.

This module builds and interprets the SOAP 1.1 envelopes exchanged with the
ACS. Encoding is pure: it takes a request id and a body element and returns
UTF-8 XML text. Decoding turns response bytes into an lxml element tree, with
an empty body meaning "no ACS-initiated RPC" rather than an error.

Envelope layout::

    <soap-env:Envelope xmlns:soap-enc=.. xmlns:soap-env=.. xmlns:xsd=..
                       xmlns:xsi=.. xmlns:cwmp=..>
      <soap-env:Header>
        <cwmp:ID soap-env:mustUnderstand="1">request id</cwmp:ID>
      </soap-env:Header>
      <soap-env:Body>
        <cwmp:SomeRPC>...</cwmp:SomeRPC>  (or soap-env:Fault)
      </soap-env:Body>
    </soap-env:Envelope>
"""

import logging
from typing import Iterable, Iterator, Optional, Tuple, Union

from lxml import etree

logger = logging.getLogger(__name__)


# =============================================================================
# Protocol Constants
# =============================================================================

NAMESPACES = {
    "soap-enc": "http://schemas.xmlsoap.org/soap/encoding/",
    "soap-env": "http://schemas.xmlsoap.org/soap/envelope/",
    "xsd": "http://www.w3.org/2001/XMLSchema",
    "xsi": "http://www.w3.org/2001/XMLSchema-instance",
    "cwmp": "urn:dslforum-org:cwmp-1-0",
}

CWMP_PREFIX = "cwmp"
CWMP_URN_PREFIX = "urn:dslforum-org:cwmp-"

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

FAULT_CODE_CLIENT = "Client"
FAULT_STRING = "CWMP fault"

# Parser hardened against entity expansion and network access
_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_blank_text=True,
    huge_tree=False,
)


class CodecError(Exception):
    """Response body is not a well-formed XML document."""

    pass


BodyContent = Union[etree._Element, Iterable[etree._Element], None]


# =============================================================================
# Element Helpers
# =============================================================================


def qname(prefix: str, name: str) -> str:
    """Get the Clark-notation tag for a prefixed name, e.g. ``{urn:..}Inform``."""
    return f"{{{NAMESPACES[prefix]}}}{name}"


def cwmp_element(name: str) -> etree._Element:
    """Create a standalone ``cwmp:<name>`` element for an RPC body.

    The element carries the full namespace map so array-type and xsi:type
    attributes resolve; the declarations are dropped once it is placed into
    an envelope that already declares them.
    """
    return etree.Element(qname("cwmp", name), nsmap=NAMESPACES)


def sub_element(
    parent: etree._Element, name: str, text: Optional[str] = None, **attrib: str
) -> etree._Element:
    """Append an unqualified child element with optional text."""
    child = etree.SubElement(parent, name, attrib)
    if text is not None:
        child.text = str(text)
    return child


def local_name(element: etree._Element) -> str:
    """Get the local (namespace-free) name of an element."""
    return etree.QName(element).localname


def iter_children(element: etree._Element, name: Optional[str] = None) -> Iterator[etree._Element]:
    """Iterate element children, skipping comments and processing instructions.

    Args:
        element: Parent element.
        name: Optional local name filter.
    """
    for child in element:
        if not isinstance(child.tag, str):
            continue
        if name is None or local_name(child) == name:
            yield child


def find_child(element: etree._Element, name: str) -> Optional[etree._Element]:
    """Get the first child with the given local name."""
    return next(iter_children(element, name), None)


def child_text(element: etree._Element, name: str, default: str = "") -> str:
    """Get the text of the first child with the given local name."""
    child = find_child(element, name)
    if child is None or child.text is None:
        return default
    return child.text


def is_cwmp_element(element: etree._Element) -> bool:
    """Check whether an element belongs to the CWMP namespace."""
    if element.prefix == CWMP_PREFIX:
        return True
    namespace = etree.QName(element).namespace or ""
    return namespace.startswith(CWMP_URN_PREFIX)


# =============================================================================
# Encoding
# =============================================================================


def build_envelope(request_id: str, body: BodyContent) -> str:
    """Build a CWMP SOAP envelope.

    Args:
        request_id: Value for the ``cwmp:ID`` header.
        body: RPC or Fault element, a sequence of elements, or None.

    Returns:
        UTF-8 XML text with declaration.

    Example:
        >>> xml = build_envelope("a1b2c3d4", build_fault(9000, "Method not supported-X"))
    """
    envelope = etree.Element(qname("soap-env", "Envelope"), nsmap=NAMESPACES)
    header = etree.SubElement(envelope, qname("soap-env", "Header"))
    id_element = etree.SubElement(
        header,
        qname("cwmp", "ID"),
        {qname("soap-env", "mustUnderstand"): "1"},
    )
    id_element.text = request_id

    body_element = etree.SubElement(envelope, qname("soap-env", "Body"))
    if body is not None:
        if isinstance(body, etree._Element):
            body_element.append(body)
        else:
            for element in body:
                body_element.append(element)

    return XML_DECLARATION + etree.tostring(envelope, encoding="unicode")


def build_fault(code: int, message: str) -> etree._Element:
    """Build a SOAP Fault carrying a CWMP fault code.

    Args:
        code: CWMP fault code (e.g. 9000).
        message: Human-readable fault string.

    Returns:
        ``soap-env:Fault`` element.
    """
    fault = etree.Element(qname("soap-env", "Fault"), nsmap=NAMESPACES)
    sub_element(fault, "faultcode", FAULT_CODE_CLIENT)
    sub_element(fault, "faultstring", FAULT_STRING)
    detail = sub_element(fault, "detail")
    cwmp_fault = etree.SubElement(detail, qname("cwmp", "Fault"))
    sub_element(cwmp_fault, "FaultCode", str(code))
    sub_element(cwmp_fault, "FaultString", message)
    return fault


# =============================================================================
# Decoding
# =============================================================================


def parse(data: Optional[bytes]) -> Optional[etree._Element]:
    """Decode response bytes into the envelope element.

    Args:
        data: Raw response body.

    Returns:
        The root element, or None for an empty or absent body.

    Raises:
        CodecError: If the body is not well-formed XML.
    """
    if not data or not data.strip():
        return None
    try:
        return etree.fromstring(data, _PARSER)
    except etree.XMLSyntaxError as e:
        raise CodecError(f"Malformed XML in response: {e}") from e


def split_envelope(
    envelope: etree._Element,
) -> Tuple[Optional[etree._Element], Optional[etree._Element]]:
    """Locate the Header and Body children of an envelope by local name."""
    header = None
    body = None
    for child in iter_children(envelope):
        name = local_name(child)
        if name == "Header":
            header = child
        elif name == "Body":
            body = child
    return header, body


def get_request_id(header: Optional[etree._Element]) -> Optional[str]:
    """Get the ``cwmp:ID`` text from a Header element."""
    if header is None:
        return None
    id_element = find_child(header, "ID")
    if id_element is None:
        return None
    return id_element.text or ""


def find_rpc_element(body: Optional[etree._Element]) -> Optional[etree._Element]:
    """Get the first Body child in the CWMP namespace."""
    if body is None:
        return None
    for child in iter_children(body):
        if is_cwmp_element(child):
            return child
    return None


def read_fault(body: Optional[etree._Element]) -> Optional[Tuple[int, str]]:
    """Extract (FaultCode, FaultString) from a Body holding a SOAP Fault.

    Returns:
        The fault code and string, or None if the body holds no fault.
    """
    if body is None:
        return None
    fault = find_child(body, "Fault")
    if fault is None:
        return None
    detail = find_child(fault, "detail")
    cwmp_fault = find_child(detail, "Fault") if detail is not None else None
    if cwmp_fault is None:
        return None
    try:
        code = int(child_text(cwmp_fault, "FaultCode", "0"))
    except ValueError:
        code = 0
    return code, child_text(cwmp_fault, "FaultString")
