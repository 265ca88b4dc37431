"""Tests for the CWMP SOAP envelope codec."""

import pytest
from lxml import etree

from cpelink.simulator import codec
from cpelink.simulator.codec import CodecError, NAMESPACES
from cpelink.simulator.methods import MethodDispatcher


class TestBuildEnvelope:
    """Tests for envelope encoding."""

    def test_declaration_and_namespaces(self):
        """Test XML declaration and namespace prefixes on the root."""
        xml = codec.build_envelope("abc12345", None)

        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n')
        envelope = codec.parse(xml.encode("utf-8"))
        assert envelope.tag == codec.qname("soap-env", "Envelope")
        for prefix, uri in NAMESPACES.items():
            assert envelope.nsmap[prefix] == uri

    def test_header_id_must_understand(self):
        """Test the cwmp:ID header carries mustUnderstand=1."""
        envelope = codec.parse(codec.build_envelope("abc12345", None).encode("utf-8"))
        header, body = codec.split_envelope(envelope)

        id_element = codec.find_child(header, "ID")
        assert id_element.get(codec.qname("soap-env", "mustUnderstand")) == "1"
        assert codec.get_request_id(header) == "abc12345"
        assert body is not None
        assert len(body) == 0

    def test_request_id_is_entity_encoded(self):
        """Test special characters in the request id survive encoding."""
        xml = codec.build_envelope("a<b&c", None)

        assert "a&lt;b&amp;c" in xml
        header, _ = codec.split_envelope(codec.parse(xml.encode("utf-8")))
        assert codec.get_request_id(header) == "a<b&c"

    def test_inform_round_trip(self, igd_model):
        """Test an encoded Inform decodes to the same id and RPC name."""
        body = MethodDispatcher().inform(igd_model, "1 BOOT")
        envelope = codec.parse(codec.build_envelope("id000001", body).encode("utf-8"))

        header, body = codec.split_envelope(envelope)
        rpc = codec.find_rpc_element(body)

        assert codec.get_request_id(header) == "id000001"
        assert codec.local_name(rpc) == "Inform"
        assert rpc.prefix == "cwmp"

    def test_multiple_body_elements(self):
        """Test a sequence of body elements is appended in order."""
        xml = codec.build_envelope(
            "x", [codec.cwmp_element("RebootResponse"), codec.cwmp_element("FactoryResetResponse")]
        )
        _, body = codec.split_envelope(codec.parse(xml.encode("utf-8")))

        assert [codec.local_name(e) for e in body] == ["RebootResponse", "FactoryResetResponse"]


class TestBuildFault:
    """Tests for SOAP Fault encoding."""

    def test_fault_layout(self):
        """Test faultcode, faultstring and CWMP detail."""
        xml = codec.build_envelope("f1", codec.build_fault(9000, "Method not supported-Foo"))
        _, body = codec.split_envelope(codec.parse(xml.encode("utf-8")))

        fault = codec.find_child(body, "Fault")
        assert codec.child_text(fault, "faultcode") == "Client"
        assert codec.child_text(fault, "faultstring") == "CWMP fault"
        assert codec.read_fault(body) == (9000, "Method not supported-Foo")

    def test_fault_is_not_an_rpc(self):
        """Test the SOAP Fault is not picked up as a CWMP RPC."""
        xml = codec.build_envelope("f1", codec.build_fault(9005, "Invalid parameter name"))
        _, body = codec.split_envelope(codec.parse(xml.encode("utf-8")))

        assert codec.find_rpc_element(body) is None


class TestParse:
    """Tests for response decoding."""

    @pytest.mark.parametrize("data", [None, b"", b"  \r\n"])
    def test_empty_is_none(self, data):
        """Test empty bodies mean no ACS RPC."""
        assert codec.parse(data) is None

    def test_malformed_raises(self):
        """Test malformed XML raises CodecError."""
        with pytest.raises(CodecError):
            codec.parse(b"<soap-env:Envelope><unclosed>")

    def test_entities_not_expanded(self):
        """Test internal entity definitions are not resolved."""
        data = (
            b'<?xml version="1.0"?>'
            b'<!DOCTYPE r [<!ENTITY e "expanded">]>'
            b"<r>&e;</r>"
        )
        root = codec.parse(data)
        assert "expanded" not in (root.text or "")

    def test_rpc_found_with_other_cwmp_version(self):
        """Test the RPC is located for cwmp-1-2 namespaces too."""
        xml = (
            b'<soap-env:Envelope xmlns:soap-env="http://schemas.xmlsoap.org/soap/envelope/"'
            b' xmlns:c="urn:dslforum-org:cwmp-1-2">'
            b"<soap-env:Header><c:ID>z</c:ID></soap-env:Header>"
            b"<soap-env:Body><c:GetRPCMethods/></soap-env:Body></soap-env:Envelope>"
        )
        header, body = codec.split_envelope(codec.parse(xml))

        assert codec.get_request_id(header) == "z"
        assert codec.local_name(codec.find_rpc_element(body)) == "GetRPCMethods"

    def test_iter_children_skips_comments(self):
        """Test comments are ignored when walking children."""
        root = etree.fromstring(b"<r><!-- c --><a/><b/></r>")

        assert [codec.local_name(e) for e in codec.iter_children(root)] == ["a", "b"]
        assert codec.find_child(root, "b") is not None
        assert codec.child_text(root, "missing", "dflt") == "dflt"
