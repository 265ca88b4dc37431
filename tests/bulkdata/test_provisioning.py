"""Tests for demo-mode host provisioning."""

from cpelink.datamodel import ParameterRecord
from cpelink.simulator.bulkdata import DEMO_HOST_VALUES, provision_demo_hosts
from cpelink.simulator.bulkdata.provisioning import DEMO_MODE_PATH, HOST_TABLE


class TestProvisionDemoHosts:
    """Tests for provision_demo_hosts."""

    def test_disabled_does_nothing(self, igd_model):
        """Test nothing happens while demo mode is off."""
        assert provision_demo_hosts(igd_model) is None
        assert igd_model.instances(HOST_TABLE) == [1, 2]

    def test_adds_third_host(self, igd_model):
        """Test the demo host is created with the sample values."""
        igd_model.set_value(DEMO_MODE_PATH, "true")

        number = provision_demo_hosts(igd_model)

        assert number == 3
        prefix = f"{HOST_TABLE}3."
        for leaf, (value, type_name) in DEMO_HOST_VALUES.items():
            record = igd_model[prefix + leaf]
            assert record.value == value
            assert record.type == type_name
            assert record.writable

    def test_only_once(self, igd_model):
        """Test a second call leaves the table alone."""
        igd_model.set_value(DEMO_MODE_PATH, "true")

        provision_demo_hosts(igd_model)
        assert provision_demo_hosts(igd_model) is None

        assert igd_model.instances(HOST_TABLE) == [1, 2, 3]

    def test_single_existing_host_still_gets_instance_3(self, igd_model):
        """Test the demo host is numbered 3 even when only host 1 exists."""
        igd_model.delete_object(f"{HOST_TABLE}2.")
        igd_model.set_value(DEMO_MODE_PATH, "true")

        assert provision_demo_hosts(igd_model) == 3
        assert provision_demo_hosts(igd_model) is None

        assert igd_model.instances(HOST_TABLE) == [1, 3]
        assert igd_model.get_value(f"{HOST_TABLE}3.HostName") == "iphone-887bf88d22e66acc"
        assert igd_model.get_value(f"{HOST_TABLE}3.LeaseTimeRemaining") == "900922"

    def test_gap_in_table_does_not_grow_it(self, igd_model):
        """Test a table with hosts 1 and 4 gains host 3 once and nothing after."""
        igd_model.delete_object(f"{HOST_TABLE}2.")
        igd_model.put(f"{HOST_TABLE}4.", ParameterRecord(False))
        igd_model.put(f"{HOST_TABLE}4.HostName", ParameterRecord(False, "printer", "xsd:string"))
        igd_model.set_value(DEMO_MODE_PATH, "true")

        results = [provision_demo_hosts(igd_model) for _ in range(5)]

        assert results == [3, None, None, None, None]
        assert igd_model.instances(HOST_TABLE) == [1, 3, 4]
        assert igd_model.get_value(f"{HOST_TABLE}4.HostName") == "printer"

    def test_existing_hosts_untouched(self, igd_model):
        """Test provisioning does not change the other hosts."""
        igd_model.set_value(DEMO_MODE_PATH, "true")

        provision_demo_hosts(igd_model)

        assert igd_model.get_value(f"{HOST_TABLE}1.HostName") == "laptop"
        assert igd_model.get_value(f"{HOST_TABLE}2.MACAddress") == "00:11:22:33:44:66"
