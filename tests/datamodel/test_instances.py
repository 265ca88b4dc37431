"""Tests for contiguous enumeration and instance creation."""

from cpelink.datamodel import (
    DeviceModel,
    create_instance,
    default_value,
    enumerate_contiguous,
)

HOST_TABLE = "InternetGatewayDevice.LANDevice.1.Hosts.Host."


class TestEnumerateContiguous:
    """Tests for enumerate_contiguous."""

    def test_stops_at_first_gap(self):
        """Test enumeration never looks past a missing index."""
        model = DeviceModel({
            "P.1.Enable": [True, "true", "xsd:boolean"],
            "P.2.Enable": [True, "false", "xsd:boolean"],
            "P.4.Enable": [True, "true", "xsd:boolean"],
        })

        indices = [i for i, _ in enumerate_contiguous(model, "P.{}.Enable", 1, 5)]

        assert indices == [1, 2]

    def test_respects_upper_bound(self):
        """Test the last index is inclusive and not exceeded."""
        model = DeviceModel({f"P.{i}.Name": [True, str(i), "xsd:string"] for i in range(1, 10)})

        records = list(enumerate_contiguous(model, "P.{}.Name", 1, 3))

        assert [i for i, _ in records] == [1, 2, 3]
        assert records[2][1].value == "3"

    def test_empty_when_first_missing(self):
        """Test nothing is yielded when the first index is absent."""
        model = DeviceModel({"P.2.Enable": [True, "true", "xsd:boolean"]})

        assert list(enumerate_contiguous(model, "P.{}.Enable")) == []


class TestCreateInstance:
    """Tests for create_instance."""

    def test_default_values(self):
        """Test type defaults."""
        assert default_value("xsd:boolean") == "false"
        assert default_value("xsd:int") == "0"
        assert default_value("xsd:unsignedInt") == "0"
        assert default_value("xsd:dateTime") == "0001-01-01T00:00:00Z"
        assert default_value("xsd:string") == ""
        assert default_value(None) == ""

    def test_new_instance_gets_union_of_leaves(self, igd_model):
        """Test the new instance copies every leaf seen under any instance."""
        number = create_instance(igd_model, HOST_TABLE)
        prefix = f"{HOST_TABLE}{number}."

        assert number == 3
        assert igd_model.get_value(prefix + "Active") == "false"
        assert igd_model.get_value(prefix + "HostName") == ""
        assert igd_model.get_value(prefix + "LeaseTimeRemaining") == "0"
        # MACAddress only exists under instance 2
        assert igd_model.get_value(prefix + "MACAddress") == ""
        assert igd_model[prefix + "LeaseTimeRemaining"].type == "xsd:int"

    def test_new_instance_node_is_writable(self, igd_model):
        """Test the instance object node itself is created writable."""
        create_instance(igd_model, HOST_TABLE)

        node = igd_model[f"{HOST_TABLE}3."]
        assert node.is_object
        assert node.writable

    def test_existing_instances_unchanged(self, igd_model):
        """Test copying never touches the source instances."""
        create_instance(igd_model, HOST_TABLE)

        assert igd_model.get_value(f"{HOST_TABLE}1.HostName") == "laptop"
        assert f"{HOST_TABLE}1.MACAddress" not in igd_model

    def test_empty_table_starts_at_one(self):
        """Test a table without instances gets instance 1."""
        model = DeviceModel({"X.Table.": [True]})

        assert create_instance(model, "X.Table.") == 1
        assert "X.Table.1." in model
