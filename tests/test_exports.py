"""
Export registry tests.
"""
import pytest

from stackgraph.graph.dependency import DependencyGraph
from stackgraph.graph.exports import ExportRegistry
from stackgraph.models.errors import (
    DuplicateExportError,
    UnknownAttributeError,
    UnknownNodeError,
)
from stackgraph.models.resource import ResourceKind, ResourceNode
from stackgraph.stack import Stack


class TestExportRegistry:
    def setup_method(self):
        self.graph = DependencyGraph()
        self.graph.add_node(ResourceNode("V", ResourceKind.NETWORK))
        self.graph.add_node(ResourceNode("MMAD", ResourceKind.DIRECTORY_SERVICE))
        self.registry = ExportRegistry()

    def test_resolve_vpc_id(self):
        self.registry.register("vpc-id", "V", "Identifier")
        assert self.registry.resolve_all(self.graph) == {"vpc-id": {"Ref": "V"}}

    def test_attribute_export(self):
        self.registry.register("dns", "MMAD", "DnsAddresses")
        assert self.registry.resolve_all(self.graph) == {"dns": {"Fn::GetAtt": ["MMAD", "DnsIpAddresses"]}}

    def test_literal_export(self):
        self.registry.register_literal("FQDN", "corp.local", "Fully Qualified Domain Name")
        assert self.registry.resolve_all(self.graph) == {"FQDN": "corp.local"}

    def test_duplicate_name(self):
        self.registry.register("vpc-id", "V")
        with pytest.raises(DuplicateExportError):
            self.registry.register("vpc-id", "MMAD")
        with pytest.raises(DuplicateExportError):
            self.registry.register_literal("vpc-id", "x")
        assert self.registry.get("vpc-id").node_name == "V"

    def test_unknown_node(self):
        self.registry.register("gone", "missing")
        with pytest.raises(UnknownNodeError):
            self.registry.resolve_all(self.graph)

    def test_unknown_attribute(self):
        self.registry.register("arn", "V", "Arn")
        with pytest.raises(UnknownAttributeError):
            self.registry.resolve_all(self.graph)

    def test_registration_order_preserved(self):
        for name in ["z", "a", "m"]:
            self.registry.register(name, "V")
        assert list(self.registry.resolve_all(self.graph)) == ["z", "a", "m"]


class TestStackExports:
    def setup_method(self):
        self.stack = Stack("base")
        self.stack.add_resource("lab-vpc", ResourceKind.NETWORK, {"CidrBlock": "10.0.0.0/16"})

    def test_unknown_node_rejected_at_definition(self):
        with pytest.raises(UnknownNodeError):
            self.stack.export("vpc-id", "vpc")
        assert "vpc-id" not in self.stack.exports

    def test_unknown_attribute_rejected_at_definition(self):
        with pytest.raises(UnknownAttributeError):
            self.stack.export("vpc-arn", "lab-vpc", "Arn")
        assert len(self.stack.exports) == 0

    def test_duplicate_rejected(self):
        self.stack.export("vpc-id", "lab-vpc")
        with pytest.raises(DuplicateExportError):
            self.stack.export("vpc-id", "lab-vpc", "CidrBlock")

    def test_export_appears_in_plan(self):
        self.stack.export("vpc-id", "lab-vpc", description="ID For the created VPC")
        plan = self.stack.synthesize()
        assert plan.exports == {"vpc-id": {"Ref": "lab-vpc"}}
        assert plan.export_descriptions["vpc-id"] == "ID For the created VPC"
