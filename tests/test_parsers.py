"""
Parser tests: stack files, CloudFormation import and format detection.
"""
import json
import os
import shutil

import pytest

from stackgraph.detect import detect_format
from stackgraph.models.deferred import DeferredValue, ImportedValue, ParameterValue
from stackgraph.models.errors import CycleDetectedError, StackFileError
from stackgraph.models.resource import ResourceKind
from stackgraph.parsers import cloudformation, stackfile

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")


def _fixture(name):
    return os.path.join(FIXTURES, name)


# --------------------------------------------------------- Stack files
class TestStackFileParser:
    def setup_method(self):
        self.stack = stackfile.parse_file(_fixture("lab_stack.yaml"))

    def test_stack_name_and_resources(self):
        assert self.stack.name == "lab"
        assert len(self.stack.graph) == 11
        assert self.stack.graph.names()[:3] == ["jump-box", "join-doc", "MMAD"]

    def test_kinds_parsed(self):
        assert self.stack.graph.get("MMAD").kind == ResourceKind.DIRECTORY_SERVICE
        assert self.stack.graph.get("public-subnet-1").kind == ResourceKind.SUBNET

    def test_tags_become_deferred_markers(self):
        jump_box = self.stack.graph.get("jump-box").properties
        assert jump_box["ImageId"] == ParameterValue("windows-image")
        assert jump_box["SecurityGroupIds"] == [DeferredValue("private-sg")]
        mmad = self.stack.graph.get("MMAD").properties
        assert mmad["Password"] == DeferredValue("admin-secret", "GeneratedPassword")
        doc = self.stack.graph.get("join-doc").properties["Content"]
        dns = doc["runtimeConfig"]["aws:domainJoin"]["properties"]["dnsIpAddresses"]
        assert dns == DeferredValue("MMAD", "DnsAddresses")

    def test_parameters_and_exports(self):
        assert self.stack.parameters["windows-image"].description == "Current Windows Server AMI"
        assert self.stack.exports.names() == ["vpc-id", "dns-addresses", "InstanceRoleName", "FQDN"]
        assert self.stack.exports.get("FQDN").is_literal

    def test_declared_dependencies(self):
        assert self.stack.graph.declared_dependencies("jump-box") == ["join-doc"]
        assert self.stack.graph.declared_dependencies("MMAD") == ["admin-secret"]

    def test_plan_order(self):
        plan = self.stack.synthesize()
        assert plan.order == [
            "admin-secret", "lab-vpc", "private-subnet-1", "private-subnet-2", "MMAD", "join-doc",
            "public-subnet-1", "private-sg", "lab-role", "lab-role-profile", "jump-box",
        ]
        assert plan.exports["dns-addresses"] == {"Fn::GetAtt": ["MMAD", "DnsIpAddresses"]}

    def test_imports_listed(self):
        consumer = stackfile.parse_file(_fixture("consumer_stack.yaml"))
        assert consumer.name == "sql-servers"
        assert consumer.imports() == ["vpc-id", "FQDN"]
        assert consumer.graph.get("sql-sg").properties["VpcId"] == ImportedValue("vpc-id")

    def test_cycle_fixture(self):
        stack = stackfile.parse_file(_fixture("cycle_stack.yaml"))
        with pytest.raises(CycleDetectedError):
            stack.synthesize()

    def test_json_stack_file(self, tmp_path):
        doc = {
            "resources": {
                "vpc": {"kind": "Network", "properties": {"CidrBlock": "10.1.0.0/16"}},
                "sg": {"kind": "SecurityGroup", "properties": {"VpcId": {"Ref": "vpc"}}},
                "dir": {"kind": "DirectoryService", "properties": {"Dns": {"GetAtt": "dir2.DnsAddresses"}}},
                "dir2": {"kind": "DirectoryService", "properties": {"VpcId": {"Import": "vpc-id"}}},
            },
            "exports": {"sg-id": {"node": "sg", "attribute": "GroupId"}},
        }
        path = tmp_path / "network.json"
        path.write_text(json.dumps(doc))
        stack = stackfile.parse_file(str(path))
        assert stack.name == "network"
        assert stack.graph.get("sg").properties["VpcId"] == DeferredValue("vpc")
        assert stack.graph.get("dir").properties["Dns"] == DeferredValue("dir2", "DnsAddresses")
        assert stack.imports() == ["vpc-id"]
        assert stack.synthesize().exports == {"sg-id": {"Fn::GetAtt": ["sg", "GroupId"]}}

    def test_unknown_kind(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("resources:\n  thing:\n    kind: LoadBalancer\n")
        with pytest.raises(StackFileError) as exc:
            stackfile.parse_file(str(path))
        assert "LoadBalancer" in str(exc.value)

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("resources: [unclosed\n")
        with pytest.raises(StackFileError):
            stackfile.parse_file(str(path))
        with pytest.raises(StackFileError):
            stackfile.parse_file(str(tmp_path / "missing.yaml"))

    def test_export_needs_node_or_value(self, tmp_path):
        path = tmp_path / "exports.yaml"
        path.write_text("resources: {}\nexports:\n  orphan:\n    description: nothing\n")
        with pytest.raises(StackFileError):
            stackfile.parse_file(str(path))

    def test_parameters_must_be_a_mapping(self):
        with pytest.raises(StackFileError) as exc:
            stackfile.parse_file(_fixture("bad_parameters_stack.yaml"))
        assert "parameters" in str(exc.value)

    def test_exports_must_be_a_mapping(self, tmp_path):
        path = tmp_path / "exports.yaml"
        path.write_text("resources:\n  vpc:\n    kind: Network\nexports:\n  - vpc-id\n")
        with pytest.raises(StackFileError) as exc:
            stackfile.parse_file(str(path))
        assert "exports" in str(exc.value)

    def test_depends_on_must_name_resources(self, tmp_path):
        path = tmp_path / "deps.yaml"
        path.write_text("resources:\n  vpc:\n    kind: Network\n    depends_on:\n      other: true\n")
        with pytest.raises(StackFileError) as exc:
            stackfile.parse_file(str(path))
        assert "depends_on" in str(exc.value)


# --------------------------------------------------------- CloudFormation import
class TestCloudFormationParser:
    def setup_method(self):
        self.stack = cloudformation.parse_file(_fixture("cfn_template.yaml"))

    def test_stack_named_after_file(self):
        assert self.stack.name == "cfn_template"

    def test_unsupported_types_skipped(self, capsys):
        stack = cloudformation.parse_file(_fixture("cfn_template.yaml"))
        assert "JumpBoxLogs" not in stack.graph
        assert "JumpBoxLogs" in capsys.readouterr().err

    def test_resource_kinds(self):
        assert self.stack.graph.names() == ["AdminSecret", "LabVpc", "PrivateSubnet1", "MMAD", "JoinDoc", "JumpBox"]
        assert self.stack.graph.get("JoinDoc").kind == ResourceKind.AUTOMATION_DOCUMENT

    def test_references_become_deferred(self):
        doc = self.stack.graph.get("JoinDoc").properties["Content"]
        props = doc["runtimeConfig"]["aws:domainJoin"]["properties"]
        assert props["directoryId"] == DeferredValue("MMAD")
        assert props["dnsIpAddresses"] == DeferredValue("MMAD", "DnsAddresses")
        subnet = self.stack.graph.get("PrivateSubnet1").properties
        assert subnet["VpcId"] == DeferredValue("LabVpc")
        assert subnet["AvailabilityZone"] == {"Fn::Select": [0, {"Fn::GetAZs": ""}]}

    def test_parameters_and_pseudo_parameters(self):
        jump_box = self.stack.graph.get("JumpBox").properties
        assert jump_box["ImageId"] == ParameterValue("WindowsImage")
        assert jump_box["Tags"][0]["Value"] == {"Ref": "AWS::Region"}

    def test_depends_on_to_skipped_resource_dropped(self):
        assert self.stack.graph.declared_dependencies("JumpBox") == ["JoinDoc"]
        assert self.stack.graph.declared_dependencies("MMAD") == ["AdminSecret"]

    def test_secret_dynamic_reference(self):
        password = self.stack.graph.get("MMAD").properties["Password"]
        assert password == DeferredValue("AdminSecret", "GeneratedPassword")

    def test_outputs_become_exports(self):
        assert self.stack.exports.names() == ["vpc-id", "directory-dns", "Domain"]
        dns = self.stack.exports.get("directory-dns")
        assert (dns.node_name, dns.attribute) == ("MMAD", "DnsAddresses")
        assert self.stack.exports.get("Domain").value == "CORP"

    def test_imported_template_synthesizes(self):
        plan = self.stack.synthesize()
        order = plan.order
        assert order.index("AdminSecret") < order.index("MMAD") < order.index("JoinDoc") < order.index("JumpBox")
        assert plan.step("MMAD").properties["Password"]["Fn::Join"][1][2] == ":SecretString:Password::}}"
        assert plan.exports["vpc-id"] == {"Ref": "LabVpc"}

    def test_not_a_template(self, tmp_path):
        path = tmp_path / "plain.yaml"
        path.write_text("hello: world\n")
        with pytest.raises(StackFileError):
            cloudformation.parse_file(str(path))

    def test_parse_directory(self, tmp_path):
        shutil.copy(_fixture("cfn_template.yaml"), tmp_path / "directory.yaml")
        shutil.copy(_fixture("lab_stack.yaml"), tmp_path / "lab.yaml")
        stacks = cloudformation.parse_directory(str(tmp_path))
        assert [s.name for s in stacks] == ["directory"]


# --------------------------------------------------------- Format detection
class TestFormatDetection:
    def test_cfn_yaml(self):
        assert detect_format(_fixture("cfn_template.yaml")) == "cloudformation"

    def test_stack_file(self):
        assert detect_format(_fixture("lab_stack.yaml")) == "stackfile"
        assert detect_format(_fixture("consumer_stack.yaml")) == "stackfile"

    def test_cfn_json_without_version(self, tmp_path):
        f = tmp_path / "template.json"
        f.write_text(json.dumps({"Resources": {"Vpc": {"Type": "AWS::EC2::VPC"}}}))
        assert detect_format(str(f)) == "cloudformation"

    def test_unknown_returns_unknown(self, tmp_path):
        f = tmp_path / "random.txt"
        f.write_text("hello world")
        assert detect_format(str(f)) == "unknown"
        g = tmp_path / "other.yaml"
        g.write_text("resources:\n  thing:\n    type: nothing\n")
        assert detect_format(str(g)) == "unknown"
