from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from stackgraph.models.deferred import IDENTIFIER, DeferredValue, canonical_attribute


class ResourceKind(str, Enum):
    NETWORK             = "Network"
    SUBNET              = "Subnet"
    DIRECTORY_SERVICE   = "DirectoryService"
    SECRET              = "Secret"
    COMPUTE_INSTANCE    = "ComputeInstance"
    SECURITY_GROUP      = "SecurityGroup"
    AUTOMATION_DOCUMENT = "AutomationDocument"
    INSTANCE_PROFILE    = "InstanceProfile"
    ROLE                = "Role"
    INTERNET_GATEWAY    = "InternetGateway"
    GATEWAY_ATTACHMENT  = "GatewayAttachment"
    ELASTIC_IP          = "ElasticIp"
    NAT_GATEWAY         = "NatGateway"
    ROUTE_TABLE         = "RouteTable"
    ROUTE_ASSOCIATION   = "RouteTableAssociation"
    ROUTE               = "Route"


# Provisioning backend type for each kind
BACKEND_TYPES: Dict[ResourceKind, str] = {
    ResourceKind.NETWORK:             "AWS::EC2::VPC",
    ResourceKind.SUBNET:              "AWS::EC2::Subnet",
    ResourceKind.DIRECTORY_SERVICE:   "AWS::DirectoryService::MicrosoftAD",
    ResourceKind.SECRET:              "AWS::SecretsManager::Secret",
    ResourceKind.COMPUTE_INSTANCE:    "AWS::EC2::Instance",
    ResourceKind.SECURITY_GROUP:      "AWS::EC2::SecurityGroup",
    ResourceKind.AUTOMATION_DOCUMENT: "AWS::SSM::Document",
    ResourceKind.INSTANCE_PROFILE:    "AWS::IAM::InstanceProfile",
    ResourceKind.ROLE:                "AWS::IAM::Role",
    ResourceKind.INTERNET_GATEWAY:    "AWS::EC2::InternetGateway",
    ResourceKind.GATEWAY_ATTACHMENT:  "AWS::EC2::VPCGatewayAttachment",
    ResourceKind.ELASTIC_IP:          "AWS::EC2::EIP",
    ResourceKind.NAT_GATEWAY:         "AWS::EC2::NatGateway",
    ResourceKind.ROUTE_TABLE:         "AWS::EC2::RouteTable",
    ResourceKind.ROUTE_ASSOCIATION:   "AWS::EC2::SubnetRouteTableAssociation",
    ResourceKind.ROUTE:               "AWS::EC2::Route",
}

KINDS_BY_BACKEND_TYPE: Dict[str, ResourceKind] = {v: k for k, v in BACKEND_TYPES.items()}

GENERATED_PASSWORD = "GeneratedPassword"

# Attribute selector -> backend attribute name. None means the resource's own
# reference ({"Ref": name}); GeneratedPassword is compiled to a dynamic reference.
ATTRIBUTES: Dict[ResourceKind, Dict[str, Optional[str]]] = {
    ResourceKind.NETWORK: {
        IDENTIFIER: None,
        "CidrBlock": "CidrBlock",
        "DefaultSecurityGroup": "DefaultSecurityGroup",
        "DefaultNetworkAcl": "DefaultNetworkAcl",
        "Ipv6CidrBlocks": "Ipv6CidrBlocks",
    },
    ResourceKind.SUBNET: {
        IDENTIFIER: None,
        "AvailabilityZone": "AvailabilityZone",
        "NetworkAclAssociationId": "NetworkAclAssociationId",
        "VpcId": "VpcId",
    },
    ResourceKind.DIRECTORY_SERVICE: {
        IDENTIFIER: None,
        "Alias": "Alias",
        "DnsAddresses": "DnsIpAddresses",
    },
    ResourceKind.SECRET: {
        IDENTIFIER: None,
        GENERATED_PASSWORD: None,
    },
    ResourceKind.COMPUTE_INSTANCE: {
        IDENTIFIER: None,
        "AvailabilityZone": "AvailabilityZone",
        "PrivateDnsName": "PrivateDnsName",
        "PrivateIp": "PrivateIp",
        "PublicDnsName": "PublicDnsName",
        "PublicIp": "PublicIp",
    },
    ResourceKind.SECURITY_GROUP: {
        IDENTIFIER: None,
        "GroupId": "GroupId",
        "VpcId": "VpcId",
    },
    ResourceKind.AUTOMATION_DOCUMENT: {
        IDENTIFIER: None,
    },
    ResourceKind.INSTANCE_PROFILE: {
        IDENTIFIER: None,
        "Arn": "Arn",
    },
    ResourceKind.ROLE: {
        IDENTIFIER: None,
        "Arn": "Arn",
        "RoleId": "RoleId",
    },
    ResourceKind.INTERNET_GATEWAY: {
        IDENTIFIER: None,
        "InternetGatewayId": "InternetGatewayId",
    },
    ResourceKind.GATEWAY_ATTACHMENT: {
        IDENTIFIER: None,
    },
    ResourceKind.ELASTIC_IP: {
        IDENTIFIER: None,
        "AllocationId": "AllocationId",
        "PublicIp": "PublicIp",
    },
    ResourceKind.NAT_GATEWAY: {
        IDENTIFIER: None,
        "NatGatewayId": "NatGatewayId",
    },
    ResourceKind.ROUTE_TABLE: {
        IDENTIFIER: None,
        "RouteTableId": "RouteTableId",
    },
    ResourceKind.ROUTE_ASSOCIATION: {
        IDENTIFIER: None,
    },
    ResourceKind.ROUTE: {
        IDENTIFIER: None,
    },
}


def supports_attribute(kind: ResourceKind, attribute: str) -> bool:
    return canonical_attribute(attribute) in ATTRIBUTES.get(kind, {})


def selector_for_backend_attribute(kind: ResourceKind, backend_attr: str) -> Optional[str]:
    """Map a backend attribute name (e.g. "DnsIpAddresses") back to its selector."""
    for selector, wire in ATTRIBUTES.get(kind, {}).items():
        if wire == backend_attr or (wire is None and selector == backend_attr):
            return selector
    return None


@dataclass
class ResourceNode:
    name: str                      # stable logical name, unique within a stack
    kind: ResourceKind
    properties: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValueError("Resource name must not be empty")
        if not isinstance(self.kind, ResourceKind):
            self.kind = ResourceKind(self.kind)
        self.depends_on = list(dict.fromkeys(self.depends_on))

    @property
    def backend_type(self) -> str:
        return BACKEND_TYPES[self.kind]

    def ref(self, attribute: str = IDENTIFIER) -> DeferredValue:
        """Deferred reference to one of this resource's generated attributes."""
        return DeferredValue(self.name, attribute)

    def attribute_names(self) -> List[str]:
        return list(ATTRIBUTES[self.kind])
